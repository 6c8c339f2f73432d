# modules/rma/routes/routes_admin_scheduler.py
"""
Admin del scheduler de recordatorios

✔ GET  /admin/scheduler/status      (ADMIN / SUPERADMIN)
✔ POST /admin/scheduler/run-manual  (SUPERADMIN)
"""

from __future__ import annotations

from fastapi import APIRouter, Depends

from core.logging_config import logger
from core.models.enums import RolUsuario
from core.models.time import utcnow
from core.security import require_roles_dep, require_superadmin_dep
from core.services.services_access_scope import Actor

from modules.rma.services.services_rma_recordatorios import ReminderScheduler

from .rma_common import get_scheduler

router = APIRouter(prefix="/admin/scheduler", tags=["admin"])


@router.get("/status")
def scheduler_status(
    actor: Actor = Depends(require_roles_dep(RolUsuario.ADMIN, RolUsuario.SUPERADMIN)),
    scheduler: ReminderScheduler = Depends(get_scheduler),
):
    return {
        "status": scheduler.status(),
        "configuracion": scheduler.validar_configuracion(),
        "timestamp_utc": utcnow().isoformat(),
    }


@router.post("/run-manual")
def scheduler_run_manual(
    actor: Actor = Depends(require_superadmin_dep),
    scheduler: ReminderScheduler = Depends(get_scheduler),
):
    logger.info("[SCHEDULER] run-manual solicitado por=%s", actor.etiqueta)
    result = scheduler.run_manual()
    return {"message": "Recordatorios ejecutados manualmente", "result": result}
