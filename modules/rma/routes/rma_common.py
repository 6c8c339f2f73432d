# modules/rma/routes/rma_common.py
"""
Utilidades compartidas del módulo RMA.

✔ Serialización JSON de RMAs (listado / detalle)
✔ Dependencias para engine y scheduler (instancias en app.state)
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Optional

from fastapi import Request

from core.models import Rma
from core.models.time import ensure_utc_aware

from modules.rma.services.services_rma_lifecycle import RmaLifecycleEngine
from modules.rma.services.services_rma_recordatorios import ReminderScheduler


# ============================
#   DEPENDENCIAS
# ============================

def get_engine(request: Request) -> RmaLifecycleEngine:
    return request.app.state.rma_engine


def get_scheduler(request: Request) -> ReminderScheduler:
    return request.app.state.reminder_scheduler


# ============================
#   SERIALIZACIÓN
# ============================

def _iso(dt: Optional[datetime]) -> Optional[str]:
    dt = ensure_utc_aware(dt)
    return dt.isoformat() if dt else None


def _estado(x: Any) -> str:
    return str(getattr(x, "value", x))


def rma_to_dict(rma: Rma, *, detalle: bool = False) -> Dict[str, Any]:
    data: Dict[str, Any] = {
        "id": rma.id,
        "estado": _estado(rma.estado),
        "usuario_id": rma.usuario_id,
        "pais_id": rma.pais_id,
        "pais": rma.pais.nombre if rma.pais else None,
        "nombre_empresa": rma.nombre_empresa,
        "direccion": rma.direccion,
        "codigo_postal": rma.codigo_postal,
        "numero_tracking": rma.numero_tracking,
        "razon_rechazo": rma.razon_rechazo,
        "cotizacion": rma.cotizacion,
        "orden_compra": rma.orden_compra,
        "tracking_envio": rma.tracking_envio,
        "last_reminder_sent": _iso(rma.last_reminder_sent),
        "created_at": _iso(rma.created_at),
        "updated_at": _iso(rma.updated_at),
        "productos": [
            {
                "id": linea.id,
                "producto_id": linea.producto_id,
                "serial": linea.serial,
                "modelo": linea.modelo,
                "reporte_evaluacion": linea.reporte_evaluacion,
            }
            for linea in rma.productos
        ],
    }

    if detalle:
        usuario = rma.usuario
        data["usuario"] = {
            "id": usuario.id,
            "email": usuario.email,
            "nombre": usuario.nombre,
            "apellido": usuario.apellido,
            "empresa": usuario.empresa,
        }
        for linea, out in zip(rma.productos, data["productos"]):
            out["producto"] = linea.producto.nombre if linea.producto else None
        data["historial"] = [
            {
                "accion": ev.accion,
                "estado_anterior": ev.estado_anterior,
                "estado_nuevo": ev.estado_nuevo,
                "actor": ev.actor,
                "nota": ev.nota,
                "metadata": ev.metadata_json,
                "fecha": _iso(ev.fecha),
            }
            for ev in rma.eventos
        ]

    return data
