# modules/rma/services/services_rma_logging.py
"""
Logging estructurado – Módulo RMA

✔ Una línea JSON por evento (rma.*)
✔ Auditoría de transiciones en logger propio (rma.audit -> audit.log)
✔ Errores con tipo + mensaje de la excepción original
"""

from __future__ import annotations

import json
import logging
from typing import Any

from core.logging_config import logger
from core.models.time import utcnow


rma_logger = logger.getChild("rma")
audit_logger = logger.getChild("audit")


def _linea(tipo: str, event: str, rma_id: int | None, extra: dict[str, Any]) -> str:
    payload = {
        "ts": utcnow().isoformat(),
        "event": f"rma.{event}",
        "type": tipo,
        "rma_id": rma_id,
        **extra,
    }
    try:
        return json.dumps(payload, ensure_ascii=False, default=str)
    except (TypeError, ValueError):
        # claves no serializables (p.ej. enums como llave)
        return json.dumps({str(k): str(v) for k, v in payload.items()}, ensure_ascii=False)


def _emit(target: logging.Logger, level: int, tipo: str, event: str, rma_id: int | None, extra: dict[str, Any]) -> None:
    if target.isEnabledFor(level):
        target.log(level, _linea(tipo, event, rma_id, extra))


def log_rma_event(event: str, *, rma_id: int | None = None, **extra: Any) -> None:
    _emit(rma_logger, logging.INFO, "event", event, rma_id, extra)


def log_rma_error(
    event: str,
    *,
    rma_id: int | None = None,
    error: Exception | str | None = None,
    **extra: Any,
) -> None:
    if isinstance(error, BaseException):
        extra.setdefault("error_type", type(error).__name__)
    if error is not None:
        extra.setdefault("error_message", str(error))
    _emit(rma_logger, logging.ERROR, "error", event, rma_id, extra)


def log_rma_audit(event: str, *, rma_id: int | None = None, usuario: str | None = None, **extra: Any) -> None:
    """Acción hecha por una persona (alta de RMA, cambios de estado)."""
    _emit(audit_logger, logging.INFO, "audit", event, rma_id, {"usuario": usuario, **extra})


def log_rma_transicion(accion: str, *, rma_id: int, usuario: str, anterior: Any, nuevo: Any, **extra: Any) -> None:
    log_rma_audit(
        f"rma_{accion.lower()}",
        rma_id=rma_id,
        usuario=usuario,
        estado_anterior=getattr(anterior, "value", anterior),
        estado_nuevo=getattr(nuevo, "value", nuevo),
        **extra,
    )
