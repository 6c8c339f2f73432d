# modules/rma/services/services_rma_core.py
"""
Core de dominio – RMA

✅ Reglas
- Errores de dominio tipados (core.errors, no HTTP aquí)
- Estados estrictos (RmaEstado del core)
- Carga de RMA siempre filtrada por alcance: fuera de alcance == no existe
- Historial append-only (RmaEvento)
"""

from __future__ import annotations

import secrets
import string
import time
from contextlib import contextmanager
from typing import Any, Final, Iterator

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from core.errors import ConflictError, ForbiddenError, InternalError, NotFoundError
from core.models import Rma, RmaEvento
from core.models.enums import RmaEstado, TipoEntidad
from core.services.services_access_scope import Actor, aplicar_alcance, resolver_alcance

from .services_rma_logging import log_rma_error
from .services_rma_notificaciones import Destinatario


# =========================================================
# ESTADOS (canon)
# =========================================================

ESTADOS_TERMINALES: Final[frozenset[RmaEstado]] = frozenset({RmaEstado.COMPLETE, RmaEstado.REJECTED})

# acción -> (estado requerido, estado destino)
TRANSICIONES: Final[dict[str, tuple[RmaEstado, RmaEstado]]] = {
    "APROBAR": (RmaEstado.RMA_SUBMITTED, RmaEstado.AWAITING_GOODS),
    "RECHAZAR": (RmaEstado.RMA_SUBMITTED, RmaEstado.REJECTED),
    "EVALUAR": (RmaEstado.AWAITING_GOODS, RmaEstado.EVALUATING),
    "COTIZAR": (RmaEstado.EVALUATING, RmaEstado.PAYMENT),
    "PROCESAR": (RmaEstado.PAYMENT, RmaEstado.PROCESSING),
    "ENVIAR": (RmaEstado.PROCESSING, RmaEstado.IN_SHIPPING),
    "COMPLETAR": (RmaEstado.IN_SHIPPING, RmaEstado.COMPLETE),
}


def estado_de(rma: Rma) -> RmaEstado:
    return RmaEstado(getattr(rma.estado, "value", rma.estado))


# =========================================================
# TRACKING
# =========================================================

_B36: Final[str] = string.digits + string.ascii_uppercase


def _base36(n: int) -> str:
    if n <= 0:
        return "0"
    out = []
    while n:
        n, r = divmod(n, 36)
        out.append(_B36[r])
    return "".join(reversed(out))


def generar_numero_tracking(prefijo: str = "RMA", *, ahora_ms: int | None = None) -> str:
    """
    Código de referencia de envío: PREFIJO-<ms base36>-<sufijo aleatorio>.
    Es informativo (no es clave única).
    """
    ms = int(time.time() * 1000) if ahora_ms is None else int(ahora_ms)
    sufijo = "".join(secrets.choice(_B36) for _ in range(5))
    return f"{prefijo}-{_base36(ms)}-{sufijo}"


# =========================================================
# HELPERS DE DOMINIO
# =========================================================

def exigir_staff(actor: Actor) -> None:
    if not actor.es_staff:
        raise ForbiddenError("No tienes permisos para modificar el estado del RMA")


def obtener_rma_segura(
    db: Session,
    actor: Actor,
    rma_id: int,
    *,
    for_update: bool = False,
) -> Rma:
    """
    Devuelve el RMA si está dentro del alcance del actor; si no, NotFoundError.
    """
    filtro = resolver_alcance(actor, TipoEntidad.RMA)
    stmt = aplicar_alcance(select(Rma), filtro, Rma.id == int(rma_id))
    if for_update:
        stmt = stmt.with_for_update()

    rma = db.execute(stmt).scalar_one_or_none()
    if rma is None:
        raise NotFoundError("RMA no encontrado")
    return rma


def registrar_evento(
    db: Session,
    rma: Rma,
    *,
    accion: str,
    actor: str,
    estado_anterior: RmaEstado | None = None,
    estado_nuevo: RmaEstado | None = None,
    nota: str | None = None,
    metadata: dict[str, Any] | None = None,
) -> RmaEvento:
    evento = RmaEvento(
        rma_id=rma.id,
        accion=accion,
        estado_anterior=estado_anterior.value if estado_anterior else None,
        estado_nuevo=estado_nuevo.value if estado_nuevo else None,
        actor=actor,
        nota=nota,
        metadata_json=metadata or None,
    )
    db.add(evento)
    return evento


def destinatario_de(rma: Rma) -> Destinatario:
    usuario = rma.usuario
    return Destinatario(
        email=usuario.email,
        nombre=usuario.nombre,
        apellido=usuario.apellido,
    )


@contextmanager
def transaccion(db: Session, *, operacion: str, rma_id: int | None = None) -> Iterator[None]:
    """
    Commit al salir; ante error de BD hace rollback y traduce a error de dominio.
    """
    try:
        yield
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        log_rma_error(f"{operacion}_conflicto", rma_id=rma_id, error=exc)
        raise ConflictError("Conflicto de integridad al guardar el RMA") from exc
    except SQLAlchemyError as exc:
        db.rollback()
        log_rma_error(f"{operacion}_error_bd", rma_id=rma_id, error=exc)
        raise InternalError("Error interno al guardar el RMA") from exc
    except Exception:
        db.rollback()
        raise
