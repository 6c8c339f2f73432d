# modules/rma/services/services_rma_consultas.py
from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session, selectinload

from core.errors import ValidationError
from core.models import Rma, Usuario
from core.models.enums import RmaEstado, TipoEntidad
from core.models.time import ensure_utc_aware
from core.services.services_access_scope import Actor, aplicar_alcance, resolver_alcance

from .services_rma_core import obtener_rma_segura


DEFAULT_LIMIT = 10
MAX_LIMIT = 100

_SORT_COLUMNS = {
    "created_at": Rma.created_at,
    "updated_at": Rma.updated_at,
    "estado": Rma.estado,
    "id": Rma.id,
}


@dataclass
class Paginacion:
    page: int
    limit: int
    total: int

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total / self.limit) if self.limit else 0

    def as_dict(self) -> Dict[str, Any]:
        return {
            "page": self.page,
            "limit": self.limit,
            "total": self.total,
            "total_pages": self.total_pages,
            "has_next": self.page < self.total_pages,
            "has_prev": self.page > 1,
        }


def _estado(status: Optional[str]) -> Optional[RmaEstado]:
    if status is None or not str(status).strip():
        return None
    try:
        return RmaEstado(str(status).strip().upper())
    except ValueError:
        raise ValidationError(f"Estado de RMA inválido: '{status}'")


def _filtros_usuario(
    *,
    search: Optional[str] = None,
    status: Optional[str] = None,
    pais_id: Optional[int] = None,
    fecha_desde: Optional[datetime] = None,
    fecha_hasta: Optional[datetime] = None,
) -> List[Any]:
    conds: List[Any] = []

    term = (search or "").strip().lower()
    if term:
        like = f"%{term}%"
        owner_match = Rma.usuario.has(
            or_(
                func.lower(Usuario.nombre).like(like),
                func.lower(Usuario.apellido).like(like),
                func.lower(Usuario.email).like(like),
            )
        )
        conds.append(
            or_(
                func.lower(Rma.nombre_empresa).like(like),
                func.lower(Rma.direccion).like(like),
                func.lower(Rma.numero_tracking).like(like),
                owner_match,
            )
        )

    estado = _estado(status)
    if estado is not None:
        conds.append(Rma.estado == estado)

    if pais_id is not None:
        conds.append(Rma.pais_id == int(pais_id))
    # created_at se guarda en UTC; un offset distinto se convierte antes de comparar
    if fecha_desde is not None:
        conds.append(Rma.created_at >= ensure_utc_aware(fecha_desde))
    if fecha_hasta is not None:
        conds.append(Rma.created_at <= ensure_utc_aware(fecha_hasta))

    return conds


def listar_rmas(
    db: Session,
    actor: Actor,
    *,
    page: int = 1,
    limit: int = DEFAULT_LIMIT,
    search: Optional[str] = None,
    status: Optional[str] = None,
    pais_id: Optional[int] = None,
    fecha_desde: Optional[datetime] = None,
    fecha_hasta: Optional[datetime] = None,
    sort_by: str = "created_at",
    sort_order: str = "desc",
) -> Dict[str, Any]:
    """
    Listado paginado con alcance del actor AND filtros del caller.
    Un pais_id fuera del alcance devuelve cero filas.
    """
    filtro = resolver_alcance(actor, TipoEntidad.RMA)
    conds = _filtros_usuario(
        search=search,
        status=status,
        pais_id=pais_id,
        fecha_desde=fecha_desde,
        fecha_hasta=fecha_hasta,
    )

    page = max(1, int(page or 1))
    limit = min(MAX_LIMIT, max(1, int(limit or DEFAULT_LIMIT)))

    total = db.execute(aplicar_alcance(select(func.count(Rma.id)), filtro, *conds)).scalar_one()

    col = _SORT_COLUMNS.get(sort_by, Rma.created_at)
    orden = col.asc() if str(sort_order).lower() == "asc" else col.desc()

    stmt = (
        aplicar_alcance(select(Rma), filtro, *conds)
        .options(selectinload(Rma.usuario), selectinload(Rma.pais), selectinload(Rma.productos))
        .order_by(orden, Rma.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    )
    rmas = list(db.execute(stmt).scalars().all())

    return {
        "rmas": rmas,
        "pagination": Paginacion(page=page, limit=limit, total=int(total)).as_dict(),
    }


def listar_rmas_usuario(
    db: Session,
    actor: Actor,
    *,
    status: Optional[str] = None,
    fecha_desde: Optional[datetime] = None,
    fecha_hasta: Optional[datetime] = None,
) -> List[Rma]:
    """RMAs propios del actor (cualquier rol)."""
    conds = [Rma.usuario_id == int(actor.id)]
    conds += _filtros_usuario(status=status, fecha_desde=fecha_desde, fecha_hasta=fecha_hasta)

    stmt = (
        select(Rma)
        .where(*conds)
        .options(selectinload(Rma.pais), selectinload(Rma.productos))
        .order_by(Rma.created_at.desc(), Rma.id.desc())
    )
    return list(db.execute(stmt).scalars().all())


def obtener_rma_detalle(db: Session, actor: Actor, rma_id: int) -> Rma:
    rma = obtener_rma_segura(db, actor, rma_id)
    # fuerza carga de relaciones usadas por el detalle
    _ = rma.usuario, rma.pais, rma.eventos
    for linea in rma.productos:
        _ = linea.producto
    return rma


def contar_por_estado(db: Session, actor: Actor) -> Dict[str, int]:
    filtro = resolver_alcance(actor, TipoEntidad.RMA)
    stmt = aplicar_alcance(select(Rma.estado, func.count(Rma.id)), filtro).group_by(Rma.estado)
    out = {e.value: 0 for e in RmaEstado}
    for estado, n in db.execute(stmt).all():
        out[getattr(estado, "value", str(estado))] = int(n)
    return out


__all__ = [
    "listar_rmas",
    "listar_rmas_usuario",
    "obtener_rma_detalle",
    "contar_por_estado",
    "Paginacion",
]
