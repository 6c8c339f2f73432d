# core/services/services_usuarios.py
"""
Usuarios – rol y países asignados

Reglas de cambio de rol:
- Solo roles válidos (USER / ADMIN / SUPERADMIN)
- Nadie cambia su propio rol
- ADMIN: solo gestiona USER/ADMIN que compartan alguno de sus países,
  nunca asigna ni toca SUPERADMIN
- Mismo rol => no-op
"""

from __future__ import annotations

from typing import Iterable, List, Optional

from sqlalchemy import func, or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from core.errors import ForbiddenError, InternalError, NotFoundError, ValidationError
from core.logging_config import logger
from core.models import Pais, Usuario
from core.models.enums import RolUsuario, TipoEntidad
from core.services.services_access_scope import Actor, aplicar_alcance, resolver_alcance
from core.services.services_paises import resolver_paises


usuarios_logger = logger.getChild("usuarios")


def _rol(x) -> RolUsuario:
    raw = str(getattr(x, "value", x) or "").strip().upper()
    try:
        return RolUsuario(raw)
    except ValueError:
        raise ValidationError("Rol no válido. Los roles permitidos son: USER, ADMIN, SUPERADMIN")


def listar_usuarios(
    db: Session,
    actor: Actor,
    *,
    search: Optional[str] = None,
    rol: Optional[str] = None,
    pais_id: Optional[int] = None,
) -> List[Usuario]:
    filtro = resolver_alcance(actor, TipoEntidad.USER)

    conds = []
    term = (search or "").strip().lower()
    if term:
        like = f"%{term}%"
        conds.append(
            or_(
                func.lower(Usuario.nombre).like(like),
                func.lower(Usuario.apellido).like(like),
                func.lower(Usuario.email).like(like),
                func.lower(Usuario.empresa).like(like),
            )
        )
    if rol:
        conds.append(Usuario.rol == _rol(rol))
    if pais_id is not None:
        conds.append(Usuario.paises.any(Pais.id == int(pais_id)))

    stmt = (
        aplicar_alcance(select(Usuario), filtro, *conds)
        .options(selectinload(Usuario.paises))
        .order_by(Usuario.id.asc())
    )
    return list(db.execute(stmt).scalars().all())


def cambiar_rol(db: Session, target_id: int, nuevo_rol: str, solicitante: Actor) -> Usuario:
    rol_nuevo = _rol(nuevo_rol)
    rol_solicitante = _rol(solicitante.rol)

    if rol_solicitante == RolUsuario.USER:
        raise ForbiddenError("No tienes permisos para cambiar roles")

    if int(target_id) == int(solicitante.id):
        raise ForbiddenError("No puedes cambiar tu propio rol")

    target = db.get(Usuario, int(target_id))
    if target is None:
        raise NotFoundError("Usuario no encontrado")

    rol_actual = _rol(target.rol)

    if rol_solicitante == RolUsuario.ADMIN:
        paises_target = {int(p.id) for p in target.paises}
        if not solicitante.paises or not (paises_target & set(solicitante.paises)):
            raise ForbiddenError("No tienes permisos para modificar usuarios de otros países")
        if rol_actual == RolUsuario.SUPERADMIN:
            raise ForbiddenError("No tienes permisos para modificar un SUPERADMIN")
        if rol_nuevo == RolUsuario.SUPERADMIN:
            raise ForbiddenError("Solo un SUPERADMIN puede asignar el rol SUPERADMIN")

    if rol_actual == rol_nuevo:
        return target

    try:
        target.rol = rol_nuevo
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        usuarios_logger.exception("[USUARIOS] cambio de rol fallido target_id=%s", target_id)
        raise InternalError("Error interno al cambiar el rol") from exc

    db.refresh(target)
    usuarios_logger.info(
        "[USUARIOS] rol actualizado target_id=%s %s -> %s por=%s",
        target.id,
        rol_actual.value,
        rol_nuevo.value,
        solicitante.etiqueta,
    )
    return target


def asignar_paises(db: Session, target_id: int, pais_ids: Iterable[int], solicitante: Actor) -> Usuario:
    """
    Reemplaza los países asignados del usuario (solo SUPERADMIN).
    """
    if _rol(solicitante.rol) != RolUsuario.SUPERADMIN:
        raise ForbiddenError("Solo un SUPERADMIN puede asignar países")

    target = db.get(Usuario, int(target_id))
    if target is None:
        raise NotFoundError("Usuario no encontrado")

    paises = resolver_paises(db, pais_ids)
    ids = [int(p.id) for p in paises]

    try:
        target.paises = paises
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        usuarios_logger.exception("[USUARIOS] asignación de países fallida target_id=%s", target_id)
        raise InternalError("Error interno al asignar países") from exc

    db.refresh(target)
    usuarios_logger.info("[USUARIOS] países asignados target_id=%s paises=%s", target.id, ids)
    return target
