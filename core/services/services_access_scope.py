# core/services/services_access_scope.py
"""
Alcance de datos por rol y país – RMA Orbion

Reglas:
- USER: solo sus propios RMAs. No lista usuarios, marcas ni productos.
- ADMIN: solo registros de sus países asignados (sin países => bloqueado).
- SUPERADMIN: sin restricción.
- Rol desconocido => ForbiddenError.

El filtro resuelto se combina SIEMPRE con AND sobre los filtros del caller:
un país pedido fuera del alcance devuelve cero filas, nunca un error.
Funciones puras: no tocan la BD ni mutan el actor.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from sqlalchemy import and_, true

from core.errors import ForbiddenError
from core.logging_config import logger
from core.models import Marca, Pais, Producto, Rma, Usuario
from core.models.enums import RolUsuario, TipoEntidad


scope_logger = logger.getChild("scope")


# =========================================================
# ACTOR
# =========================================================

@dataclass(frozen=True)
class Actor:
    """Snapshot inmutable del principal autenticado."""

    id: int
    rol: str
    paises: frozenset[int] = field(default_factory=frozenset)
    email: str | None = None
    nombre: str | None = None
    apellido: str | None = None
    empresa: str | None = None

    @property
    def etiqueta(self) -> str:
        return self.email or f"usuario:{self.id}"

    @property
    def es_staff(self) -> bool:
        return _norm_role(self.rol) in (RolUsuario.ADMIN.value, RolUsuario.SUPERADMIN.value)


def actor_desde_usuario(usuario: Usuario) -> Actor:
    return Actor(
        id=int(usuario.id),
        rol=_norm_role(usuario.rol),
        paises=frozenset(int(p.id) for p in (usuario.paises or [])),
        email=usuario.email,
        nombre=usuario.nombre,
        apellido=usuario.apellido,
        empresa=usuario.empresa,
    )


def _norm_role(x: Any) -> str:
    raw = getattr(x, "value", x)
    return str(raw or "").strip().upper()


# =========================================================
# FILTRO
# =========================================================

@dataclass(frozen=True)
class AccessFilter:
    tipo: TipoEntidad
    owner_id: int | None = None
    country_ids: frozenset[int] | None = None
    roles_in: frozenset[str] | None = None

    @property
    def sin_restriccion(self) -> bool:
        return self.owner_id is None and self.country_ids is None and self.roles_in is None


_MENSAJES_USER_PROHIBIDO = {
    TipoEntidad.USER: "No tienes permisos para listar usuarios",
    TipoEntidad.BRAND: "No tienes permisos para acceder a las marcas",
    TipoEntidad.PRODUCT: "No tienes permisos para acceder a los productos",
}


def resolver_alcance(actor: Actor, tipo: TipoEntidad | str) -> AccessFilter:
    """
    Calcula el AccessFilter del actor para un tipo de entidad.
    Lanza ForbiddenError si el actor no puede consultar ese tipo.
    """
    tipo = TipoEntidad(tipo)
    rol = _norm_role(actor.rol)

    if rol == RolUsuario.USER.value:
        if tipo != TipoEntidad.RMA:
            raise ForbiddenError(_MENSAJES_USER_PROHIBIDO[tipo])
        return AccessFilter(tipo=tipo, owner_id=int(actor.id))

    if rol == RolUsuario.ADMIN.value:
        if not actor.paises:
            scope_logger.info("[SCOPE] admin sin países asignados actor_id=%s tipo=%s", actor.id, tipo.value)
            raise ForbiddenError("No tienes países asignados")

        roles = None
        if tipo == TipoEntidad.USER:
            roles = frozenset({RolUsuario.ADMIN.value, RolUsuario.USER.value})
        return AccessFilter(tipo=tipo, country_ids=frozenset(actor.paises), roles_in=roles)

    if rol == RolUsuario.SUPERADMIN.value:
        return AccessFilter(tipo=tipo)

    raise ForbiddenError("Rol no válido")


# =========================================================
# APLICACIÓN A QUERIES (SQLAlchemy)
# =========================================================

def condicion_alcance(filtro: AccessFilter):
    """
    Traduce el filtro a una expresión SQL. Sin restricción => TRUE.
    """
    conds = []

    if filtro.tipo == TipoEntidad.RMA:
        if filtro.owner_id is not None:
            conds.append(Rma.usuario_id == filtro.owner_id)
        if filtro.country_ids is not None:
            conds.append(Rma.pais_id.in_(sorted(filtro.country_ids)))

    elif filtro.tipo == TipoEntidad.USER:
        if filtro.country_ids is not None:
            conds.append(Usuario.paises.any(Pais.id.in_(sorted(filtro.country_ids))))
        if filtro.roles_in is not None:
            conds.append(Usuario.rol.in_([RolUsuario(r) for r in sorted(filtro.roles_in)]))
        if filtro.owner_id is not None:
            conds.append(Usuario.id == filtro.owner_id)

    elif filtro.tipo == TipoEntidad.BRAND:
        if filtro.country_ids is not None:
            conds.append(Marca.paises.any(Pais.id.in_(sorted(filtro.country_ids))))

    elif filtro.tipo == TipoEntidad.PRODUCT:
        if filtro.country_ids is not None:
            conds.append(Producto.paises.any(Pais.id.in_(sorted(filtro.country_ids))))

    if not conds:
        return true()
    return and_(*conds)


def aplicar_alcance(query, filtro: AccessFilter, *extra_conds):
    """
    Aplica alcance + filtros del caller (AND). Sirve para Query y Select.
    """
    conds = [condicion_alcance(filtro), *[c for c in extra_conds if c is not None]]
    return query.where(and_(*conds))


def actor_puede_usar_pais(actor: Actor, pais_id: int) -> bool:
    if _norm_role(actor.rol) == RolUsuario.SUPERADMIN.value:
        return True
    return int(pais_id) in actor.paises
