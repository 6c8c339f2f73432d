# core/routes/routes_catalogo.py
"""
Datos de referencia – usuarios, marcas, productos, países

✔ Listados filtrados por alcance (rol + países)
✔ Cambio de rol / asignación de países
✔ Marcas / productos / países: alta, edición y baja (SUPERADMIN)
✔ Modelos por marca: listado para autenticados, cambios ADMIN / SUPERADMIN
"""

from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from core.database import get_db
from core.errors import DomainError
from core.logging_config import logger
from core.models.enums import RolUsuario
from core.security import require_actor_dep, require_roles_dep, require_superadmin_dep
from core.services.services_access_scope import Actor
from core.services.services_catalogo import (
    actualizar_marca,
    actualizar_modelo,
    actualizar_producto,
    crear_marca,
    crear_modelo,
    crear_producto,
    eliminar_marca,
    eliminar_modelo,
    eliminar_producto,
    listar_marcas,
    listar_modelos,
    listar_productos,
)
from core.services.services_paises import (
    actualizar_pais,
    crear_pais,
    eliminar_pais,
    listar_paises,
    obtener_pais,
)
from core.services.services_usuarios import asignar_paises, cambiar_rol, listar_usuarios

from core.routes.http_common import http_error

router = APIRouter(tags=["catalogo"])

require_staff_dep = require_roles_dep(RolUsuario.ADMIN, RolUsuario.SUPERADMIN)


class CambiarRolIn(BaseModel):
    rol: str


class AsignarPaisesIn(BaseModel):
    pais_ids: List[int] = Field(default_factory=list)


class CrearPaisIn(BaseModel):
    nombre: str


class MarcaIn(BaseModel):
    nombre: str
    pais_ids: List[int] = Field(default_factory=list)


class MarcaUpdateIn(BaseModel):
    nombre: Optional[str] = None
    pais_ids: Optional[List[int]] = None


class ProductoIn(BaseModel):
    nombre: str
    marca_id: int
    pais_ids: List[int] = Field(default_factory=list)


class ProductoUpdateIn(BaseModel):
    nombre: Optional[str] = None
    marca_id: Optional[int] = None
    pais_ids: Optional[List[int]] = None


class ModeloIn(BaseModel):
    nombre: str
    marca_id: int


class ModeloUpdateIn(BaseModel):
    nombre: Optional[str] = None
    marca_id: Optional[int] = None


def _usuario_to_dict(u) -> dict:
    return {
        "id": u.id,
        "email": u.email,
        "nombre": u.nombre,
        "apellido": u.apellido,
        "empresa": u.empresa,
        "rol": str(getattr(u.rol, "value", u.rol)),
        "activo": bool(u.activo),
        "paises": [{"id": p.id, "nombre": p.nombre} for p in u.paises],
    }


def _fallo(e: DomainError, actor: Actor | None = None) -> HTTPException:
    logger.info("[CATALOGO] %s %s por=%s", e.code, e.message, actor.etiqueta if actor else None)
    return http_error(e)


# ============================
#   USUARIOS
# ============================

@router.get("/usuarios")
def usuarios_listar(
    search: Optional[str] = None,
    rol: Optional[str] = None,
    pais_id: Optional[int] = None,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_actor_dep),
):
    try:
        usuarios = listar_usuarios(db, actor, search=search, rol=rol, pais_id=pais_id)
    except DomainError as e:
        raise _fallo(e, actor)
    return {"usuarios": [_usuario_to_dict(u) for u in usuarios]}


@router.patch("/usuarios/{usuario_id}/rol")
def usuarios_cambiar_rol(
    usuario_id: int,
    body: CambiarRolIn,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_actor_dep),
):
    try:
        u = cambiar_rol(db, usuario_id, body.rol, actor)
    except DomainError as e:
        raise _fallo(e, actor)
    return _usuario_to_dict(u)


@router.put("/usuarios/{usuario_id}/paises")
def usuarios_asignar_paises(
    usuario_id: int,
    body: AsignarPaisesIn,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_actor_dep),
):
    try:
        u = asignar_paises(db, usuario_id, body.pais_ids, actor)
    except DomainError as e:
        raise _fallo(e, actor)
    return _usuario_to_dict(u)


# ============================
#   MARCAS
# ============================

def _marca_to_dict(m) -> dict:
    return {"id": m.id, "nombre": m.nombre, "paises": [p.id for p in m.paises]}


def _producto_to_dict(p) -> dict:
    return {
        "id": p.id,
        "nombre": p.nombre,
        "marca_id": p.marca_id,
        "marca": p.marca.nombre if p.marca else None,
        "paises": [x.id for x in p.paises],
    }


def _modelo_to_dict(m) -> dict:
    return {
        "id": m.id,
        "nombre": m.nombre,
        "marca_id": m.marca_id,
        "marca": m.marca.nombre if m.marca else None,
    }


@router.get("/marcas")
def marcas_listar(
    pais_id: Optional[int] = None,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_actor_dep),
):
    try:
        marcas = listar_marcas(db, actor, pais_id=pais_id)
    except DomainError as e:
        raise _fallo(e, actor)
    return {"marcas": [_marca_to_dict(m) for m in marcas]}


@router.post("/marcas", status_code=201)
def marcas_crear(
    body: MarcaIn,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_superadmin_dep),
):
    try:
        marca = crear_marca(db, actor, body.nombre, body.pais_ids)
    except DomainError as e:
        raise _fallo(e, actor)
    return _marca_to_dict(marca)


@router.put("/marcas/{marca_id}")
def marcas_actualizar(
    marca_id: int,
    body: MarcaUpdateIn,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_superadmin_dep),
):
    try:
        marca = actualizar_marca(db, actor, marca_id, nombre=body.nombre, pais_ids=body.pais_ids)
    except DomainError as e:
        raise _fallo(e, actor)
    return _marca_to_dict(marca)


@router.delete("/marcas/{marca_id}", status_code=204)
def marcas_eliminar(
    marca_id: int,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_superadmin_dep),
):
    try:
        eliminar_marca(db, actor, marca_id)
    except DomainError as e:
        raise _fallo(e, actor)


# ============================
#   PRODUCTOS
# ============================

@router.get("/productos")
def productos_listar(
    pais_id: Optional[int] = None,
    marca_id: Optional[int] = None,
    search: Optional[str] = None,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_actor_dep),
):
    try:
        productos = listar_productos(db, actor, pais_id=pais_id, marca_id=marca_id, search=search)
    except DomainError as e:
        raise _fallo(e, actor)
    return {"productos": [_producto_to_dict(p) for p in productos]}


@router.post("/productos", status_code=201)
def productos_crear(
    body: ProductoIn,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_superadmin_dep),
):
    try:
        producto = crear_producto(db, actor, body.nombre, body.marca_id, body.pais_ids)
    except DomainError as e:
        raise _fallo(e, actor)
    return _producto_to_dict(producto)


@router.put("/productos/{producto_id}")
def productos_actualizar(
    producto_id: int,
    body: ProductoUpdateIn,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_superadmin_dep),
):
    try:
        producto = actualizar_producto(
            db,
            actor,
            producto_id,
            nombre=body.nombre,
            marca_id=body.marca_id,
            pais_ids=body.pais_ids,
        )
    except DomainError as e:
        raise _fallo(e, actor)
    return _producto_to_dict(producto)


@router.delete("/productos/{producto_id}", status_code=204)
def productos_eliminar(
    producto_id: int,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_superadmin_dep),
):
    try:
        eliminar_producto(db, actor, producto_id)
    except DomainError as e:
        raise _fallo(e, actor)


# ============================
#   MODELOS
# ============================

@router.get("/modelos")
def modelos_listar(
    marca_id: Optional[int] = None,
    search: Optional[str] = None,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_actor_dep),
):
    try:
        modelos = listar_modelos(db, marca_id=marca_id, search=search)
    except DomainError as e:
        raise _fallo(e, actor)
    return {"modelos": [_modelo_to_dict(m) for m in modelos]}


@router.post("/modelos", status_code=201)
def modelos_crear(
    body: ModeloIn,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_staff_dep),
):
    try:
        modelo = crear_modelo(db, actor, body.marca_id, body.nombre)
    except DomainError as e:
        raise _fallo(e, actor)
    return _modelo_to_dict(modelo)


@router.put("/modelos/{modelo_id}")
def modelos_actualizar(
    modelo_id: int,
    body: ModeloUpdateIn,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_staff_dep),
):
    try:
        modelo = actualizar_modelo(db, actor, modelo_id, nombre=body.nombre, marca_id=body.marca_id)
    except DomainError as e:
        raise _fallo(e, actor)
    return _modelo_to_dict(modelo)


@router.delete("/modelos/{modelo_id}", status_code=204)
def modelos_eliminar(
    modelo_id: int,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_staff_dep),
):
    try:
        eliminar_modelo(db, actor, modelo_id)
    except DomainError as e:
        raise _fallo(e, actor)


# ============================
#   PAÍSES
# ============================

@router.get("/paises")
def paises_listar(
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_actor_dep),
):
    return {"paises": [{"id": p.id, "nombre": p.nombre} for p in listar_paises(db)]}


@router.get("/paises/{pais_id}")
def paises_obtener(
    pais_id: int,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_actor_dep),
):
    try:
        pais = obtener_pais(db, pais_id)
    except DomainError as e:
        raise _fallo(e, actor)
    return {"id": pais.id, "nombre": pais.nombre}


@router.post("/paises", status_code=201)
def paises_crear(
    body: CrearPaisIn,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_superadmin_dep),
):
    try:
        pais = crear_pais(db, body.nombre)
    except DomainError as e:
        raise _fallo(e, actor)
    return {"id": pais.id, "nombre": pais.nombre}


@router.put("/paises/{pais_id}")
def paises_actualizar(
    pais_id: int,
    body: CrearPaisIn,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_superadmin_dep),
):
    try:
        pais = actualizar_pais(db, pais_id, body.nombre)
    except DomainError as e:
        raise _fallo(e, actor)
    return {"id": pais.id, "nombre": pais.nombre}


@router.delete("/paises/{pais_id}", status_code=204)
def paises_eliminar(
    pais_id: int,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_superadmin_dep),
):
    try:
        eliminar_pais(db, pais_id)
    except DomainError as e:
        raise _fallo(e, actor)
