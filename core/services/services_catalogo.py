# core/services/services_catalogo.py
"""
Catálogo – marcas, productos, modelos

✔ Listados filtrados por alcance (rol + países)
✔ Marcas / productos: alta, edición y baja solo SUPERADMIN
✔ Modelos: alta, edición y baja ADMIN / SUPERADMIN; listado para cualquier autenticado
✔ Nombres únicos sin distinguir mayúsculas (marca global; producto y modelo por marca)
✔ Bajas bloqueadas mientras existan dependientes (productos / RMAs)
"""

from __future__ import annotations

from typing import Iterable, List, Optional

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from core.errors import ConflictError, ForbiddenError, InternalError, NotFoundError, ValidationError
from core.logging_config import logger
from core.models import Marca, Modelo, Pais, Producto, RmaProducto
from core.models.enums import RolUsuario, TipoEntidad
from core.services.services_access_scope import Actor, aplicar_alcance, resolver_alcance
from core.services.services_paises import resolver_paises


catalogo_logger = logger.getChild("catalogo")


# =========================================================
# HELPERS
# =========================================================

def _rol(actor: Actor) -> str:
    return str(getattr(actor.rol, "value", actor.rol) or "").strip().upper()


def _exigir_superadmin(actor: Actor, accion: str) -> None:
    if _rol(actor) != RolUsuario.SUPERADMIN.value:
        raise ForbiddenError(f"Solo un SUPERADMIN puede {accion}")


def _exigir_staff(actor: Actor, accion: str) -> None:
    if _rol(actor) not in (RolUsuario.ADMIN.value, RolUsuario.SUPERADMIN.value):
        raise ForbiddenError(f"No tienes permisos para {accion}")


def _nombre(valor: Optional[str], entidad: str) -> str:
    nombre = (valor or "").strip()
    if not nombre:
        raise ValidationError(f"El nombre {entidad} es obligatorio")
    return nombre


def _existe(db: Session, stmt) -> bool:
    return db.execute(stmt.limit(1)).first() is not None


def _guardar(db: Session, obj, *, operacion: str, conflicto: str):
    """
    Commit + refresh. IntegrityError => Conflict, resto de errores de BD => Internal.
    """
    try:
        db.add(obj)
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise ConflictError(conflicto) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        catalogo_logger.exception("[CATALOGO] %s fallida", operacion)
        raise InternalError(f"Error interno al {operacion}") from exc

    db.refresh(obj)
    return obj


def _borrar(db: Session, obj, *, operacion: str) -> None:
    try:
        db.delete(obj)
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        catalogo_logger.exception("[CATALOGO] %s fallida", operacion)
        raise InternalError(f"Error interno al {operacion}") from exc


# =========================================================
# MARCAS
# =========================================================

def listar_marcas(db: Session, actor: Actor, *, pais_id: Optional[int] = None) -> List[Marca]:
    filtro = resolver_alcance(actor, TipoEntidad.BRAND)
    extra = Marca.paises.any(Pais.id == int(pais_id)) if pais_id is not None else None

    stmt = (
        aplicar_alcance(select(Marca), filtro, extra)
        .options(selectinload(Marca.paises))
        .order_by(func.lower(Marca.nombre).asc())
    )
    return list(db.execute(stmt).scalars().all())


def _marca(db: Session, marca_id: int) -> Marca:
    marca = db.get(Marca, int(marca_id))
    if marca is None:
        raise NotFoundError("Marca no encontrada")
    return marca


def _marca_duplicada(db: Session, nombre: str, excluir_id: Optional[int] = None) -> bool:
    stmt = select(Marca.id).where(func.lower(Marca.nombre) == nombre.lower())
    if excluir_id is not None:
        stmt = stmt.where(Marca.id != int(excluir_id))
    return _existe(db, stmt)


def crear_marca(db: Session, actor: Actor, nombre: str, pais_ids: Iterable[int] = ()) -> Marca:
    _exigir_superadmin(actor, "crear marcas")
    nombre = _nombre(nombre, "de la marca")
    if _marca_duplicada(db, nombre):
        raise ConflictError("Ya existe una marca con ese nombre")

    marca = Marca(nombre=nombre, paises=resolver_paises(db, pais_ids))
    _guardar(db, marca, operacion="crear la marca", conflicto="Ya existe una marca con ese nombre")
    catalogo_logger.info("[CATALOGO] marca creada id=%s nombre=%s por=%s", marca.id, marca.nombre, actor.etiqueta)
    return marca


def actualizar_marca(
    db: Session,
    actor: Actor,
    marca_id: int,
    *,
    nombre: Optional[str] = None,
    pais_ids: Optional[Iterable[int]] = None,
) -> Marca:
    """
    Cambios parciales: None deja el campo como está; pais_ids reemplaza el conjunto completo.
    """
    _exigir_superadmin(actor, "editar marcas")
    marca = _marca(db, marca_id)

    if nombre is not None:
        nombre = _nombre(nombre, "de la marca")
        if _marca_duplicada(db, nombre, excluir_id=marca.id):
            raise ConflictError("Ya existe una marca con ese nombre")
        marca.nombre = nombre
    if pais_ids is not None:
        marca.paises = resolver_paises(db, pais_ids)

    _guardar(db, marca, operacion="actualizar la marca", conflicto="Ya existe una marca con ese nombre")
    catalogo_logger.info("[CATALOGO] marca actualizada id=%s por=%s", marca.id, actor.etiqueta)
    return marca


def eliminar_marca(db: Session, actor: Actor, marca_id: int) -> None:
    _exigir_superadmin(actor, "eliminar marcas")
    marca = _marca(db, marca_id)

    if _existe(db, select(Producto.id).where(Producto.marca_id == marca.id)):
        raise ConflictError("No se puede eliminar la marca porque tiene productos asociados")

    _borrar(db, marca, operacion="eliminar la marca")
    catalogo_logger.info("[CATALOGO] marca eliminada id=%s por=%s", marca_id, actor.etiqueta)


# =========================================================
# PRODUCTOS
# =========================================================

def listar_productos(
    db: Session,
    actor: Actor,
    *,
    pais_id: Optional[int] = None,
    marca_id: Optional[int] = None,
    search: Optional[str] = None,
) -> List[Producto]:
    filtro = resolver_alcance(actor, TipoEntidad.PRODUCT)

    conds = []
    if pais_id is not None:
        conds.append(Producto.paises.any(Pais.id == int(pais_id)))
    if marca_id is not None:
        conds.append(Producto.marca_id == int(marca_id))
    term = (search or "").strip().lower()
    if term:
        conds.append(func.lower(Producto.nombre).like(f"%{term}%"))

    stmt = (
        aplicar_alcance(select(Producto), filtro, *conds)
        .options(selectinload(Producto.marca), selectinload(Producto.paises))
        .order_by(func.lower(Producto.nombre).asc(), Producto.id.asc())
    )
    return list(db.execute(stmt).scalars().all())


def _producto(db: Session, producto_id: int) -> Producto:
    producto = db.get(Producto, int(producto_id))
    if producto is None:
        raise NotFoundError("Producto no encontrado")
    return producto


def _marca_destino(db: Session, marca_id: int) -> Marca:
    marca = db.get(Marca, int(marca_id))
    if marca is None:
        raise ValidationError("La marca seleccionada no existe")
    return marca


def _producto_duplicado(db: Session, nombre: str, marca_id: int, excluir_id: Optional[int] = None) -> bool:
    stmt = select(Producto.id).where(
        func.lower(Producto.nombre) == nombre.lower(),
        Producto.marca_id == int(marca_id),
    )
    if excluir_id is not None:
        stmt = stmt.where(Producto.id != int(excluir_id))
    return _existe(db, stmt)


def crear_producto(
    db: Session,
    actor: Actor,
    nombre: str,
    marca_id: int,
    pais_ids: Iterable[int] = (),
) -> Producto:
    _exigir_superadmin(actor, "crear productos")
    nombre = _nombre(nombre, "del producto")
    marca = _marca_destino(db, marca_id)
    if _producto_duplicado(db, nombre, marca.id):
        raise ConflictError("Ya existe un producto con ese nombre para esta marca")

    producto = Producto(nombre=nombre, marca=marca, paises=resolver_paises(db, pais_ids))
    _guardar(
        db,
        producto,
        operacion="crear el producto",
        conflicto="Ya existe un producto con ese nombre para esta marca",
    )
    catalogo_logger.info(
        "[CATALOGO] producto creado id=%s nombre=%s marca_id=%s por=%s",
        producto.id,
        producto.nombre,
        producto.marca_id,
        actor.etiqueta,
    )
    return producto


def actualizar_producto(
    db: Session,
    actor: Actor,
    producto_id: int,
    *,
    nombre: Optional[str] = None,
    marca_id: Optional[int] = None,
    pais_ids: Optional[Iterable[int]] = None,
) -> Producto:
    _exigir_superadmin(actor, "editar productos")
    producto = _producto(db, producto_id)

    marca = _marca_destino(db, marca_id) if marca_id is not None else producto.marca
    nuevo_nombre = _nombre(nombre, "del producto") if nombre is not None else producto.nombre
    if _producto_duplicado(db, nuevo_nombre, marca.id, excluir_id=producto.id):
        raise ConflictError("Ya existe un producto con ese nombre para esta marca")

    producto.nombre = nuevo_nombre
    producto.marca = marca
    if pais_ids is not None:
        producto.paises = resolver_paises(db, pais_ids)

    _guardar(
        db,
        producto,
        operacion="actualizar el producto",
        conflicto="Ya existe un producto con ese nombre para esta marca",
    )
    catalogo_logger.info("[CATALOGO] producto actualizado id=%s por=%s", producto.id, actor.etiqueta)
    return producto


def eliminar_producto(db: Session, actor: Actor, producto_id: int) -> None:
    _exigir_superadmin(actor, "eliminar productos")
    producto = _producto(db, producto_id)

    if _existe(db, select(RmaProducto.id).where(RmaProducto.producto_id == producto.id)):
        raise ConflictError("No se puede eliminar el producto porque tiene RMAs asociados")

    _borrar(db, producto, operacion="eliminar el producto")
    catalogo_logger.info("[CATALOGO] producto eliminado id=%s por=%s", producto_id, actor.etiqueta)


# =========================================================
# MODELOS
# =========================================================

def listar_modelos(db: Session, *, marca_id: Optional[int] = None, search: Optional[str] = None) -> List[Modelo]:
    stmt = select(Modelo).options(selectinload(Modelo.marca))
    if marca_id is not None:
        _marca_destino(db, marca_id)
        stmt = stmt.where(Modelo.marca_id == int(marca_id))
    term = (search or "").strip().lower()
    if term:
        stmt = stmt.where(func.lower(Modelo.nombre).like(f"%{term}%"))

    stmt = stmt.join(Modelo.marca).order_by(func.lower(Marca.nombre).asc(), func.lower(Modelo.nombre).asc())
    return list(db.execute(stmt).scalars().all())


def _modelo(db: Session, modelo_id: int) -> Modelo:
    modelo = db.get(Modelo, int(modelo_id))
    if modelo is None:
        raise NotFoundError("Modelo no encontrado")
    return modelo


def _modelo_duplicado(db: Session, nombre: str, marca_id: int, excluir_id: Optional[int] = None) -> bool:
    stmt = select(Modelo.id).where(
        func.lower(Modelo.nombre) == nombre.lower(),
        Modelo.marca_id == int(marca_id),
    )
    if excluir_id is not None:
        stmt = stmt.where(Modelo.id != int(excluir_id))
    return _existe(db, stmt)


def crear_modelo(db: Session, actor: Actor, marca_id: int, nombre: str) -> Modelo:
    _exigir_staff(actor, "crear modelos")
    nombre = _nombre(nombre, "del modelo")
    marca = _marca_destino(db, marca_id)
    if _modelo_duplicado(db, nombre, marca.id):
        raise ConflictError("Ya existe un modelo con ese nombre para esta marca")

    modelo = Modelo(nombre=nombre, marca=marca)
    _guardar(db, modelo, operacion="crear el modelo", conflicto="Ya existe un modelo con ese nombre para esta marca")
    catalogo_logger.info(
        "[CATALOGO] modelo creado id=%s nombre=%s marca_id=%s por=%s",
        modelo.id,
        modelo.nombre,
        modelo.marca_id,
        actor.etiqueta,
    )
    return modelo


def actualizar_modelo(
    db: Session,
    actor: Actor,
    modelo_id: int,
    *,
    nombre: Optional[str] = None,
    marca_id: Optional[int] = None,
) -> Modelo:
    _exigir_staff(actor, "editar modelos")
    modelo = _modelo(db, modelo_id)

    marca = _marca_destino(db, marca_id) if marca_id is not None else modelo.marca
    nuevo_nombre = _nombre(nombre, "del modelo") if nombre is not None else modelo.nombre
    if _modelo_duplicado(db, nuevo_nombre, marca.id, excluir_id=modelo.id):
        raise ConflictError("Ya existe un modelo con ese nombre para esta marca")

    modelo.nombre = nuevo_nombre
    modelo.marca = marca
    _guardar(db, modelo, operacion="actualizar el modelo", conflicto="Ya existe un modelo con ese nombre para esta marca")
    catalogo_logger.info("[CATALOGO] modelo actualizado id=%s por=%s", modelo.id, actor.etiqueta)
    return modelo


def eliminar_modelo(db: Session, actor: Actor, modelo_id: int) -> None:
    _exigir_staff(actor, "eliminar modelos")
    modelo = _modelo(db, modelo_id)
    _borrar(db, modelo, operacion="eliminar el modelo")
    catalogo_logger.info("[CATALOGO] modelo eliminado id=%s por=%s", modelo_id, actor.etiqueta)
