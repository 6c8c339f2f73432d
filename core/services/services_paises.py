# core/services/services_paises.py
"""
Países

- Nombre único (case-insensitive), también al renombrar
- No se elimina mientras existan usuarios, marcas, productos o RMAs asociados
"""

from __future__ import annotations

from typing import Iterable, List, Optional

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from core.errors import ConflictError, InternalError, NotFoundError, ValidationError
from core.logging_config import logger
from core.models import Pais, Rma, marca_paises, producto_paises, usuario_paises


paises_logger = logger.getChild("paises")


def listar_paises(db: Session) -> List[Pais]:
    return list(db.execute(select(Pais).order_by(func.lower(Pais.nombre).asc())).scalars().all())


def obtener_pais(db: Session, pais_id: int) -> Pais:
    pais = db.get(Pais, int(pais_id))
    if pais is None:
        raise NotFoundError("País no encontrado")
    return pais


def resolver_paises(db: Session, pais_ids: Iterable[int]) -> List[Pais]:
    """
    Carga los países pedidos (sin duplicados). Falla si alguno no existe.
    """
    ids = sorted({int(x) for x in (pais_ids or [])})
    if not ids:
        return []
    paises = list(db.execute(select(Pais).where(Pais.id.in_(ids))).scalars().all())
    if len(paises) != len(ids):
        raise NotFoundError("Uno o más países no existen")
    return paises


def _nombre_valido(nombre: str) -> str:
    nombre = (nombre or "").strip()
    if not nombre:
        raise ValidationError("El nombre del país es obligatorio")
    return nombre


def _nombre_en_uso(db: Session, nombre: str, excluir_id: Optional[int] = None) -> bool:
    stmt = select(Pais.id).where(func.lower(Pais.nombre) == nombre.lower())
    if excluir_id is not None:
        stmt = stmt.where(Pais.id != int(excluir_id))
    return db.execute(stmt).first() is not None


def crear_pais(db: Session, nombre: str) -> Pais:
    nombre = _nombre_valido(nombre)
    if _nombre_en_uso(db, nombre):
        raise ConflictError("Ya existe un país con ese nombre")

    pais = Pais(nombre=nombre)
    try:
        db.add(pais)
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise ConflictError("Ya existe un país con ese nombre") from exc
    except SQLAlchemyError as exc:
        db.rollback()
        paises_logger.exception("[PAISES] creación fallida nombre=%s", nombre)
        raise InternalError("Error interno al crear el país") from exc

    db.refresh(pais)
    paises_logger.info("[PAISES] creado id=%s nombre=%s", pais.id, pais.nombre)
    return pais


def actualizar_pais(db: Session, pais_id: int, nombre: str) -> Pais:
    pais = obtener_pais(db, pais_id)
    nombre = _nombre_valido(nombre)
    if nombre == pais.nombre:
        return pais
    if _nombre_en_uso(db, nombre, excluir_id=pais.id):
        raise ConflictError(f"Ya existe otro país con el nombre {nombre}")

    anterior = pais.nombre
    try:
        pais.nombre = nombre
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise ConflictError(f"Ya existe otro país con el nombre {nombre}") from exc
    except SQLAlchemyError as exc:
        db.rollback()
        paises_logger.exception("[PAISES] actualización fallida id=%s", pais_id)
        raise InternalError("Error interno al actualizar el país") from exc

    db.refresh(pais)
    paises_logger.info("[PAISES] renombrado id=%s %s -> %s", pais.id, anterior, pais.nombre)
    return pais


def _contar(db: Session, tabla_col, pais_id: int) -> int:
    return int(db.execute(select(func.count()).where(tabla_col == pais_id)).scalar_one())


def eliminar_pais(db: Session, pais_id: int) -> None:
    pais = db.get(Pais, int(pais_id))
    if pais is None:
        raise NotFoundError("País no encontrado")

    dependencias = {
        "usuarios": _contar(db, usuario_paises.c.pais_id, pais.id),
        "marcas": _contar(db, marca_paises.c.pais_id, pais.id),
        "productos": _contar(db, producto_paises.c.pais_id, pais.id),
        "rmas": _contar(db, Rma.pais_id, pais.id),
    }
    en_uso = {k: v for k, v in dependencias.items() if v}
    if en_uso:
        detalle = ", ".join(f"{v} {k}" for k, v in en_uso.items())
        raise ConflictError(f"No se puede eliminar el país porque tiene dependencias: {detalle}")

    try:
        db.delete(pais)
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        paises_logger.exception("[PAISES] eliminación fallida id=%s", pais_id)
        raise InternalError("Error interno al eliminar el país") from exc

    paises_logger.info("[PAISES] eliminado id=%s", pais_id)
