# core/models/__init__.py
"""
Modelos ORM – RMA Orbion

✔ Alcance por país (usuarios, marcas, productos, RMAs)
✔ Estados con Enum controlado
✔ Timestamps UTC timezone-aware
✔ Historial append-only por RMA
"""

from __future__ import annotations

from sqlalchemy import (
    Column,
    Integer,
    String,
    DateTime,
    ForeignKey,
    Text,
    Table,
    JSON,
)
from sqlalchemy.orm import relationship
from sqlalchemy.types import Enum as SAEnum

from core.database import Base
from core.models.enums import RolUsuario, RmaEstado
from core.models.time import utcnow


# =========================================================
# ASOCIACIONES POR PAÍS
# =========================================================

usuario_paises = Table(
    "usuario_paises",
    Base.metadata,
    Column("usuario_id", Integer, ForeignKey("usuarios.id"), primary_key=True),
    Column("pais_id", Integer, ForeignKey("paises.id"), primary_key=True),
)

marca_paises = Table(
    "marca_paises",
    Base.metadata,
    Column("marca_id", Integer, ForeignKey("marcas.id"), primary_key=True),
    Column("pais_id", Integer, ForeignKey("paises.id"), primary_key=True),
)

producto_paises = Table(
    "producto_paises",
    Base.metadata,
    Column("producto_id", Integer, ForeignKey("productos.id"), primary_key=True),
    Column("pais_id", Integer, ForeignKey("paises.id"), primary_key=True),
)


# =========================================================
# CORE
# =========================================================

class Pais(Base):
    __tablename__ = "paises"

    id = Column(Integer, primary_key=True)
    nombre = Column(String, unique=True, nullable=False, index=True)

    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    usuarios = relationship("Usuario", secondary=usuario_paises, back_populates="paises")
    marcas = relationship("Marca", secondary=marca_paises, back_populates="paises")
    productos = relationship("Producto", secondary=producto_paises, back_populates="paises")
    rmas = relationship("Rma", back_populates="pais")


class Usuario(Base):
    __tablename__ = "usuarios"

    id = Column(Integer, primary_key=True)

    email = Column(String, unique=True, nullable=False, index=True)
    nombre = Column(String, nullable=False)
    apellido = Column(String, nullable=True)
    empresa = Column(String, nullable=True)
    telefono = Column(String, nullable=True)

    rol = Column(SAEnum(RolUsuario, name="rol_usuario"), default=RolUsuario.USER, nullable=False, index=True)
    activo = Column(Integer, default=1, nullable=False)

    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

    paises = relationship("Pais", secondary=usuario_paises, back_populates="usuarios")
    rmas = relationship("Rma", back_populates="usuario")


class Marca(Base):
    __tablename__ = "marcas"

    id = Column(Integer, primary_key=True)
    nombre = Column(String, unique=True, nullable=False, index=True)

    paises = relationship("Pais", secondary=marca_paises, back_populates="marcas")
    productos = relationship("Producto", back_populates="marca")
    modelos = relationship("Modelo", back_populates="marca", cascade="all, delete-orphan")


class Producto(Base):
    __tablename__ = "productos"

    id = Column(Integer, primary_key=True)
    marca_id = Column(Integer, ForeignKey("marcas.id"), nullable=False, index=True)
    nombre = Column(String, nullable=False, index=True)

    marca = relationship("Marca", back_populates="productos")
    paises = relationship("Pais", secondary=producto_paises, back_populates="productos")


class Modelo(Base):
    """
    Modelo comercial de una marca (nombre único por marca, sin distinguir mayúsculas).
    """
    __tablename__ = "modelos"

    id = Column(Integer, primary_key=True)
    marca_id = Column(Integer, ForeignKey("marcas.id"), nullable=False, index=True)
    nombre = Column(String, nullable=False, index=True)

    marca = relationship("Marca", back_populates="modelos")


# =========================================================
# RMA
# =========================================================

class Rma(Base):
    __tablename__ = "rmas"

    id = Column(Integer, primary_key=True)

    usuario_id = Column(Integer, ForeignKey("usuarios.id"), nullable=False, index=True)
    pais_id = Column(Integer, ForeignKey("paises.id"), nullable=False, index=True)

    estado = Column(
        SAEnum(RmaEstado, name="rma_estado"),
        default=RmaEstado.RMA_SUBMITTED,
        nullable=False,
        index=True,
    )

    nombre_empresa = Column(String, nullable=True, index=True)
    direccion = Column(String, nullable=True)
    codigo_postal = Column(String, nullable=True)

    numero_tracking = Column(String, nullable=True, index=True)
    razon_rechazo = Column(Text, nullable=True)
    cotizacion = Column(String, nullable=True)
    orden_compra = Column(String, nullable=True)
    tracking_envio = Column(String, nullable=True)

    last_reminder_sent = Column(DateTime(timezone=True), nullable=True, index=True)

    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False, index=True)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False, index=True)

    usuario = relationship("Usuario", back_populates="rmas")
    pais = relationship("Pais", back_populates="rmas")
    productos = relationship("RmaProducto", back_populates="rma", cascade="all, delete-orphan")
    eventos = relationship(
        "RmaEvento",
        back_populates="rma",
        cascade="all, delete-orphan",
        order_by="RmaEvento.id",
    )


class RmaProducto(Base):
    __tablename__ = "rma_productos"

    id = Column(Integer, primary_key=True)
    rma_id = Column(Integer, ForeignKey("rmas.id"), nullable=False, index=True)
    producto_id = Column(Integer, ForeignKey("productos.id"), nullable=False, index=True)

    serial = Column(String, nullable=True)
    modelo = Column(String, nullable=True)
    reporte_evaluacion = Column(Text, nullable=True)

    rma = relationship("Rma", back_populates="productos")
    producto = relationship("Producto")


class RmaEvento(Base):
    """
    Historial append-only de un RMA (transiciones + notificaciones).
    """
    __tablename__ = "rma_eventos"

    id = Column(Integer, primary_key=True)
    rma_id = Column(Integer, ForeignKey("rmas.id"), nullable=False, index=True)

    accion = Column(String, nullable=False, index=True)
    estado_anterior = Column(String, nullable=True)
    estado_nuevo = Column(String, nullable=True)
    actor = Column(String, nullable=False)
    nota = Column(Text, nullable=True)
    metadata_json = Column(JSON, nullable=True)

    fecha = Column(DateTime(timezone=True), default=utcnow, nullable=False, index=True)

    rma = relationship("Rma", back_populates="eventos")


__all__ = [
    "Pais",
    "Usuario",
    "Marca",
    "Producto",
    "Modelo",
    "Rma",
    "RmaProducto",
    "RmaEvento",
    "RolUsuario",
    "RmaEstado",
    "usuario_paises",
    "marca_paises",
    "producto_paises",
]
