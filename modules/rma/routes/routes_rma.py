# modules/rma/routes/routes_rma.py

from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, File, Query, Response, UploadFile
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from core.database import get_db
from core.errors import DomainError
from core.routes.http_common import http_error
from core.security import require_actor_dep
from core.services.services_access_scope import Actor

from modules.rma.services.services_rma_consultas import (
    contar_por_estado,
    listar_rmas,
    listar_rmas_usuario,
    obtener_rma_detalle,
)
from modules.rma.services.services_rma_lifecycle import (
    ArchivoCotizacion,
    ItemRma,
    RmaLifecycleEngine,
)
from modules.rma.services.services_rma_logging import log_rma_error

from .rma_common import get_engine, rma_to_dict

router = APIRouter(prefix="/rmas", tags=["rmas"])


# ============================
#   PAYLOADS
# ============================

class ItemRmaIn(BaseModel):
    producto_id: int
    serial: Optional[str] = None
    modelo: Optional[str] = None
    reporte_evaluacion: Optional[str] = None


class CrearRmaIn(BaseModel):
    pais_id: int
    productos: List[ItemRmaIn] = Field(default_factory=list)
    direccion: Optional[str] = None
    codigo_postal: Optional[str] = None


class ActualizarRmaIn(BaseModel):
    direccion: Optional[str] = None
    codigo_postal: Optional[str] = None
    orden_compra: Optional[str] = None


class RechazarIn(BaseModel):
    razon: str = ""


class EnviarIn(BaseModel):
    tracking_envio: str = ""


def _fallo(event: str, actor: Actor, e: DomainError, rma_id: int | None = None):
    log_rma_error(event, rma_id=rma_id, error=e.message, usuario=actor.etiqueta, code=e.code)
    return http_error(e)


# ============================
#   CREAR / LISTAR
# ============================

@router.post("", status_code=201)
def rma_crear(
    body: CrearRmaIn,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_actor_dep),
    engine: RmaLifecycleEngine = Depends(get_engine),
):
    try:
        rma = engine.submit(
            db,
            actor,
            pais_id=body.pais_id,
            productos=[ItemRma(**i.model_dump()) for i in body.productos],
            direccion=body.direccion,
            codigo_postal=body.codigo_postal,
        )
    except DomainError as e:
        raise _fallo("crear_fallido", actor, e)
    return rma_to_dict(rma)


@router.get("")
def rma_listar(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    search: Optional[str] = None,
    status: Optional[str] = None,
    pais_id: Optional[int] = None,
    fecha_desde: Optional[datetime] = None,
    fecha_hasta: Optional[datetime] = None,
    sort_by: str = "created_at",
    sort_order: str = "desc",
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_actor_dep),
):
    try:
        result = listar_rmas(
            db,
            actor,
            page=page,
            limit=limit,
            search=search,
            status=status,
            pais_id=pais_id,
            fecha_desde=fecha_desde,
            fecha_hasta=fecha_hasta,
            sort_by=sort_by,
            sort_order=sort_order,
        )
    except DomainError as e:
        raise _fallo("listar_fallido", actor, e)

    return {
        "rmas": [rma_to_dict(r) for r in result["rmas"]],
        "pagination": result["pagination"],
    }


@router.get("/mis")
def rma_mis(
    status: Optional[str] = None,
    fecha_desde: Optional[datetime] = None,
    fecha_hasta: Optional[datetime] = None,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_actor_dep),
):
    try:
        rmas = listar_rmas_usuario(db, actor, status=status, fecha_desde=fecha_desde, fecha_hasta=fecha_hasta)
    except DomainError as e:
        raise _fallo("mis_rmas_fallido", actor, e)
    return {"rmas": [rma_to_dict(r) for r in rmas]}


@router.get("/resumen")
def rma_resumen(
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_actor_dep),
):
    try:
        conteos = contar_por_estado(db, actor)
    except DomainError as e:
        raise _fallo("resumen_fallido", actor, e)
    return {"por_estado": conteos, "total": sum(conteos.values())}


@router.get("/{rma_id}")
def rma_detalle(
    rma_id: int,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_actor_dep),
):
    try:
        rma = obtener_rma_detalle(db, actor, rma_id)
    except DomainError as e:
        raise _fallo("detalle_fallido", actor, e, rma_id)
    return rma_to_dict(rma, detalle=True)


@router.patch("/{rma_id}")
def rma_actualizar(
    rma_id: int,
    body: ActualizarRmaIn,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_actor_dep),
    engine: RmaLifecycleEngine = Depends(get_engine),
):
    try:
        rma = engine.actualizar_datos(
            db,
            actor,
            rma_id,
            direccion=body.direccion,
            codigo_postal=body.codigo_postal,
            orden_compra=body.orden_compra,
        )
    except DomainError as e:
        raise _fallo("actualizar_fallido", actor, e, rma_id)
    return rma_to_dict(rma)


@router.get("/{rma_id}/cotizacion")
def rma_descargar_cotizacion(
    rma_id: int,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_actor_dep),
    engine: RmaLifecycleEngine = Depends(get_engine),
):
    try:
        archivo = engine.leer_cotizacion(db, actor, rma_id)
    except DomainError as e:
        raise _fallo("cotizacion_descarga_fallida", actor, e, rma_id)
    return Response(
        content=archivo.contenido,
        media_type=archivo.content_type,
        headers={"Content-Disposition": f'inline; filename="{archivo.nombre}"'},
    )


# ============================
#   TRANSICIONES
# ============================

@router.post("/{rma_id}/aprobar")
def rma_aprobar(
    rma_id: int,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_actor_dep),
    engine: RmaLifecycleEngine = Depends(get_engine),
):
    try:
        rma = engine.aprobar(db, actor, rma_id)
    except DomainError as e:
        raise _fallo("aprobar_fallido", actor, e, rma_id)
    return rma_to_dict(rma)


@router.post("/{rma_id}/rechazar")
def rma_rechazar(
    rma_id: int,
    body: RechazarIn,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_actor_dep),
    engine: RmaLifecycleEngine = Depends(get_engine),
):
    try:
        rma = engine.rechazar(db, actor, rma_id, body.razon)
    except DomainError as e:
        raise _fallo("rechazar_fallido", actor, e, rma_id)
    return rma_to_dict(rma)


@router.post("/{rma_id}/evaluar")
def rma_evaluar(
    rma_id: int,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_actor_dep),
    engine: RmaLifecycleEngine = Depends(get_engine),
):
    try:
        rma = engine.marcar_evaluando(db, actor, rma_id)
    except DomainError as e:
        raise _fallo("evaluar_fallido", actor, e, rma_id)
    return rma_to_dict(rma)


@router.post("/{rma_id}/cotizacion")
def rma_cotizacion(
    rma_id: int,
    file: UploadFile = File(...),
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_actor_dep),
    engine: RmaLifecycleEngine = Depends(get_engine),
):
    archivo = ArchivoCotizacion(
        contenido=file.file.read(),
        nombre=file.filename or "cotizacion.pdf",
        content_type=file.content_type or "",
    )
    try:
        rma = engine.marcar_pago(db, actor, rma_id, archivo)
    except DomainError as e:
        raise _fallo("cotizacion_fallida", actor, e, rma_id)
    return rma_to_dict(rma)


@router.post("/{rma_id}/procesar")
def rma_procesar(
    rma_id: int,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_actor_dep),
    engine: RmaLifecycleEngine = Depends(get_engine),
):
    try:
        rma = engine.marcar_en_proceso(db, actor, rma_id)
    except DomainError as e:
        raise _fallo("procesar_fallido", actor, e, rma_id)
    return rma_to_dict(rma)


@router.post("/{rma_id}/enviar")
def rma_enviar(
    rma_id: int,
    body: EnviarIn,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_actor_dep),
    engine: RmaLifecycleEngine = Depends(get_engine),
):
    try:
        rma = engine.marcar_en_envio(db, actor, rma_id, body.tracking_envio)
    except DomainError as e:
        raise _fallo("enviar_fallido", actor, e, rma_id)
    return rma_to_dict(rma)


@router.post("/{rma_id}/completar")
def rma_completar(
    rma_id: int,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_actor_dep),
    engine: RmaLifecycleEngine = Depends(get_engine),
):
    try:
        rma = engine.marcar_completado(db, actor, rma_id)
    except DomainError as e:
        raise _fallo("completar_fallido", actor, e, rma_id)
    return rma_to_dict(rma)
