# modules/rma/services/services_rma_lifecycle.py
"""
Ciclo de vida RMA (máquina de estados)

RMA_SUBMITTED -> AWAITING_GOODS -> EVALUATING -> PAYMENT -> PROCESSING -> IN_SHIPPING -> COMPLETE
RMA_SUBMITTED -> REJECTED (terminal)

actualizar_datos (staff) edita dirección, código postal y orden de compra
sin cambiar estado ni updated_at.

Orden de cada transición:
1) rol (solo staff salvo submit)
2) validación de input
3) carga con alcance + lock de fila
4) estado requerido
5) escritura + historial en una sola transacción
6) notificación (nunca revierte la transición)
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Iterable, Optional

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from core.config import settings
from core.errors import (
    ForbiddenError,
    InternalError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from core.models import Pais, Producto, Rma, RmaProducto, Usuario
from core.models.enums import RmaEstado, TipoEntidad, TipoNotificacion
from core.models.time import utcnow
from core.services.services_access_scope import Actor, actor_puede_usar_pais, resolver_alcance

from .services_rma_core import (
    TRANSICIONES,
    destinatario_de,
    estado_de,
    exigir_staff,
    generar_numero_tracking,
    obtener_rma_segura,
    registrar_evento,
    transaccion,
)
from .services_rma_logging import log_rma_audit, log_rma_error, log_rma_event, log_rma_transicion
from .services_rma_notificaciones import (
    Adjunto,
    NotificationGateway,
    NotificationResult,
    enviar_seguro,
)
from .services_rma_storage import BlobStorage


PDF_CONTENT_TYPE = "application/pdf"

_VERBOS = {
    "APROBAR": "aprobar",
    "RECHAZAR": "rechazar",
    "EVALUAR": "marcar en evaluación",
    "COTIZAR": "registrar la cotización de",
    "PROCESAR": "marcar en proceso",
    "ENVIAR": "marcar en envío",
    "COMPLETAR": "completar",
}

_NOTIFICACION_POR_ACCION = {
    "APROBAR": TipoNotificacion.RMA_APROBADO,
    "RECHAZAR": TipoNotificacion.RMA_RECHAZADO,
    "EVALUAR": TipoNotificacion.RMA_EN_EVALUACION,
    "COTIZAR": TipoNotificacion.RMA_COTIZACION,
    "PROCESAR": TipoNotificacion.RMA_EN_PROCESO,
    "ENVIAR": TipoNotificacion.RMA_EN_ENVIO,
    "COMPLETAR": TipoNotificacion.RMA_COMPLETADO,
}


# ============================
# DTOs
# ============================

@dataclass(frozen=True)
class ItemRma:
    producto_id: int
    serial: str | None = None
    modelo: str | None = None
    reporte_evaluacion: str | None = None


@dataclass(frozen=True)
class ArchivoCotizacion:
    contenido: bytes
    nombre: str
    content_type: str = PDF_CONTENT_TYPE


def _clean(s: str | None) -> str | None:
    if s is None:
        return None
    s = str(s).strip()
    return s or None


# ============================
# ENGINE
# ============================

class RmaLifecycleEngine:
    def __init__(
        self,
        *,
        gateway: NotificationGateway,
        storage: BlobStorage,
        clock: Callable[[], datetime] = utcnow,
        tracking_prefix: str | None = None,
        max_cotizacion_bytes: int | None = None,
    ) -> None:
        self.gateway = gateway
        self.storage = storage
        self.clock = clock
        self.tracking_prefix = tracking_prefix or settings.TRACKING_PREFIX
        self.max_cotizacion_bytes = max_cotizacion_bytes or settings.QUOTATION_MAX_BYTES

    # -------------------------
    # CREACIÓN
    # -------------------------

    def submit(
        self,
        db: Session,
        actor: Actor,
        *,
        pais_id: int,
        productos: Iterable[ItemRma],
        direccion: str | None = None,
        codigo_postal: str | None = None,
    ) -> Rma:
        resolver_alcance(actor, TipoEntidad.RMA)

        items = list(productos or [])
        if not items:
            raise ValidationError("Debes incluir al menos un producto")

        owner = db.get(Usuario, int(actor.id))
        if owner is None:
            raise NotFoundError("Usuario no encontrado")

        pais = db.get(Pais, int(pais_id))
        if pais is None:
            raise NotFoundError("País no encontrado")

        if not actor_puede_usar_pais(actor, pais.id):
            raise ForbiddenError("No tienes permisos para crear RMAs en este país")

        ids = {int(i.producto_id) for i in items}
        disponibles = set(
            db.execute(
                select(Producto.id)
                .where(Producto.id.in_(sorted(ids)))
                .where(Producto.paises.any(Pais.id == pais.id))
            ).scalars().all()
        )
        if disponibles != ids:
            raise ValidationError("Algunos productos no están disponibles en el país seleccionado")

        now = self.clock()
        with transaccion(db, operacion="crear"):
            rma = Rma(
                usuario_id=owner.id,
                pais_id=pais.id,
                estado=RmaEstado.RMA_SUBMITTED,
                nombre_empresa=owner.empresa,
                direccion=_clean(direccion),
                codigo_postal=_clean(codigo_postal),
                created_at=now,
                updated_at=now,
            )
            rma.productos = [
                RmaProducto(
                    producto_id=int(i.producto_id),
                    serial=_clean(i.serial),
                    modelo=_clean(i.modelo),
                    reporte_evaluacion=_clean(i.reporte_evaluacion),
                )
                for i in items
            ]
            db.add(rma)
            db.flush()
            registrar_evento(
                db,
                rma,
                accion="CREADO",
                actor=actor.etiqueta,
                estado_nuevo=RmaEstado.RMA_SUBMITTED,
                metadata={"productos": len(items)},
            )

        log_rma_audit("rma_creado", rma_id=rma.id, usuario=actor.etiqueta, pais_id=pais.id, productos=len(items))
        return rma

    # -------------------------
    # DATOS
    # -------------------------

    def actualizar_datos(
        self,
        db: Session,
        actor: Actor,
        rma_id: int,
        *,
        direccion: str | None = None,
        codigo_postal: str | None = None,
        orden_compra: str | None = None,
    ) -> Rma:
        """
        None deja el campo igual; un texto vacío lo borra.
        updated_at no se mueve: marca la entrada al estado actual.
        """
        exigir_staff(actor)
        pedidos = {
            campo: _clean(valor)
            for campo, valor in (
                ("direccion", direccion),
                ("codigo_postal", codigo_postal),
                ("orden_compra", orden_compra),
            )
            if valor is not None
        }
        if not pedidos:
            raise ValidationError("No hay datos para actualizar")

        with transaccion(db, operacion="actualizar", rma_id=rma_id):
            rma = obtener_rma_segura(db, actor, rma_id, for_update=True)
            cambios = {k: v for k, v in pedidos.items() if getattr(rma, k) != v}
            if not cambios:
                return rma

            db.execute(
                update(Rma)
                .where(Rma.id == rma.id)
                .values(**cambios, updated_at=Rma.updated_at)
                .execution_options(synchronize_session=False)
            )
            registrar_evento(
                db,
                rma,
                accion="ACTUALIZADO",
                actor=actor.etiqueta,
                metadata={"campos": sorted(cambios)},
            )

        db.refresh(rma)
        log_rma_audit("rma_actualizado", rma_id=rma.id, usuario=actor.etiqueta, campos=sorted(cambios))
        return rma

    def leer_cotizacion(self, db: Session, actor: Actor, rma_id: int) -> ArchivoCotizacion:
        """
        PDF de la cotización para quien ve el RMA (dueño o staff de su país).
        """
        rma = obtener_rma_segura(db, actor, rma_id)
        url = _clean(rma.cotizacion)
        if not url:
            raise NotFoundError("El RMA no tiene cotización asignada")

        try:
            contenido = self.storage.leer(url)
        except Exception as exc:
            log_rma_error("cotizacion_lectura_fallida", rma_id=rma_id, error=exc, cotizacion=url)
            raise InternalError("No fue posible leer la cotización") from exc

        return ArchivoCotizacion(contenido=contenido, nombre=f"cotizacion-rma-{rma.id}.pdf")

    # -------------------------
    # TRANSICIONES
    # -------------------------

    def aprobar(self, db: Session, actor: Actor, rma_id: int) -> Rma:
        def aplicar(rma: Rma) -> None:
            rma.numero_tracking = generar_numero_tracking(self.tracking_prefix)

        rma = self._transicionar(db, actor, rma_id, "APROBAR", aplicar=aplicar)
        self._notificar(db, rma, "APROBAR", numero_tracking=rma.numero_tracking)
        return rma

    def rechazar(self, db: Session, actor: Actor, rma_id: int, razon: str) -> Rma:
        exigir_staff(actor)
        razon = _clean(razon)
        if not razon:
            raise ValidationError("Debes indicar la razón del rechazo")

        def aplicar(rma: Rma) -> None:
            rma.razon_rechazo = razon

        rma = self._transicionar(db, actor, rma_id, "RECHAZAR", aplicar=aplicar, nota=razon)
        self._notificar(db, rma, "RECHAZAR", razon_rechazo=razon)
        return rma

    def marcar_evaluando(self, db: Session, actor: Actor, rma_id: int) -> Rma:
        def precondicion(rma: Rma) -> None:
            if not _clean(rma.numero_tracking):
                raise InvalidStateError("El RMA no tiene número de tracking asignado")

        rma = self._transicionar(db, actor, rma_id, "EVALUAR", precondicion=precondicion)
        self._notificar(db, rma, "EVALUAR", numero_tracking=rma.numero_tracking)
        return rma

    def marcar_pago(self, db: Session, actor: Actor, rma_id: int, archivo: ArchivoCotizacion) -> Rma:
        """
        EVALUATING -> PAYMENT con cotización PDF.

        - Upload antes de mutar: si falla, no se toca el RMA
        - Si falla la persistencia tras el upload, se elimina el archivo subido
        """
        exigir_staff(actor)
        self._validar_cotizacion(archivo)

        try:
            rma = obtener_rma_segura(db, actor, rma_id, for_update=True)
            anterior = estado_de(rma)
            requerido, destino = TRANSICIONES["COTIZAR"]
            if anterior != requerido:
                raise InvalidStateError(self._mensaje_estado("COTIZAR", requerido))

            try:
                url = self.storage.upload(archivo.contenido, archivo.content_type, archivo.nombre)
            except Exception as exc:
                log_rma_error("cotizacion_upload_fallido", rma_id=rma_id, error=exc)
                raise InternalError("No fue posible subir la cotización") from exc
        except Exception:
            db.rollback()
            raise

        try:
            rma.cotizacion = url
            self._aplicar_estado(db, rma, actor, "COTIZAR", anterior, destino, metadata={"cotizacion": url})
            db.commit()
        except SQLAlchemyError as exc:
            db.rollback()
            log_rma_error("cotizacion_persistencia_fallida", rma_id=rma_id, error=exc, cotizacion=url)
            self._borrar_cotizacion(rma_id, url)
            raise InternalError("Error interno al guardar la cotización") from exc

        log_rma_transicion("COTIZAR", rma_id=rma.id, usuario=actor.etiqueta, anterior=anterior, nuevo=destino)
        self._notificar(
            db,
            rma,
            "COTIZAR",
            cotizacion_url=url,
            adjunto=Adjunto(nombre=f"cotizacion-rma-{rma.id}.pdf", contenido=archivo.contenido),
        )
        return rma

    def marcar_en_proceso(self, db: Session, actor: Actor, rma_id: int) -> Rma:
        def precondicion(rma: Rma) -> None:
            if not _clean(rma.cotizacion):
                raise InvalidStateError("El RMA no tiene cotización asignada")

        rma = self._transicionar(db, actor, rma_id, "PROCESAR", precondicion=precondicion)
        self._notificar(db, rma, "PROCESAR")
        return rma

    def marcar_en_envio(self, db: Session, actor: Actor, rma_id: int, tracking_envio: str) -> Rma:
        exigir_staff(actor)
        tracking_envio = _clean(tracking_envio)
        if not tracking_envio:
            raise ValidationError("Debes indicar la información de tracking del envío")

        def aplicar(rma: Rma) -> None:
            rma.tracking_envio = tracking_envio

        rma = self._transicionar(db, actor, rma_id, "ENVIAR", aplicar=aplicar)
        self._notificar(db, rma, "ENVIAR", tracking_envio=tracking_envio)
        return rma

    def marcar_completado(self, db: Session, actor: Actor, rma_id: int) -> Rma:
        rma = self._transicionar(db, actor, rma_id, "COMPLETAR")
        self._notificar(db, rma, "COMPLETAR")
        return rma

    # -------------------------
    # INTERNOS
    # -------------------------

    @staticmethod
    def _mensaje_estado(accion: str, requerido: RmaEstado) -> str:
        return f"Solo puedes {_VERBOS[accion]} un RMA en estado {requerido.value}"

    def _validar_cotizacion(self, archivo: Optional[ArchivoCotizacion]) -> None:
        if archivo is None or not archivo.contenido:
            raise ValidationError("Debes adjuntar la cotización en PDF")
        if (archivo.content_type or "").lower() != PDF_CONTENT_TYPE:
            raise ValidationError("Solo se permiten archivos PDF")
        if len(archivo.contenido) > self.max_cotizacion_bytes:
            raise ValidationError("El archivo excede el tamaño máximo permitido (5MB)")

    def _aplicar_estado(
        self,
        db: Session,
        rma: Rma,
        actor: Actor,
        accion: str,
        anterior: RmaEstado,
        destino: RmaEstado,
        *,
        nota: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> None:
        rma.estado = destino
        rma.updated_at = self.clock()
        if anterior == RmaEstado.PAYMENT:
            rma.last_reminder_sent = None

        registrar_evento(
            db,
            rma,
            accion=accion,
            actor=actor.etiqueta,
            estado_anterior=anterior,
            estado_nuevo=destino,
            nota=nota,
            metadata=metadata,
        )

    def _transicionar(
        self,
        db: Session,
        actor: Actor,
        rma_id: int,
        accion: str,
        *,
        precondicion: Callable[[Rma], None] | None = None,
        aplicar: Callable[[Rma], None] | None = None,
        nota: str | None = None,
    ) -> Rma:
        exigir_staff(actor)
        requerido, destino = TRANSICIONES[accion]

        with transaccion(db, operacion=accion.lower(), rma_id=rma_id):
            rma = obtener_rma_segura(db, actor, rma_id, for_update=True)
            anterior = estado_de(rma)
            if anterior != requerido:
                raise InvalidStateError(self._mensaje_estado(accion, requerido))
            if precondicion is not None:
                precondicion(rma)
            if aplicar is not None:
                aplicar(rma)
            self._aplicar_estado(db, rma, actor, accion, anterior, destino, nota=nota)

        log_rma_transicion(accion, rma_id=rma.id, usuario=actor.etiqueta, anterior=anterior, nuevo=destino)
        return rma

    def _notificar(self, db: Session, rma: Rma, accion: str, **extra: Any) -> NotificationResult:
        tipo = _NOTIFICACION_POR_ACCION[accion]
        payload = {"rma_id": rma.id, "estado": estado_de(rma).value, **extra}
        result = enviar_seguro(self.gateway, tipo, destinatario_de(rma), payload)

        # historial de la notificación: best effort, después del commit
        try:
            registrar_evento(
                db,
                rma,
                accion="NOTIFICACION",
                actor="sistema",
                metadata={
                    "tipo": tipo.value,
                    "success": bool(result.success),
                    "id": result.id,
                    "error": result.error,
                },
            )
            db.commit()
        except SQLAlchemyError as exc:
            db.rollback()
            log_rma_error("notificacion_historial_fallido", rma_id=rma.id, error=exc, tipo=tipo.value)

        if not result.success:
            log_rma_error("notificacion_no_entregada", rma_id=rma.id, error=result.error, tipo=tipo.value)
        return result

    def _borrar_cotizacion(self, rma_id: int, url: str) -> None:
        try:
            self.storage.delete(url)
        except Exception as exc:
            log_rma_error("cotizacion_compensacion_fallida", rma_id=rma_id, error=exc, cotizacion=url)
            return
        log_rma_event("cotizacion_compensada", rma_id=rma_id, cotizacion=url)
