# modules/rma/services/services_rma_notificaciones.py
"""
Gateway de notificaciones – Módulo RMA

Contrato:
- send(tipo, destinatario, payload) -> NotificationResult
- NUNCA lanza excepción hacia el core: todo fallo vuelve como valor
- El fallo de una notificación no revierte la transición que la originó
"""

from __future__ import annotations

import base64
import uuid
from dataclasses import dataclass
from typing import Any, Optional, Protocol

import requests

from core.config import settings
from core.models.enums import TipoNotificacion

from .services_rma_logging import log_rma_error, log_rma_event
from .services_rma_mensajes import construir_mensaje


# =========================================================
# DTOs
# =========================================================

@dataclass(frozen=True)
class Destinatario:
    email: str
    nombre: str | None = None
    apellido: str | None = None


@dataclass(frozen=True)
class NotificationResult:
    success: bool
    id: Optional[str] = None
    error: Optional[str] = None


@dataclass(frozen=True)
class Adjunto:
    nombre: str
    contenido: bytes
    content_type: str = "application/pdf"


class NotificationGateway(Protocol):
    def send(
        self,
        tipo: TipoNotificacion,
        destinatario: Destinatario,
        payload: dict[str, Any],
    ) -> NotificationResult:
        ...


# =========================================================
# IMPLEMENTACIONES
# =========================================================

class LoggingNotificationGateway:
    """
    Gateway baseline (desarrollo / sin API key): registra la notificación en logs.
    """

    def send(self, tipo, destinatario, payload) -> NotificationResult:
        tipo = TipoNotificacion(tipo)
        mensaje = construir_mensaje(tipo, destinatario, payload)
        notif_id = uuid.uuid4().hex
        log_rma_event(
            "notificacion_registrada",
            rma_id=payload.get("rma_id"),
            notificacion_id=notif_id,
            tipo=tipo.value,
            to=destinatario.email,
            asunto=mensaje.asunto,
        )
        return NotificationResult(success=True, id=notif_id)


class ResendNotificationGateway:
    """
    Envío de email vía API HTTP de Resend.
    """

    def __init__(
        self,
        *,
        api_key: str,
        from_email: str,
        api_url: str = "https://api.resend.com/emails",
        timeout: float = 10.0,
        session: requests.Session | None = None,
    ) -> None:
        self.api_key = api_key
        self.from_email = from_email
        self.api_url = api_url
        self.timeout = timeout
        self.session = session or requests.Session()

    def _body(self, tipo: TipoNotificacion, destinatario: Destinatario, payload: dict[str, Any]) -> dict:
        mensaje = construir_mensaje(tipo, destinatario, payload)
        body: dict[str, Any] = {
            "from": self.from_email,
            "to": [destinatario.email],
            "subject": mensaje.asunto,
            "text": mensaje.texto,
        }
        adjunto = payload.get("adjunto")
        if isinstance(adjunto, Adjunto):
            body["attachments"] = [
                {
                    "filename": adjunto.nombre,
                    "content": base64.b64encode(adjunto.contenido).decode("ascii"),
                }
            ]
        return body

    def send(self, tipo, destinatario, payload) -> NotificationResult:
        tipo = TipoNotificacion(tipo)
        try:
            resp = self.session.post(
                self.api_url,
                json=self._body(tipo, destinatario, payload),
                headers={"Authorization": f"Bearer {self.api_key}"},
                timeout=self.timeout,
            )
            resp.raise_for_status()
            data = resp.json() if resp.content else {}
        except (requests.RequestException, ValueError) as exc:
            log_rma_error(
                "notificacion_fallida",
                rma_id=payload.get("rma_id"),
                error=exc,
                tipo=tipo.value,
                to=destinatario.email,
            )
            return NotificationResult(success=False, error=str(exc))

        notif_id = str(data.get("id") or "")
        log_rma_event(
            "notificacion_enviada",
            rma_id=payload.get("rma_id"),
            notificacion_id=notif_id,
            tipo=tipo.value,
            to=destinatario.email,
        )
        return NotificationResult(success=True, id=notif_id or None)


def construir_gateway_desde_settings() -> NotificationGateway:
    if settings.RESEND_API_KEY:
        return ResendNotificationGateway(
            api_key=settings.RESEND_API_KEY,
            from_email=settings.FROM_EMAIL,
            api_url=settings.RESEND_API_URL,
            timeout=settings.RESEND_TIMEOUT_SECONDS,
        )
    return LoggingNotificationGateway()


def enviar_seguro(
    gateway: NotificationGateway,
    tipo: TipoNotificacion,
    destinatario: Destinatario,
    payload: dict[str, Any],
) -> NotificationResult:
    """
    Llama al gateway y convierte cualquier excepción inesperada en resultado fallido.
    """
    try:
        result = gateway.send(tipo, destinatario, payload)
    except Exception as exc:  # el gateway no debe romper transiciones ni lotes
        log_rma_error("notificacion_excepcion", rma_id=payload.get("rma_id"), error=exc, tipo=str(tipo))
        return NotificationResult(success=False, error=str(exc))

    if result is None:
        return NotificationResult(success=False, error="gateway sin resultado")
    return result
