# modules/rma/services/services_rma_mensajes.py
"""
Textos de notificación RMA (asunto + cuerpo plano).

La urgencia del recordatorio de pago es presentación:
- normal: hasta 7 días
- urgente: más de 7 días
- crítico: más de 10 días
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from core.config import settings
from core.models.enums import TipoNotificacion


URGENTE_DIAS = 7
CRITICO_DIAS = 10

ESTADOS_LEGIBLES = {
    "RMA_SUBMITTED": "Enviado",
    "AWAITING_GOODS": "Esperando Mercancía",
    "EVALUATING": "En Evaluación",
    "PROCESSING": "En Proceso",
    "PAYMENT": "Esperando Pago",
    "IN_SHIPPING": "En Envío",
    "COMPLETE": "Completado",
    "REJECTED": "Rechazado",
}


@dataclass
class Mensaje:
    asunto: str
    texto: str


def nivel_urgencia(dias: int) -> str:
    if dias > CRITICO_DIAS:
        return "critico"
    if dias > URGENTE_DIAS:
        return "urgente"
    return "normal"


def _saludo(destinatario) -> str:
    nombre = " ".join(x for x in (destinatario.nombre, destinatario.apellido) if x)
    return f"Hola {nombre}," if nombre else "Hola,"


def _link_rma(rma_id: Any) -> str:
    return f"{settings.FRONTEND_URL.rstrip('/')}/rmas/{rma_id}"


def construir_mensaje(tipo: TipoNotificacion, destinatario, payload: dict[str, Any]) -> Mensaje:
    tipo = TipoNotificacion(tipo)
    rma_id = payload.get("rma_id")
    saludo = _saludo(destinatario)
    link = _link_rma(rma_id)

    if tipo == TipoNotificacion.RMA_APROBADO:
        return Mensaje(
            asunto=f"Tu RMA #{rma_id} ha sido aprobado",
            texto=(
                f"{saludo}\n\nTu solicitud RMA #{rma_id} fue aprobada.\n"
                f"Número de tracking: {payload.get('numero_tracking')}\n"
                f"Envía tu(s) producto(s) indicando este número.\n\n{link}"
            ),
        )

    if tipo == TipoNotificacion.RMA_RECHAZADO:
        return Mensaje(
            asunto=f"Tu RMA #{rma_id} ha sido rechazado",
            texto=f"{saludo}\n\nTu solicitud RMA #{rma_id} fue rechazada.\nMotivo: {payload.get('razon_rechazo')}\n\n{link}",
        )

    if tipo == TipoNotificacion.RMA_EN_EVALUACION:
        return Mensaje(
            asunto=f"Tu RMA #{rma_id} está en evaluación",
            texto=(
                f"{saludo}\n\nRecibimos tu(s) producto(s) del RMA #{rma_id} "
                f"(tracking {payload.get('numero_tracking')}) y comenzamos la evaluación.\n\n{link}"
            ),
        )

    if tipo == TipoNotificacion.RMA_COTIZACION:
        return Mensaje(
            asunto=f"Cotización lista para tu RMA #{rma_id}",
            texto=f"{saludo}\n\nAdjuntamos la cotización de tu RMA #{rma_id}. Una vez confirmado el pago continuaremos el proceso.\n\n{link}",
        )

    if tipo == TipoNotificacion.RMA_EN_PROCESO:
        return Mensaje(
            asunto=f"Tu RMA #{rma_id} está en proceso",
            texto=f"{saludo}\n\nConfirmamos tu pago. El RMA #{rma_id} está en proceso.\n\n{link}",
        )

    if tipo == TipoNotificacion.RMA_EN_ENVIO:
        return Mensaje(
            asunto=f"Tu RMA #{rma_id} fue despachado",
            texto=f"{saludo}\n\nDespachamos tu RMA #{rma_id}.\nTracking de envío: {payload.get('tracking_envio')}\n\n{link}",
        )

    if tipo == TipoNotificacion.RMA_COMPLETADO:
        return Mensaje(
            asunto=f"Tu RMA #{rma_id} ha sido completado",
            texto=f"{saludo}\n\nTu RMA #{rma_id} quedó completado. Gracias por confiar en nosotros.\n\n{link}",
        )

    # RECORDATORIO_PAGO
    dias = int(payload.get("dias_desde_pago") or 0)
    nivel = nivel_urgencia(dias)
    prefijo = {"normal": "", "urgente": "URGENTE: ", "critico": "CRÍTICO: "}[nivel]
    lineas = [
        saludo,
        "",
        f"Tu RMA #{rma_id} sigue esperando el pago de la cotización.",
        f"Días transcurridos: {dias} días",
    ]
    if nivel != "normal":
        lineas.append("Requiere atención inmediata.")
    if nivel == "critico":
        lineas.append(
            f"Más de {CRITICO_DIAS} días transcurridos. Contacta urgentemente a {settings.SUPPORT_EMAIL} "
            "para evitar la cancelación."
        )
    if payload.get("cotizacion_url"):
        lineas.append(f"Cotización: {payload['cotizacion_url']}")
    lineas += ["", link]

    return Mensaje(
        asunto=f"{prefijo}Recordatorio de pago – RMA #{rma_id}",
        texto="\n".join(lineas),
    )
