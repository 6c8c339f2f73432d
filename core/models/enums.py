# core/models/enums.py
from __future__ import annotations
import enum


class RolUsuario(str, enum.Enum):
    USER = "USER"
    ADMIN = "ADMIN"
    SUPERADMIN = "SUPERADMIN"


class RmaEstado(str, enum.Enum):
    RMA_SUBMITTED = "RMA_SUBMITTED"
    AWAITING_GOODS = "AWAITING_GOODS"
    EVALUATING = "EVALUATING"
    PAYMENT = "PAYMENT"
    PROCESSING = "PROCESSING"
    IN_SHIPPING = "IN_SHIPPING"
    COMPLETE = "COMPLETE"
    REJECTED = "REJECTED"


class TipoEntidad(str, enum.Enum):
    RMA = "RMA"
    USER = "USER"
    BRAND = "BRAND"
    PRODUCT = "PRODUCT"


class TipoNotificacion(str, enum.Enum):
    RMA_APROBADO = "RMA_APROBADO"
    RMA_RECHAZADO = "RMA_RECHAZADO"
    RMA_EN_EVALUACION = "RMA_EN_EVALUACION"
    RMA_COTIZACION = "RMA_COTIZACION"
    RMA_EN_PROCESO = "RMA_EN_PROCESO"
    RMA_EN_ENVIO = "RMA_EN_ENVIO"
    RMA_COMPLETADO = "RMA_COMPLETADO"
    RECORDATORIO_PAGO = "RECORDATORIO_PAGO"
