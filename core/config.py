# core/config.py
"""
Configuración central – RMA Orbion.

✔ Pydantic Settings v2
✔ Multi-entorno (development / staging / production)
✔ Scheduler de recordatorios: ventana e intervalo configurables por separado
✔ Ajustes automáticos por entorno y por TEST_MODE
"""

from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # ============================
    #   Pydantic settings
    # ============================
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # ============================
    #   ENTORNO
    # ============================
    APP_ENV: Literal["development", "staging", "production"] = "development"
    APP_DEBUG: bool = True  # Se fuerza automáticamente según entorno

    # ============================
    #   LOGS
    # ============================
    LOG_DIR: str = "./logs"
    LOG_LEVEL: str | None = None

    # ============================
    #   BASE DE DATOS
    # ============================
    DATABASE_URL: str = "sqlite:///./rma.db"

    # ============================
    #   SEGURIDAD / SESIONES
    # ============================
    APP_SECRET_KEY: str

    SUPERADMIN_EMAIL: str = "super@rma.local"
    SUPERADMIN_NOMBRE: str = "Super"
    SUPERADMIN_APELLIDO: str = "Admin"
    SUPERADMIN_EMPRESA: str = "RMA System"

    SESSION_COOKIE_NAME: str = "session"
    SESSION_MAX_AGE_SECONDS: int = 60 * 60 * 8  # 8 horas

    # ============================
    #   SCHEDULER DE RECORDATORIOS
    # ============================
    TIMEZONE: str = "America/Bogota"
    ENABLE_SCHEDULER: bool = False
    TEST_MODE: bool = False

    # Disparo diario a hora fija (hora local TIMEZONE)
    REMINDER_HOUR: int = 9
    REMINDER_MINUTE: int = 0

    # Si se define, reemplaza el disparo diario por un intervalo fijo
    REMINDER_INTERVAL_SECONDS: int | None = None

    # Ventana de elegibilidad (REMINDER_WINDOW_SECONDS tiene prioridad)
    REMINDER_WINDOW_DAYS: int = 3
    REMINDER_WINDOW_SECONDS: int | None = None

    REMINDER_SEND_DELAY_SECONDS: float = 1.0
    REMINDER_BATCH_SIZE: int = 500

    # ============================
    #   RMA / COTIZACIONES
    # ============================
    TRACKING_PREFIX: str = "RMA"
    STORAGE_DIR: str = "./storage"
    QUOTATION_MAX_BYTES: int = 5 * 1024 * 1024  # 5 MB

    # ============================
    #   NOTIFICACIONES (EMAIL)
    # ============================
    RESEND_API_KEY: str | None = None
    RESEND_API_URL: str = "https://api.resend.com/emails"
    RESEND_TIMEOUT_SECONDS: float = 10.0
    FROM_EMAIL: str = "no-reply@rma.local"
    FRONTEND_URL: str = "http://localhost:3000"
    SUPPORT_EMAIL: str = "soporte@rmasystem.com"

    # ============================
    #   POST INIT
    # ============================
    def model_post_init(self, __context) -> None:
        """
        Ajustes automáticos por entorno.
        """
        env = (self.APP_ENV or "development").lower()

        if env == "production":
            object.__setattr__(self, "APP_DEBUG", False)
        elif env == "staging":
            object.__setattr__(self, "APP_DEBUG", False)
        else:
            object.__setattr__(self, "APP_DEBUG", True)

        # TEST_MODE acelera el ciclo de recordatorios, salvo que se haya
        # configurado explícitamente el intervalo o la ventana.
        if self.TEST_MODE:
            explicit = self.model_fields_set
            if "REMINDER_INTERVAL_SECONDS" not in explicit:
                object.__setattr__(self, "REMINDER_INTERVAL_SECONDS", 30)
            if "REMINDER_WINDOW_SECONDS" not in explicit and "REMINDER_WINDOW_DAYS" not in explicit:
                object.__setattr__(self, "REMINDER_WINDOW_SECONDS", 0)

    # ============================
    #   DERIVADOS
    # ============================
    @property
    def reminder_window_seconds(self) -> int:
        if self.REMINDER_WINDOW_SECONDS is not None:
            return max(0, int(self.REMINDER_WINDOW_SECONDS))
        return max(0, int(self.REMINDER_WINDOW_DAYS)) * 24 * 60 * 60

    @property
    def scheduler_enabled(self) -> bool:
        return self.APP_ENV == "production" or bool(self.ENABLE_SCHEDULER)


# ============================
#   INSTANCIA GLOBAL
# ============================
settings = Settings()
