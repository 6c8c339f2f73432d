# core/logging_config.py
"""
Logging centralizado – RMA Orbion

✔ Consola + rma.log rotado
✔ audit.log: transiciones RMA hechas por personas (logger rma.audit)
✔ jobs.log: scheduler y lotes de recordatorios (logger rma.jobs)
✔ Nivel por LOG_LEVEL o, si falta, por APP_DEBUG
"""

from __future__ import annotations

import logging
from logging.config import dictConfig
from pathlib import Path

from core.config import settings


def _nivel() -> str:
    if settings.LOG_LEVEL:
        return settings.LOG_LEVEL.upper()
    return "DEBUG" if settings.APP_DEBUG else "INFO"


def _rotado(path: Path, level: str, backups: int) -> dict:
    return {
        "class": "logging.handlers.RotatingFileHandler",
        "formatter": "verbose",
        "filename": str(path),
        "maxBytes": 5 * 1024 * 1024,
        "backupCount": backups,
        "encoding": "utf-8",
        "level": level,
    }


def setup_logging(log_dir: str | Path | None = None) -> None:
    level = _nivel()
    folder = Path(log_dir or settings.LOG_DIR).resolve()
    folder.mkdir(parents=True, exist_ok=True)

    dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "default": {"format": "%(asctime)s | %(levelname)s | %(name)s | %(message)s"},
                "verbose": {
                    "format": "%(asctime)s | %(levelname)s | %(name)s | %(module)s:%(lineno)d | %(message)s"
                },
            },
            "handlers": {
                "console": {"class": "logging.StreamHandler", "formatter": "default", "level": level},
                "app_file": _rotado(folder / "rma.log", level, 10),
                # auditoría se conserva más tiempo
                "audit_file": _rotado(folder / "audit.log", "INFO", 30),
                "jobs_file": _rotado(folder / "jobs.log", level, 10),
            },
            "root": {"level": level, "handlers": ["console", "app_file"]},
            "loggers": {
                "rma.audit": {"level": "INFO", "handlers": ["audit_file"], "propagate": True},
                "rma.jobs": {"level": level, "handlers": ["jobs_file"], "propagate": True},
                "uvicorn.access": {"level": "WARNING"},
                "sqlalchemy.engine": {"level": "WARNING"},
                "urllib3": {"level": "WARNING"},
            },
        }
    )


logger = logging.getLogger("rma")
