# core/models/time.py
from __future__ import annotations

from datetime import datetime, timezone


def utcnow() -> datetime:
    """Ahora en UTC tz-aware (default de columnas y reloj del sistema)."""
    return datetime.now(timezone.utc)


def ensure_utc_aware(dt: datetime | None) -> datetime | None:
    """
    Normaliza datetime a UTC tz-aware.
    - SQLite devuelve naive: asumimos UTC.
    - Si dt es aware, lo convertimos a UTC.
    """
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)
