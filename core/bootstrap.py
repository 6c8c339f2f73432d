# core/bootstrap.py
from __future__ import annotations

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from core.database import SessionLocal
from core.logging_config import logger
from core.models import Usuario
from core.models.enums import RolUsuario


def ensure_superadmin(
    *,
    email: str,
    nombre: str = "Super",
    apellido: str | None = "Admin",
    empresa: str | None = None,
    db: Session | None = None,
) -> None:
    """
    Crea (si no existe) el superadmin global. Idempotente.

    Si ya existe, lo normaliza: rol SUPERADMIN + activo.
    El superadmin no necesita países (acceso implícito a todos).
    """
    email_norm = (email or "").strip().lower()
    if not email_norm:
        logger.warning("[BOOTSTRAP] superadmin no creado: email vacío")
        return

    own_session = db is None
    db = db or SessionLocal()
    try:
        u = db.query(Usuario).filter(func.lower(Usuario.email) == email_norm).first()
        if u:
            changed = False

            if u.rol != RolUsuario.SUPERADMIN:
                u.rol = RolUsuario.SUPERADMIN
                changed = True

            if int(getattr(u, "activo", 0) or 0) != 1:
                u.activo = 1
                changed = True

            if changed:
                db.commit()
                logger.info("[BOOTSTRAP] superadmin existente normalizado email=%s", email_norm)
            else:
                logger.info("[BOOTSTRAP] superadmin ya existe email=%s", email_norm)
            return

        u = Usuario(
            email=email_norm,
            nombre=(nombre or "Super").strip(),
            apellido=apellido,
            empresa=empresa,
            rol=RolUsuario.SUPERADMIN,
            activo=1,
        )
        db.add(u)
        db.commit()
        logger.info("[BOOTSTRAP] superadmin creado email=%s", email_norm)

    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("[BOOTSTRAP] error creando superadmin: %s", exc)
    finally:
        if own_session:
            db.close()
