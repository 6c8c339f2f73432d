# core/security.py
"""
Seguridad / Sesiones – RMA Orbion

✔ Payload de sesión firmado (itsdangerous TimestampSigner + max_age)
✔ Cookie o header Authorization: Bearer <token>
✔ Actor recargado desde BD en cada request (rol y países al día)
✔ Dependencias FastAPI: require_actor_dep / require_roles_dep / require_superadmin_dep

La emisión de credenciales (login) vive fuera de este servicio:
firmar_sesion() es el contrato compartido con el emisor.
"""

from __future__ import annotations

import json
from typing import Any, Optional

from fastapi import Depends, HTTPException, Request, status
from itsdangerous import BadSignature, TimestampSigner
from sqlalchemy.orm import Session, selectinload

from core.config import settings
from core.database import get_db
from core.models import Usuario
from core.models.enums import RolUsuario
from core.models.time import utcnow
from core.services.services_access_scope import Actor, actor_desde_usuario


# signer de sesión (firma + timestamp)
signer = TimestampSigner(settings.APP_SECRET_KEY)


# =========================================================
# PAYLOAD
# =========================================================

def firmar_sesion(usuario_id: int) -> str:
    payload = {"user_id": int(usuario_id), "ts": utcnow().isoformat()}
    data = json.dumps(payload, ensure_ascii=False, separators=(",", ":")).encode("utf-8")
    return signer.sign(data).decode("utf-8")


def _decode_payload(token: str) -> dict | None:
    """
    Verifica firma + max_age y retorna payload dict.
    """
    try:
        raw = signer.unsign(token, max_age=int(settings.SESSION_MAX_AGE_SECONDS))
        parsed = json.loads(raw.decode("utf-8", errors="strict"))
        return parsed if isinstance(parsed, dict) else None
    except (BadSignature, json.JSONDecodeError, UnicodeDecodeError):
        return None


def _token_desde_request(request: Request) -> Optional[str]:
    auth = request.headers.get("Authorization") or ""
    if auth.lower().startswith("bearer "):
        token = auth[7:].strip()
        if token:
            return token
    return request.cookies.get(settings.SESSION_COOKIE_NAME)


# =========================================================
# CURRENT ACTOR (AUTH)
# =========================================================

def get_current_actor(request: Request, db: Session) -> Actor | None:
    token = _token_desde_request(request)
    if not token:
        return None

    payload = _decode_payload(token)
    if not payload:
        return None

    try:
        user_id = int(payload.get("user_id"))
    except (TypeError, ValueError):
        return None

    usuario = (
        db.query(Usuario)
        .options(selectinload(Usuario.paises))
        .filter(Usuario.id == user_id, Usuario.activo == 1)
        .first()
    )
    if not usuario:
        return None
    return actor_desde_usuario(usuario)


# =========================================================
# DEPENDENCIES (FASTAPI)
# =========================================================

def _no_autenticado() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="No autenticado.",
    )


def require_actor_dep(request: Request, db: Session = Depends(get_db)) -> Actor:
    actor = get_current_actor(request, db)
    if not actor:
        raise _no_autenticado()
    return actor


def _norm_role(x: Any) -> str:
    return str(getattr(x, "value", x) or "").strip().upper()


def require_roles_dep(*allowed_roles: str | RolUsuario):
    allowed = {_norm_role(r) for r in allowed_roles}

    def dependency(actor: Actor = Depends(require_actor_dep)) -> Actor:
        if _norm_role(actor.rol) not in allowed:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="No tienes permisos para acceder a este recurso.",
            )
        return actor

    return dependency


require_superadmin_dep = require_roles_dep(RolUsuario.SUPERADMIN)
