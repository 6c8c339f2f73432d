# core/database.py
from __future__ import annotations

from typing import Any

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker

from core.config import settings


Base = declarative_base()


def construir_engine(url: str, **kwargs: Any) -> Engine:
    """
    Engine para la URL dada. En SQLite activa foreign_keys y permite
    compartir la conexión entre hilos (scheduler + requests).
    """
    es_sqlite = url.startswith("sqlite")
    if es_sqlite:
        kwargs.setdefault("connect_args", {"check_same_thread": False})
    else:
        kwargs.setdefault("pool_pre_ping", True)

    eng = create_engine(url, future=True, **kwargs)

    if es_sqlite:
        @event.listens_for(eng, "connect")
        def _sqlite_fk(dbapi_conn, _record):
            cur = dbapi_conn.cursor()
            cur.execute("PRAGMA foreign_keys=ON")
            cur.close()

    return eng


engine = construir_engine(settings.DATABASE_URL)

SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False, future=True)


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db(bind: Engine | None = None) -> None:
    # registra las tablas en Base.metadata
    import core.models  # noqa: F401

    Base.metadata.create_all(bind=bind or engine)
