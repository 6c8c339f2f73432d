# tests/conftest.py
import os

os.environ.setdefault("APP_SECRET_KEY", "test-secret")
os.environ.setdefault("DATABASE_URL", "sqlite://")

from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

import pytest
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from core.database import Base, construir_engine, init_db
from core.models import Marca, Pais, Producto, Rma, Usuario
from core.models.enums import RmaEstado, RolUsuario
from core.services.services_access_scope import actor_desde_usuario

from modules.rma.services.services_rma_lifecycle import ArchivoCotizacion, ItemRma, RmaLifecycleEngine
from modules.rma.services.services_rma_notificaciones import NotificationResult
from modules.rma.services.services_rma_storage import BlobStorageError


PDF_BYTES = b"%PDF-1.4\n% cotizacion de prueba\n%%EOF\n"


# ============================
#   DOBLES DE PRUEBA
# ============================

class FixedClock:
    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


class RecordingGateway:
    """Registra cada intento; `fail` / `explode` simulan fallos del proveedor."""

    def __init__(self):
        self.calls = []
        self.fail = False
        self.explode = False

    def send(self, tipo, destinatario, payload):
        self.calls.append(SimpleNamespace(tipo=tipo, destinatario=destinatario, payload=payload))
        if self.explode:
            raise RuntimeError("proveedor caído")
        if self.fail:
            return NotificationResult(success=False, error="smtp rechazado")
        return NotificationResult(success=True, id=f"msg-{len(self.calls)}")

    def tipos(self):
        return [c.tipo.value for c in self.calls]


class FakeStorage:
    def __init__(self):
        self.uploads = {}
        self.deleted = []
        self.fail_upload = False
        self.fail_delete = False

    def upload(self, contenido, content_type, nombre):
        if self.fail_upload:
            raise BlobStorageError("bucket no disponible")
        url = f"mem://cotizaciones/{len(self.uploads) + 1}_{nombre}"
        self.uploads[url] = contenido
        return url

    def delete(self, url):
        if self.fail_delete:
            raise BlobStorageError("no se pudo borrar")
        self.deleted.append(url)
        self.uploads.pop(url, None)

    def leer(self, url):
        if url not in self.uploads:
            raise BlobStorageError("archivo no encontrado")
        return self.uploads[url]


# ============================
#   BD
# ============================

@pytest.fixture
def sql_engine():
    engine = construir_engine("sqlite://", poolclass=StaticPool)
    init_db(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(sql_engine):
    return sessionmaker(bind=sql_engine, autocommit=False, autoflush=False, future=True)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def seed(db):
    """
    CO / MX / CL.
    P1 ofrecido en CO, P2 solo en MX, P3 en CO y MX.
    """
    co, mx, cl = Pais(nombre="Colombia"), Pais(nombre="Mexico"), Pais(nombre="Chile")
    db.add_all([co, mx, cl])
    db.flush()

    marca = Marca(nombre="Ubiquiti", paises=[co, mx])
    otra = Marca(nombre="Mikrotik", paises=[mx])
    db.add_all([marca, otra])
    db.flush()

    p1 = Producto(nombre="Router P1", marca=marca, paises=[co])
    p2 = Producto(nombre="Switch P2", marca=otra, paises=[mx])
    p3 = Producto(nombre="Antena P3", marca=marca, paises=[co, mx])
    db.add_all([p1, p2, p3])

    user_co = Usuario(email="ana@acme.co", nombre="Ana", apellido="Rojas", empresa="Acme SAS", rol=RolUsuario.USER, paises=[co])
    user_co2 = Usuario(email="luis@beta.co", nombre="Luis", apellido="Mora", empresa="Beta Ltda", rol=RolUsuario.USER, paises=[co])
    user_mx = Usuario(email="juan@tacos.mx", nombre="Juan", empresa="Tacos SA", rol=RolUsuario.USER, paises=[mx])
    admin_co = Usuario(email="admin@co.local", nombre="Carla", rol=RolUsuario.ADMIN, paises=[co])
    admin_mx = Usuario(email="admin@mx.local", nombre="Mario", rol=RolUsuario.ADMIN, paises=[mx])
    admin_sin = Usuario(email="admin@none.local", nombre="Nadie", rol=RolUsuario.ADMIN, paises=[])
    superadmin = Usuario(email="root@rma.local", nombre="Root", rol=RolUsuario.SUPERADMIN, paises=[])
    db.add_all([user_co, user_co2, user_mx, admin_co, admin_mx, admin_sin, superadmin])
    db.commit()

    return SimpleNamespace(
        co=co.id,
        mx=mx.id,
        cl=cl.id,
        marca=marca.id,
        p1=p1.id,
        p2=p2.id,
        p3=p3.id,
        user_co=actor_desde_usuario(user_co),
        user_co2=actor_desde_usuario(user_co2),
        user_mx=actor_desde_usuario(user_mx),
        admin_co=actor_desde_usuario(admin_co),
        admin_mx=actor_desde_usuario(admin_mx),
        admin_sin=actor_desde_usuario(admin_sin),
        superadmin=actor_desde_usuario(superadmin),
    )


# ============================
#   ENGINE
# ============================

@pytest.fixture
def clock():
    return FixedClock(datetime(2026, 3, 10, 15, 0, tzinfo=timezone.utc))


@pytest.fixture
def gateway():
    return RecordingGateway()


@pytest.fixture
def storage():
    return FakeStorage()


@pytest.fixture
def rma_engine(gateway, storage, clock):
    return RmaLifecycleEngine(gateway=gateway, storage=storage, clock=clock, tracking_prefix="RMA")


@pytest.fixture
def pdf():
    return ArchivoCotizacion(contenido=PDF_BYTES, nombre="cotizacion.pdf", content_type="application/pdf")


@pytest.fixture
def nuevo_rma(db, seed, rma_engine):
    def _crear(owner=None, pais_id=None, productos=None):
        owner = owner or seed.user_co
        return rma_engine.submit(
            db,
            owner,
            pais_id=pais_id or seed.co,
            productos=productos or [ItemRma(producto_id=seed.p1, serial="SN-001", modelo="AX1")],
            direccion="Calle 1 # 2-3",
            codigo_postal="110111",
        )

    return _crear


@pytest.fixture
def llevar_a(db, seed, rma_engine, pdf):
    """Avanza un RMA por el camino feliz hasta `estado`."""
    camino = [
        (RmaEstado.AWAITING_GOODS, lambda a, i: rma_engine.aprobar(db, a, i)),
        (RmaEstado.EVALUATING, lambda a, i: rma_engine.marcar_evaluando(db, a, i)),
        (RmaEstado.PAYMENT, lambda a, i: rma_engine.marcar_pago(db, a, i, pdf)),
        (RmaEstado.PROCESSING, lambda a, i: rma_engine.marcar_en_proceso(db, a, i)),
        (RmaEstado.IN_SHIPPING, lambda a, i: rma_engine.marcar_en_envio(db, a, i, "DHL 123")),
        (RmaEstado.COMPLETE, lambda a, i: rma_engine.marcar_completado(db, a, i)),
    ]

    def _avanzar(rma_id, estado, actor=None):
        actor = actor or seed.admin_co
        rma = db.get(Rma, rma_id)
        for destino, paso in camino:
            if rma.estado == estado:
                break
            rma = paso(actor, rma_id)
            if destino == estado:
                break
        return rma

    return _avanzar
