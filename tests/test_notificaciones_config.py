# tests/test_notificaciones_config.py
import base64
from types import SimpleNamespace

import pytest
import requests

from core.config import Settings
from core.models.enums import TipoNotificacion
from modules.rma.services.services_rma_mensajes import construir_mensaje, nivel_urgencia
from modules.rma.services.services_rma_notificaciones import (
    Adjunto,
    Destinatario,
    LoggingNotificationGateway,
    NotificationResult,
    ResendNotificationGateway,
    enviar_seguro,
)
from modules.rma.services.services_rma_storage import BlobStorageError, LocalBlobStorage


DEST = Destinatario(email="ana@acme.co", nombre="Ana", apellido="Rojas")


# ============================
#   MENSAJES
# ============================

@pytest.mark.parametrize(
    "dias, nivel",
    [(3, "normal"), (7, "normal"), (8, "urgente"), (10, "urgente"), (11, "critico")],
)
def test_urgency_levels(dias, nivel):
    assert nivel_urgencia(dias) == nivel


def test_reminder_subject_escalates():
    asuntos = [
        construir_mensaje(TipoNotificacion.RECORDATORIO_PAGO, DEST, {"rma_id": 5, "dias_desde_pago": d}).asunto
        for d in (4, 8, 12)
    ]

    assert not asuntos[0].startswith(("URGENTE", "CRÍTICO"))
    assert asuntos[1].startswith("URGENTE: ")
    assert asuntos[2].startswith("CRÍTICO: ")


def test_rejection_message_includes_reason():
    msg = construir_mensaje(TipoNotificacion.RMA_RECHAZADO, DEST, {"rma_id": 9, "razon_rechazo": "fuera de garantía"})

    assert "fuera de garantía" in msg.texto
    assert msg.texto.startswith("Hola Ana Rojas,")


# ============================
#   GATEWAYS
# ============================

class FakeResponse:
    def __init__(self, status=200, data=None):
        self.status_code = status
        self._data = data or {}
        self.content = b"{}"

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} error")

    def json(self):
        return self._data


class FakeSession:
    def __init__(self, response=None, exc=None):
        self.response = response
        self.exc = exc
        self.posts = []

    def post(self, url, **kwargs):
        self.posts.append(SimpleNamespace(url=url, **kwargs))
        if self.exc:
            raise self.exc
        return self.response


def _resend(session):
    return ResendNotificationGateway(api_key="re_test", from_email="rma@acme.co", session=session)


def test_resend_gateway_posts_message_with_attachment():
    session = FakeSession(FakeResponse(data={"id": "em_123"}))
    payload = {"rma_id": 3, "cotizacion_url": "mem://x", "adjunto": Adjunto(nombre="cot.pdf", contenido=b"%PDF")}

    result = _resend(session).send(TipoNotificacion.RMA_COTIZACION, DEST, payload)

    assert result == NotificationResult(success=True, id="em_123")
    post = session.posts[0]
    assert post.headers["Authorization"] == "Bearer re_test"
    assert post.json["to"] == ["ana@acme.co"]
    assert post.json["attachments"][0]["content"] == base64.b64encode(b"%PDF").decode("ascii")


@pytest.mark.parametrize(
    "session",
    [
        FakeSession(exc=requests.ConnectionError("sin red")),
        FakeSession(FakeResponse(status=422)),
    ],
)
def test_resend_gateway_failures_are_values(session):
    result = _resend(session).send(TipoNotificacion.RMA_APROBADO, DEST, {"rma_id": 1})

    assert result.success is False
    assert result.error


def test_logging_gateway_always_succeeds():
    result = LoggingNotificationGateway().send(TipoNotificacion.RMA_COMPLETADO, DEST, {"rma_id": 1})
    assert result.success and result.id


def test_safe_send_swallows_gateway_exceptions():
    class Boom:
        def send(self, *a):
            raise RuntimeError("boom")

    class Nada:
        def send(self, *a):
            return None

    assert enviar_seguro(Boom(), TipoNotificacion.RMA_APROBADO, DEST, {"rma_id": 1}).error == "boom"
    assert enviar_seguro(Nada(), TipoNotificacion.RMA_APROBADO, DEST, {"rma_id": 1}).success is False


# ============================
#   STORAGE LOCAL
# ============================

def test_local_storage_upload_read_delete(tmp_path):
    storage = LocalBlobStorage(tmp_path)

    url = storage.upload(b"%PDF-1.4", "application/pdf", "../../cotización final.pdf")

    assert url.startswith("file://")
    assert url.endswith("_cotizacin_final.pdf")
    assert storage.leer(url) == b"%PDF-1.4"

    storage.delete(url)
    with pytest.raises(BlobStorageError):
        storage.leer(url)


def test_local_storage_rejects_paths_outside_root(tmp_path):
    storage = LocalBlobStorage(tmp_path / "root")
    with pytest.raises(BlobStorageError):
        storage.delete((tmp_path / "otro.pdf").as_uri())


def test_local_storage_rejects_empty_content(tmp_path):
    with pytest.raises(BlobStorageError):
        LocalBlobStorage(tmp_path).upload(b"", "application/pdf", "x.pdf")


# ============================
#   SETTINGS
# ============================

@pytest.fixture
def env_limpio(monkeypatch):
    for var in (
        "TEST_MODE",
        "APP_ENV",
        "ENABLE_SCHEDULER",
        "REMINDER_INTERVAL_SECONDS",
        "REMINDER_WINDOW_SECONDS",
        "REMINDER_WINDOW_DAYS",
    ):
        monkeypatch.delenv(var, raising=False)


def test_settings_defaults(env_limpio):
    s = Settings(_env_file=None, APP_SECRET_KEY="x")

    assert s.reminder_window_seconds == 3 * 24 * 60 * 60
    assert s.REMINDER_INTERVAL_SECONDS is None
    assert s.scheduler_enabled is False


def test_settings_test_mode_speeds_up_cycle(env_limpio):
    s = Settings(_env_file=None, APP_SECRET_KEY="x", TEST_MODE=True)

    assert s.REMINDER_INTERVAL_SECONDS == 30
    assert s.reminder_window_seconds == 0


def test_settings_test_mode_respects_explicit_values(env_limpio):
    s = Settings(_env_file=None, APP_SECRET_KEY="x", TEST_MODE=True, REMINDER_WINDOW_DAYS=2)

    assert s.reminder_window_seconds == 2 * 24 * 60 * 60


def test_scheduler_enabled_in_production(env_limpio):
    s = Settings(_env_file=None, APP_SECRET_KEY="x", APP_ENV="production")

    assert s.scheduler_enabled is True
    assert s.APP_DEBUG is False
