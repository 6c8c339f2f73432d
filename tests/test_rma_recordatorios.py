# tests/test_rma_recordatorios.py
import threading
from datetime import datetime, timedelta, timezone

import pytest

from core.models import Rma
from core.models.enums import RmaEstado, TipoNotificacion
from core.models.time import ensure_utc_aware
from modules.rma.services.services_rma_recordatorios import (
    ReminderScheduler,
    _reclamar,
    dia_local_en_utc,
    dias_desde_pago,
    run_reminder_batch,
)

DIA = 24 * 60 * 60
TRES_DIAS = 3 * DIA
NOW = datetime(2026, 3, 10, 15, 0, tzinfo=timezone.utc)


@pytest.fixture
def en_pago(db, nuevo_rma, llevar_a):
    def _crear(*, updated_at, last=None):
        rma = llevar_a(nuevo_rma().id, RmaEstado.PAYMENT)
        rma.updated_at = updated_at
        rma.last_reminder_sent = last
        db.commit()
        return rma.id

    return _crear


def _batch(db, gateway, now=NOW, window=TRES_DIAS, **kw):
    return run_reminder_batch(
        db,
        gateway=gateway,
        now=now,
        window_seconds=window,
        tz_name="America/Bogota",
        **kw,
    )


def _recordatorios(gateway):
    return [c for c in gateway.calls if c.tipo == TipoNotificacion.RECORDATORIO_PAGO]


# ============================
#   SELECCIÓN + ENVÍO
# ============================

def test_never_reminded_and_older_than_window_is_sent(db, gateway, en_pago):
    rma_id = en_pago(updated_at=NOW - timedelta(days=4))
    updated_antes = db.get(Rma, rma_id).updated_at

    result = _batch(db, gateway)

    assert result["counters"]["sent"] == 1
    enviados = _recordatorios(gateway)
    assert len(enviados) == 1
    assert enviados[0].payload["rma_id"] == rma_id
    assert enviados[0].payload["dias_desde_pago"] == 4

    db.expire_all()
    rma = db.get(Rma, rma_id)
    assert ensure_utc_aware(rma.last_reminder_sent) == NOW
    assert rma.updated_at == updated_antes


def test_batch_is_idempotent_within_window(db, gateway, en_pago):
    en_pago(updated_at=NOW - timedelta(days=10), last=NOW - timedelta(days=1))

    primero = _batch(db, gateway)
    segundo = _batch(db, gateway)

    assert primero["counters"]["sent"] == 0
    assert segundo["counters"]["sent"] == 0
    assert _recordatorios(gateway) == []


def test_second_run_with_same_now_sends_nothing(db, gateway, en_pago):
    en_pago(updated_at=NOW - timedelta(days=4))

    _batch(db, gateway)
    _batch(db, gateway)

    assert len(_recordatorios(gateway)) == 1


def test_reminded_long_ago_is_sent_again(db, gateway, en_pago):
    rma_id = en_pago(updated_at=NOW - timedelta(days=20), last=NOW - timedelta(days=3, hours=1))

    _batch(db, gateway)

    enviados = _recordatorios(gateway)
    assert [c.payload["rma_id"] for c in enviados] == [rma_id]
    assert enviados[0].payload["dias_desde_pago"] == 3


def test_entered_payment_on_threshold_local_day_is_selected(db, gateway, en_pago):
    # threshold = 2026-03-07 15:00 UTC (10:00 Bogotá); +2h sigue siendo el mismo día local
    mismo_dia = en_pago(updated_at=NOW - timedelta(seconds=TRES_DIAS) + timedelta(hours=2))
    # 06:00 Bogotá del día siguiente: fuera de la ventana
    dia_siguiente = en_pago(updated_at=NOW - timedelta(seconds=TRES_DIAS) + timedelta(hours=20))

    _batch(db, gateway)

    enviados = [c.payload["rma_id"] for c in _recordatorios(gateway)]
    assert mismo_dia in enviados
    assert dia_siguiente not in enviados


def test_only_payment_status_is_eligible(db, gateway, nuevo_rma, llevar_a):
    rma = llevar_a(nuevo_rma().id, RmaEstado.EVALUATING)
    rma.updated_at = NOW - timedelta(days=30)
    db.commit()

    result = _batch(db, gateway)

    assert result["counters"]["scanned"] == 0


def test_failed_send_reverts_claim_and_batch_continues(db, gateway, en_pago):
    a = en_pago(updated_at=NOW - timedelta(days=5))
    b = en_pago(updated_at=NOW - timedelta(days=6))
    gateway.calls.clear()
    gateway.fail = True

    result = _batch(db, gateway)

    assert result["counters"]["failed"] == 2
    db.expire_all()
    assert db.get(Rma, a).last_reminder_sent is None
    assert db.get(Rma, b).last_reminder_sent is None

    gateway.fail = False
    result = _batch(db, gateway)
    assert result["counters"]["sent"] == 2


def test_batch_pages_through_all_eligible_rmas(db, gateway, en_pago):
    ids = [en_pago(updated_at=NOW - timedelta(days=4)) for _ in range(3)]

    result = _batch(db, gateway, batch_size=2)

    assert result["counters"]["sent"] == 3
    assert sorted(c.payload["rma_id"] for c in _recordatorios(gateway)) == sorted(ids)
    db.expire_all()
    assert all(ensure_utc_aware(db.get(Rma, i).last_reminder_sent) == NOW for i in ids)


def test_failed_sends_are_not_retried_within_same_run(db, gateway, en_pago):
    for d in (4, 5, 6):
        en_pago(updated_at=NOW - timedelta(days=d))
    gateway.calls.clear()
    gateway.fail = True

    result = _batch(db, gateway, batch_size=2)

    assert result["counters"]["scanned"] == 3
    assert result["counters"]["failed"] == 3


def test_claim_is_won_only_once(db, gateway, en_pago):
    rma_id = en_pago(updated_at=NOW - timedelta(days=4))

    assert _reclamar(db, rma_id, None, NOW) is True
    assert _reclamar(db, rma_id, None, NOW + timedelta(seconds=1)) is False


def test_concurrent_claim_skips_rma(db, session_factory, gateway, en_pago, monkeypatch):
    rma_id = en_pago(updated_at=NOW - timedelta(days=4))

    import modules.rma.services.services_rma_recordatorios as mod

    original = mod._reclamar

    def otro_runner_primero(session, rid, previo, now):
        other = session_factory()
        try:
            original(other, rid, previo, now - timedelta(seconds=5))
        finally:
            other.close()
        return original(session, rid, previo, now)

    monkeypatch.setattr(mod, "_reclamar", otro_runner_primero)

    result = _batch(db, gateway)

    assert result["counters"]["skipped"] == 1
    assert _recordatorios(gateway) == []
    db.expire_all()
    assert ensure_utc_aware(db.get(Rma, rma_id).last_reminder_sent) == NOW - timedelta(seconds=5)


def test_delay_between_sends(db, gateway, en_pago):
    for d in (4, 5, 6):
        en_pago(updated_at=NOW - timedelta(days=d))
    sleeps = []

    _batch(db, gateway, send_delay_seconds=1.0, sleep=sleeps.append)

    assert sleeps == [1.0, 1.0]


def test_stop_event_halts_between_items(db, gateway, en_pago):
    en_pago(updated_at=NOW - timedelta(days=4))
    stop = threading.Event()
    stop.set()

    result = _batch(db, gateway, stop_event=stop)

    assert result["counters"]["scanned"] == 0


# ============================
#   ESCALAMIENTO
# ============================

def test_days_since_payment_grows_with_elapsed_time(db, en_pago):
    rma = db.get(Rma, en_pago(updated_at=NOW - timedelta(days=1), last=NOW))

    dias = [dias_desde_pago(rma, NOW + timedelta(days=n, hours=1)) for n in (3, 8, 11)]

    assert dias == [3, 8, 11]
    assert dias == sorted(set(dias))


def test_days_since_payment_uses_updated_at_when_never_reminded(db, en_pago):
    rma = db.get(Rma, en_pago(updated_at=NOW - timedelta(days=9, hours=23)))
    assert dias_desde_pago(rma, NOW) == 9


def test_local_day_bounds_in_utc():
    inicio, fin = dia_local_en_utc(datetime(2026, 3, 7, 15, 0, tzinfo=timezone.utc), "America/Bogota")

    assert inicio == datetime(2026, 3, 7, 5, 0, tzinfo=timezone.utc)
    assert fin == datetime(2026, 3, 8, 5, 0, tzinfo=timezone.utc)


# ============================
#   SCHEDULER
# ============================

def _scheduler(session_factory, gateway, clock, **kw):
    kw.setdefault("window_seconds", TRES_DIAS)
    kw.setdefault("send_delay_seconds", 0)
    return ReminderScheduler(
        session_factory=session_factory,
        gateway=gateway,
        clock=clock,
        tz_name="America/Bogota",
        **kw,
    )


def test_next_execution_daily_local_time(session_factory, gateway, clock):
    sched = _scheduler(session_factory, gateway, clock, hour=9, minute=0, interval_seconds=None)

    # 08:00 Bogotá -> hoy 09:00 Bogotá
    assert sched.proxima_ejecucion(datetime(2026, 3, 10, 13, 0, tzinfo=timezone.utc)) == datetime(
        2026, 3, 10, 14, 0, tzinfo=timezone.utc
    )
    # 10:00 Bogotá -> mañana 09:00 Bogotá
    assert sched.proxima_ejecucion(datetime(2026, 3, 10, 15, 0, tzinfo=timezone.utc)) == datetime(
        2026, 3, 11, 14, 0, tzinfo=timezone.utc
    )


def test_next_execution_interval_mode(session_factory, gateway, clock):
    sched = _scheduler(session_factory, gateway, clock, interval_seconds=30)
    assert sched.proxima_ejecucion() == clock() + timedelta(seconds=30)


def test_manual_run_uses_same_routine(session_factory, gateway, clock, en_pago):
    en_pago(updated_at=NOW - timedelta(days=4))
    sched = _scheduler(session_factory, gateway, clock)

    result = sched.run_manual()

    assert result["counters"]["sent"] == 1
    assert sched.status()["last_result"] == result
    assert sched.status()["last_execution"] == clock().isoformat()


def test_start_stop_and_status(session_factory, gateway, clock):
    sched = _scheduler(session_factory, gateway, clock, interval_seconds=3600)

    assert sched.start() is True
    try:
        assert sched.start() is False
        assert sched.status()["running"] is True
        assert sched.status()["schedule"] == "cada 3600s"
    finally:
        sched.stop(timeout=5)

    assert sched.status()["running"] is False


def test_manual_run_works_after_scheduler_stopped(session_factory, gateway, clock, en_pago):
    en_pago(updated_at=NOW - timedelta(days=4))
    sched = _scheduler(session_factory, gateway, clock, interval_seconds=3600)

    sched.start()
    sched.stop(timeout=5)
    result = sched.run_manual()

    assert result["counters"]["sent"] == 1


def test_validate_configuration(session_factory, gateway, clock):
    ok = _scheduler(session_factory, gateway, clock, hour=9, minute=0)
    malo = _scheduler(session_factory, gateway, clock, hour=25, minute=0)
    malo.tz_name = "Marte/Olympus"

    assert ok.validar_configuracion()["valido"] is True
    resultado = malo.validar_configuracion()
    assert resultado["valido"] is False
    assert len(resultado["errores"]) == 2
