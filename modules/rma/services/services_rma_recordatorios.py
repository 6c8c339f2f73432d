# modules/rma/services/services_rma_recordatorios.py
"""
Recordatorios de pago – RMA (job + scheduler)

Job (1 ciclo):
- threshold = now - ventana
- Elegibles (estado PAYMENT):
    a) sin recordatorio previo y updated_at dentro del día local del threshold
    b) last_reminder_sent <= threshold
    c) sin recordatorio previo y updated_at <= threshold
- Claim optimista por RMA (UPDATE ... WHERE last_reminder_sent IS <leído>) + commit
  => dos runners nunca envían el mismo recordatorio
- Envío; si falla se revierte el claim (el RMA sigue elegible)
- Páginas de REMINDER_BATCH_SIZE por cursor de id hasta agotar elegibles

Scheduler:
- 1 thread + Event de parada
- Diario a HH:MM en TIMEZONE, o intervalo fijo (REMINDER_INTERVAL_SECONDS)
- Disparo manual usa la misma rutina; el Event de parada solo corta corridas del thread
"""

from __future__ import annotations

import threading
import time
from dataclasses import asdict, dataclass
from datetime import datetime, time as dtime, timedelta, timezone
from functools import partial
from typing import Any, Callable, Dict, List, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from sqlalchemy import and_, or_, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from core.config import settings
from core.logging_config import logger
from core.models import Rma
from core.models.enums import RmaEstado, TipoNotificacion
from core.models.time import ensure_utc_aware, utcnow

from .services_rma_core import destinatario_de, registrar_evento
from .services_rma_logging import log_rma_error, log_rma_event
from .services_rma_mensajes import nivel_urgencia
from .services_rma_notificaciones import NotificationGateway, enviar_seguro


job_logger = logger.getChild("jobs")

SEGUNDOS_DIA = 24 * 60 * 60


# =========================================================
# RESULT
# =========================================================

@dataclass
class ReminderJobCounters:
    scanned: int = 0
    sent: int = 0
    skipped: int = 0
    failed: int = 0
    errors: int = 0


def _as_iso(dt: Optional[datetime]) -> Optional[str]:
    return dt.isoformat() if dt else None


# =========================================================
# HELPERS
# =========================================================

def dias_desde_pago(rma: Rma, now: datetime) -> int:
    """
    Días completos entre now y last_reminder_sent (o updated_at si nunca se envió).
    """
    base = ensure_utc_aware(rma.last_reminder_sent or rma.updated_at)
    if base is None:
        return 0
    delta = ensure_utc_aware(now) - base
    return max(0, int(delta.total_seconds() // SEGUNDOS_DIA))


def dia_local_en_utc(momento: datetime, tz_name: str) -> tuple[datetime, datetime]:
    """
    [inicio, fin) del día calendario local de `momento`, expresado en UTC.
    """
    tz = ZoneInfo(tz_name)
    local = ensure_utc_aware(momento).astimezone(tz)
    inicio = datetime.combine(local.date(), dtime.min, tzinfo=tz)
    fin = datetime.combine(local.date() + timedelta(days=1), dtime.min, tzinfo=tz)
    return inicio.astimezone(timezone.utc), fin.astimezone(timezone.utc)


def condicion_elegible(now: datetime, window_seconds: int, tz_name: str):
    threshold = ensure_utc_aware(now) - timedelta(seconds=max(0, int(window_seconds)))
    inicio_dia, fin_dia = dia_local_en_utc(threshold, tz_name)

    return and_(
        Rma.estado == RmaEstado.PAYMENT,
        or_(
            and_(
                Rma.last_reminder_sent.is_(None),
                Rma.updated_at >= inicio_dia,
                Rma.updated_at < fin_dia,
            ),
            Rma.last_reminder_sent <= threshold,
            and_(
                Rma.last_reminder_sent.is_(None),
                Rma.updated_at <= threshold,
            ),
        ),
    )


def _q_elegibles(
    db: Session,
    *,
    now: datetime,
    window_seconds: int,
    tz_name: str,
    limit: int,
    despues_de: int = 0,
) -> List[Rma]:
    """
    Página de elegibles con id > despues_de (cursor por id).
    Los reclamados salen de la condición; los revertidos no se repiten en la misma corrida.
    """
    stmt = (
        select(Rma)
        .where(condicion_elegible(now, window_seconds, tz_name), Rma.id > int(despues_de))
        .order_by(Rma.id.asc())
        .limit(int(limit))
    )
    return list(db.execute(stmt).scalars().all())


def _guardia_previo(previo: Optional[datetime]):
    if previo is None:
        return Rma.last_reminder_sent.is_(None)
    return Rma.last_reminder_sent == previo


def _reclamar(db: Session, rma_id: int, previo: Optional[datetime], now: datetime) -> bool:
    """
    Claim optimista: solo gana quien ve el mismo last_reminder_sent que leyó.
    updated_at se conserva (el claim no es un cambio funcional del RMA).
    """
    res = db.execute(
        update(Rma)
        .where(Rma.id == rma_id, Rma.estado == RmaEstado.PAYMENT, _guardia_previo(previo))
        .values(last_reminder_sent=now, updated_at=Rma.updated_at)
        .execution_options(synchronize_session=False)
    )
    db.commit()
    return (res.rowcount or 0) == 1


def _revertir_claim(db: Session, rma_id: int, previo: Optional[datetime], now: datetime) -> bool:
    res = db.execute(
        update(Rma)
        .where(Rma.id == rma_id, Rma.last_reminder_sent == now)
        .values(last_reminder_sent=previo, updated_at=Rma.updated_at)
        .execution_options(synchronize_session=False)
    )
    db.commit()
    return (res.rowcount or 0) == 1


# =========================================================
# JOB
# =========================================================

def run_reminder_batch(
    db: Session,
    *,
    gateway: NotificationGateway,
    now: Optional[datetime] = None,
    window_seconds: Optional[int] = None,
    tz_name: Optional[str] = None,
    batch_size: Optional[int] = None,
    send_delay_seconds: float = 0.0,
    sleep: Optional[Callable[[float], Any]] = None,
    stop_event: Optional[threading.Event] = None,
) -> Dict[str, Any]:
    """
    Ejecuta 1 ciclo de recordatorios de pago.
    """
    ts = ensure_utc_aware(now) if now else utcnow()
    window = settings.reminder_window_seconds if window_seconds is None else max(0, int(window_seconds))
    tz_name = tz_name or settings.TIMEZONE
    limit = int(batch_size or settings.REMINDER_BATCH_SIZE)
    counters = ReminderJobCounters()

    job_logger.info(
        "[JOB] recordatorios_pago start now=%s window_s=%s tz=%s batch=%s",
        _as_iso(ts),
        window,
        tz_name,
        limit,
    )

    def _detenido() -> bool:
        return stop_event is not None and stop_event.is_set()

    cursor = 0
    pagina = 0
    enviados_previos = 0
    while not _detenido():
        rmas = _q_elegibles(db, now=ts, window_seconds=window, tz_name=tz_name, limit=limit, despues_de=cursor)
        if not rmas:
            break

        # snapshot antes de cualquier commit (expire_on_commit)
        candidatos = [
            (int(r.id), r.last_reminder_sent, dias_desde_pago(r, ts), r.cotizacion)
            for r in rmas
        ]
        cursor = candidatos[-1][0]
        pagina += 1
        job_logger.info("[JOB] recordatorios_pago pagina=%s found=%s", pagina, len(candidatos))

        for rma_id, previo, dias, cotizacion_url in candidatos:
            if _detenido():
                job_logger.info("[JOB] recordatorios_pago detenido antes de rma_id=%s", rma_id)
                break
            pausa = None
            if enviados_previos and send_delay_seconds > 0 and sleep is not None:
                pausa = partial(sleep, send_delay_seconds)
            if _procesar_candidato(
                db,
                gateway,
                counters,
                rma_id=rma_id,
                previo=previo,
                dias=dias,
                cotizacion_url=cotizacion_url,
                ts=ts,
                pausa=pausa,
            ):
                enviados_previos += 1

        if len(candidatos) < limit:
            break

    job_logger.info(
        "[JOB] recordatorios_pago end pages=%s scanned=%s sent=%s skipped=%s failed=%s errors=%s",
        pagina,
        counters.scanned,
        counters.sent,
        counters.skipped,
        counters.failed,
        counters.errors,
    )

    return {
        "ok": True,
        "now": _as_iso(ts),
        "window_seconds": window,
        "counters": asdict(counters),
    }


def _procesar_candidato(
    db: Session,
    gateway: NotificationGateway,
    counters: ReminderJobCounters,
    *,
    rma_id: int,
    previo: Optional[datetime],
    dias: int,
    cotizacion_url: Optional[str],
    ts: datetime,
    pausa: Optional[Callable[[], Any]] = None,
) -> bool:
    """
    Claim + envío de un RMA (pausa entre envíos tras ganar el claim).
    Retorna True si hubo intento de envío.
    """
    counters.scanned += 1
    try:
        if not _reclamar(db, rma_id, previo, ts):
            counters.skipped += 1
            return False

        if pausa is not None:
            pausa()

        rma = db.get(Rma, rma_id)
        nivel = nivel_urgencia(dias)
        result = enviar_seguro(
            gateway,
            TipoNotificacion.RECORDATORIO_PAGO,
            destinatario_de(rma),
            {
                "rma_id": rma_id,
                "dias_desde_pago": dias,
                "nivel_urgencia": nivel,
                "cotizacion_url": cotizacion_url,
            },
        )

        if not result.success:
            _revertir_claim(db, rma_id, previo, ts)
            counters.failed += 1
            log_rma_error("recordatorio_fallido", rma_id=rma_id, error=result.error, dias=dias)
            return True

        counters.sent += 1
        log_rma_event(
            "recordatorio_enviado",
            rma_id=rma_id,
            dias=dias,
            nivel_urgencia=nivel,
            notificacion_id=result.id,
        )
        _registrar_recordatorio(db, rma, dias=dias, nivel=nivel, notificacion_id=result.id)
        return True

    except SQLAlchemyError as e:
        db.rollback()
        counters.errors += 1
        job_logger.exception("[JOB] recordatorios_pago error rma_id=%s err=%s", rma_id, str(e))
        return False


def _registrar_recordatorio(db: Session, rma: Rma, *, dias: int, nivel: str, notificacion_id: Optional[str]) -> None:
    try:
        registrar_evento(
            db,
            rma,
            accion="RECORDATORIO_PAGO",
            actor="sistema",
            metadata={"dias": dias, "nivel_urgencia": nivel, "id": notificacion_id},
        )
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        log_rma_error("recordatorio_historial_fallido", rma_id=rma.id, error=exc)


# =========================================================
# SCHEDULER
# =========================================================

class ReminderScheduler:
    def __init__(
        self,
        *,
        session_factory: sessionmaker,
        gateway: NotificationGateway,
        clock: Callable[[], datetime] = utcnow,
        tz_name: Optional[str] = None,
        hour: Optional[int] = None,
        minute: Optional[int] = None,
        interval_seconds: Optional[int] = None,
        window_seconds: Optional[int] = None,
        send_delay_seconds: Optional[float] = None,
        batch_size: Optional[int] = None,
        sleep: Optional[Callable[[float], Any]] = None,
    ) -> None:
        self.session_factory = session_factory
        self.gateway = gateway
        self.clock = clock
        self.tz_name = tz_name or settings.TIMEZONE
        self.hour = settings.REMINDER_HOUR if hour is None else int(hour)
        self.minute = settings.REMINDER_MINUTE if minute is None else int(minute)
        self.interval_seconds = settings.REMINDER_INTERVAL_SECONDS if interval_seconds is None else interval_seconds
        self.window_seconds = settings.reminder_window_seconds if window_seconds is None else int(window_seconds)
        self.send_delay_seconds = (
            settings.REMINDER_SEND_DELAY_SECONDS if send_delay_seconds is None else float(send_delay_seconds)
        )
        self.batch_size = batch_size or settings.REMINDER_BATCH_SIZE

        self._stop = threading.Event()
        self._sleep = sleep
        self._run_lock = threading.Lock()
        self._thread: Optional[threading.Thread] = None
        self._proxima: Optional[datetime] = None
        self._ultima_ejecucion: Optional[datetime] = None
        self._ultimo_resultado: Optional[Dict[str, Any]] = None

    # -------------------------
    # CICLO DE VIDA
    # -------------------------

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> bool:
        if self.running:
            return False

        self._stop.clear()
        self._thread = threading.Thread(target=self._loop, name="rma-reminder-scheduler", daemon=True)
        self._thread.start()
        job_logger.info("[SCHEDULER] iniciado modo=%s tz=%s", self._descripcion(), self.tz_name)
        return True

    def stop(self, timeout: float = 10.0) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout=timeout)
        self._thread = None
        self._proxima = None
        job_logger.info("[SCHEDULER] detenido")

    def _loop(self) -> None:
        while not self._stop.is_set():
            self._proxima = self.proxima_ejecucion()
            espera = (self._proxima - self.clock()).total_seconds()
            if self._stop.wait(max(0.0, espera)):
                break
            try:
                self.run_reminder_batch(stop_event=self._stop)
            except Exception:
                job_logger.exception("[SCHEDULER] error no controlado en ciclo de recordatorios")

    # -------------------------
    # EJECUCIÓN
    # -------------------------

    def run_reminder_batch(
        self,
        now: Optional[datetime] = None,
        *,
        stop_event: Optional[threading.Event] = None,
    ) -> Dict[str, Any]:
        if self._sleep is not None:
            pausa = self._sleep
        elif stop_event is not None:
            # una parada interrumpe la espera entre envíos
            pausa = stop_event.wait
        else:
            pausa = time.sleep

        with self._run_lock:
            ts = now or self.clock()
            db = self.session_factory()
            try:
                result = run_reminder_batch(
                    db,
                    gateway=self.gateway,
                    now=ts,
                    window_seconds=self.window_seconds,
                    tz_name=self.tz_name,
                    batch_size=self.batch_size,
                    send_delay_seconds=self.send_delay_seconds,
                    sleep=pausa,
                    stop_event=stop_event,
                )
            finally:
                db.close()

            self._ultima_ejecucion = ts
            self._ultimo_resultado = result
            return result

    def run_manual(self) -> Dict[str, Any]:
        job_logger.info("[SCHEDULER] ejecución manual solicitada")
        return self.run_reminder_batch()

    # -------------------------
    # ESTADO / CONFIG
    # -------------------------

    def proxima_ejecucion(self, desde: Optional[datetime] = None) -> datetime:
        base = ensure_utc_aware(desde) if desde else self.clock()

        if self.interval_seconds:
            return base + timedelta(seconds=int(self.interval_seconds))

        tz = ZoneInfo(self.tz_name)
        local = base.astimezone(tz)
        objetivo = datetime.combine(local.date(), dtime(self.hour, self.minute), tzinfo=tz)
        if objetivo <= local:
            objetivo = datetime.combine(local.date() + timedelta(days=1), dtime(self.hour, self.minute), tzinfo=tz)
        return objetivo.astimezone(timezone.utc)

    def _descripcion(self) -> str:
        if self.interval_seconds:
            return f"cada {int(self.interval_seconds)}s"
        return f"diario {self.hour:02d}:{self.minute:02d}"

    def status(self) -> Dict[str, Any]:
        return {
            "running": self.running,
            "schedule": self._descripcion(),
            "timezone": self.tz_name,
            "next_execution": _as_iso(self._proxima),
            "window_seconds": self.window_seconds,
            "send_delay_seconds": self.send_delay_seconds,
            "last_execution": _as_iso(self._ultima_ejecucion),
            "last_result": self._ultimo_resultado,
        }

    def validar_configuracion(self) -> Dict[str, Any]:
        errores: List[str] = []
        advertencias: List[str] = []

        try:
            ZoneInfo(self.tz_name)
        except (ZoneInfoNotFoundError, ValueError):
            errores.append(f"Zona horaria inválida: {self.tz_name}")

        if not self.interval_seconds:
            if not 0 <= int(self.hour) <= 23:
                errores.append(f"Hora inválida: {self.hour}")
            if not 0 <= int(self.minute) <= 59:
                errores.append(f"Minuto inválido: {self.minute}")
        elif int(self.interval_seconds) <= 0:
            errores.append(f"Intervalo inválido: {self.interval_seconds}")

        if not settings.RESEND_API_KEY:
            advertencias.append("RESEND_API_KEY no configurada: las notificaciones solo se registran en logs")

        return {"valido": not errores, "errores": errores, "advertencias": advertencias}
