# main.py
from contextlib import asynccontextmanager

from fastapi import FastAPI

from core.bootstrap import ensure_superadmin
from core.config import settings
from core.database import SessionLocal, init_db
from core.logging_config import setup_logging, logger
from core.models.time import utcnow

# Routers
from core.routes.routes_catalogo import router as catalogo_router
from modules.rma.routes.routes_rma import router as rma_router
from modules.rma.routes.routes_admin_scheduler import router as scheduler_router

from modules.rma.services.services_rma_lifecycle import RmaLifecycleEngine
from modules.rma.services.services_rma_notificaciones import construir_gateway_desde_settings
from modules.rma.services.services_rma_recordatorios import ReminderScheduler
from modules.rma.services.services_rma_storage import LocalBlobStorage


# ============================
#   APP + LIFESPAN
# ============================

@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()

    ensure_superadmin(
        email=settings.SUPERADMIN_EMAIL,
        nombre=settings.SUPERADMIN_NOMBRE,
        apellido=settings.SUPERADMIN_APELLIDO,
        empresa=settings.SUPERADMIN_EMPRESA,
    )

    gateway = construir_gateway_desde_settings()
    app.state.rma_engine = RmaLifecycleEngine(gateway=gateway, storage=LocalBlobStorage())
    app.state.reminder_scheduler = ReminderScheduler(session_factory=SessionLocal, gateway=gateway)

    scheduler = app.state.reminder_scheduler
    validacion = scheduler.validar_configuracion()
    for msg in validacion["advertencias"]:
        logger.warning("[SCHEDULER] %s", msg)

    if settings.scheduler_enabled:
        if validacion["valido"]:
            scheduler.start()
        else:
            logger.error("[SCHEDULER] no iniciado: %s", "; ".join(validacion["errores"]))
    else:
        logger.info("[SCHEDULER] deshabilitado (APP_ENV=%s ENABLE_SCHEDULER=%s)", settings.APP_ENV, settings.ENABLE_SCHEDULER)

    yield

    scheduler.stop()


setup_logging()

app = FastAPI(
    title="RMA Orbion",
    version="1.0.0",
    debug=settings.APP_DEBUG,
    lifespan=lifespan,
)

logger.info("RMA Orbion iniciado")


# ============================
#   HEALTH
# ============================

@app.get("/health", include_in_schema=False)
async def health():
    return {"status": "ok", "env": settings.APP_ENV, "timestamp_utc": utcnow().isoformat()}


# ============================
#   ROUTERS
# ============================

app.include_router(rma_router)
app.include_router(scheduler_router)
app.include_router(catalogo_router)
