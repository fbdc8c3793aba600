"""
SmartBooking backend entry point

Wires the store selector, the reconciliation job and its scheduled worker into
a FastAPI app. Run with: uvicorn smartbooking.main:app
"""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request

from smartbooking.api.sync_routes import router as sync_router
from smartbooking.config import APPOINTMENT_CACHE_ENABLED, get_redis_client
from smartbooking.startup import build_sync_services, initialize_sync_services
from smartbooking.utils.logging_config import configure_logging
from smartbooking.utils.time_utils import utc_now

configure_logging()
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events"""
    logger.info("Starting SmartBooking backend...")

    redis_client = get_redis_client() if APPOINTMENT_CACHE_ENABLED else None
    services = build_sync_services(redis_client=redis_client)
    await initialize_sync_services(services)
    app.state.sync_services = services

    try:
        from smartbooking.workers.reconciliation_worker import start_worker
        await start_worker(services.job, services.probe, services.appointment_service)
    except Exception as e:
        logger.error(f"Failed to start reconciliation worker: {str(e)}")

    yield

    logger.info("Shutting down services...")

    try:
        from smartbooking.workers.reconciliation_worker import stop_worker
        await stop_worker()
    except Exception as e:
        logger.error(f"Error stopping reconciliation worker: {str(e)}")

    if redis_client is not None:
        await redis_client.aclose()

    logger.info("SmartBooking backend shutdown complete")


app = FastAPI(
    title="SmartBooking Backend",
    description="Appointment store with primary/fallback selection and background reconciliation.",
    version="1.0.0",
    lifespan=lifespan,
)

app.include_router(sync_router)


@app.get("/")
async def root(request: Request):
    """API connectivity check"""
    services = getattr(request.app.state, "sync_services", None)
    connected = services is not None and services.selector.is_primary_connected()
    return {
        "message": "SmartBooking API",
        "status": "online",
        "database": "connected" if connected else "using local storage",
        "timestamp": utc_now().isoformat(),
    }
