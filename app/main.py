import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from starlette.middleware.base import BaseHTTPMiddleware
from app.config import settings
from app.database import engine, Base
from app.routes import auth, catalog, loans, queue, events, sanctions, wellness, notifications
from app.services.errors import LoanEngineError
from app.services.notifications import notification_service
from app.services.sweeper import create_scheduler

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


class LoggingMiddleware(BaseHTTPMiddleware):
    """Middleware to log incoming requests for debugging."""
    async def dispatch(self, request: Request, call_next):
        auth_header = request.headers.get("Authorization")
        client_ip = request.client.host if request.client else "unknown"
        logger.info(f"{request.method} {request.url.path} - IP: {client_ip} - Auth: {'Present' if auth_header else 'Missing'}")
        if auth_header:
            # first 20 chars only
            logger.debug(f"Token preview: {auth_header[:20]}...")

        response = await call_next(request)
        return response


Base.metadata.create_all(bind=engine)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Start/stop the MQTT notifier and the background sweep with FastAPI."""
    logger.info("Starting notification service...")
    notification_service.connect()

    scheduler = None
    if settings.scheduler_enabled:
        scheduler = create_scheduler()
        scheduler.start()
        logger.info(f"Sweep scheduler started (every {settings.sweep_interval_minutes} min, timezone {scheduler.timezone})")

    yield

    if scheduler is not None and scheduler.running:
        scheduler.shutdown(wait=False)
        logger.info("Sweep scheduler stopped")
    logger.info("Stopping notification service...")
    notification_service.disconnect()


app = FastAPI(
    title="Wellness Resource Loan API",
    description="Backend API for wellness resource loans, queues, events and sanctions",
    version="1.0.0",
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)


@app.exception_handler(LoanEngineError)
async def loan_engine_exception_handler(request: Request, exc: LoanEngineError):
    logger.warning(f"Rejected {request.method} {request.url.path}: {exc.reason} - {exc.message}")
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message, "reason": exc.reason},
    )


# Logging middleware (last, to log everything)
app.add_middleware(LoggingMiddleware)

# Include routers
app.include_router(auth.router)
app.include_router(catalog.router)
app.include_router(loans.router)
app.include_router(queue.router)
app.include_router(events.router)
app.include_router(sanctions.router)
app.include_router(wellness.router)
app.include_router(notifications.router)


@app.get("/")
async def root():
    return {"message": "Wellness Resource Loan API", "version": "1.0.0"}


@app.get("/api/health")
async def health_check():
    return {
        "status": "healthy",
        "mqtt": "connected" if notification_service.is_running() else "disconnected",
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "app.main:app",
        host=settings.host,
        port=settings.port,
        reload=True
    )
