"""
Orders Microservice
Order lifecycle: placement, stock reservation, status transitions, payment and refunds
"""

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
import subprocess
import os

from shared.core import ServiceHealth, setup_logging, RequestLoggingMiddleware, get_logger
from orders_service.core_settings import get_settings
from orders_service.errors import register_exception_handlers
from orders_service.api.routes import router as orders_router
from orders_service.application.events import LoggingEventPublisher
from orders_service.application.payment_provider import MockPaymentProvider
from orders_service.infrastructure.db import engine, init_models

settings = get_settings()
SERVICE_DESCRIPTION = "Order lifecycle microservice"
PROJECT_ROOT = os.path.join(os.path.dirname(__file__), "..")

setup_logging(
    service_name=settings.SERVICE_NAME,
    level=settings.LOG_LEVEL,
    environment=settings.ENVIRONMENT,
    version=settings.SERVICE_VERSION,
)

logger = get_logger(__name__)

@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(f"Starting {settings.SERVICE_NAME} version {settings.SERVICE_VERSION}")

    try:
        logger.info("Running database migrations")
        result = subprocess.run(
            ["alembic", "upgrade", "head"],
            cwd=PROJECT_ROOT,
            capture_output=True,
            text=True,
            check=False
        )
        if result.returncode != 0:
            logger.warning(f"Migration output: {result.stderr}")
        else:
            logger.info("Database migrations completed")
    except OSError as e:
        logger.error(f"Migration error: {e}")

    try:
        init_models()
        logger.info("Database models initialized")
    except Exception as e:
        logger.error(f"Failed to initialize database models: {e}")
        raise

    logger.info(
        f"{settings.SERVICE_NAME} started successfully",
        extra={'extra_fields': {'inventory_reservation': settings.INVENTORY_RESERVATION}}
    )

    yield

    logger.info(f"Shutting down {settings.SERVICE_NAME}")

app = FastAPI(
    title=settings.SERVICE_NAME,
    description=SERVICE_DESCRIPTION,
    version=settings.SERVICE_VERSION,
    lifespan=lifespan,
    docs_url="/api/docs",
    redoc_url="/api/redoc",
    openapi_url="/api/openapi.json"
)

# Collaborators shared by every request; tests swap these out
app.state.payment_provider = MockPaymentProvider()
app.state.event_publisher = LoggingEventPublisher()

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(RequestLoggingMiddleware)

register_exception_handlers(app)

health_service = ServiceHealth(settings.SERVICE_NAME, settings.SERVICE_VERSION, engine=engine)
app.include_router(health_service.create_health_router())

app.include_router(orders_router)

@app.get("/")
async def root():
    return {
        "service": settings.SERVICE_NAME,
        "version": settings.SERVICE_VERSION,
        "status": "running",
        "docs": "/api/docs"
    }

@app.get("/info")
async def info():
    """Service information endpoint"""
    return {
        "service": settings.SERVICE_NAME,
        "version": settings.SERVICE_VERSION,
        "description": SERVICE_DESCRIPTION,
        "environment": settings.ENVIRONMENT,
        "inventory_reservation": settings.INVENTORY_RESERVATION,
        "endpoints": {
            "orders": "/orders",
            "health": "/health",
            "ready": "/health/ready",
            "live": "/health/live",
            "metrics": "/metrics",
            "docs": "/api/docs"
        }
    }
