"""Huddle backend main application."""

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from huddle.api.groups import router as groups_router
from huddle.api.health import router as health_router
from huddle.api.invitations import router as invitations_router
from huddle.api.realtime import router as realtime_router
from huddle.api.rooms import router as rooms_router
from huddle.core.config import get_settings
from huddle.core.errors import HuddleError
from huddle.core.logging import (
    configure_sqlalchemy_logging,
    get_logger,
    log_shutdown_info,
    log_startup_info,
    setup_logging,
)
from huddle.core.messaging.broker import get_message_broker
from huddle.dependencies import get_change_feed

# Initialize logging first
setup_logging()

# Get logger after setup
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    # Startup
    settings = get_settings()
    log_startup_info(settings)
    configure_sqlalchemy_logging(echo=settings.SQL_ECHO)
    broker = None
    if settings.FEED_RELAY_ENABLED:
        broker = get_message_broker()
        get_change_feed().add_sink(broker.relay)
        logger.info(f"Relaying change feed to exchange {settings.FEED_EXCHANGE}")
    logger.info("FastAPI application started successfully")
    yield
    # Shutdown
    logger.info("FastAPI application shutting down")
    if broker is not None:
        broker.close()
    log_shutdown_info(settings)


app = FastAPI(
    title="Huddle Backend",
    description="Group chat membership and live message synchronization",
    version="0.1.0",
    lifespan=lifespan,
)


@app.exception_handler(HuddleError)
async def huddle_error_handler(request: Request, exc: HuddleError) -> JSONResponse:
    """Render domain errors as {"error": {"code", "message"}}."""
    if exc.status_code >= 500:
        logger.error(f"{exc.code} on {request.url.path}: {exc.message}")
    else:
        logger.info(f"{exc.code} on {request.url.path}: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content={"error": exc.to_dict()})


# Include routers
api_prefix = "/api/v1"
app.include_router(groups_router, prefix=api_prefix)
app.include_router(invitations_router, prefix=api_prefix)
app.include_router(rooms_router, prefix=api_prefix)
app.include_router(health_router, tags=["health"])
app.include_router(realtime_router, tags=["realtime"])


@app.get("/")
async def root():
    """Root endpoint for health checks."""
    logger.info("Health check endpoint accessed")
    return {"message": "Huddle Backend is running", "status": "healthy"}
