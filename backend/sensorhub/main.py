"""FastAPI application factory and lifespan for SensorHub."""

import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from .api.dependencies import set_telemetry_service
from .api.errors import register_exception_handlers
from .api.router import api_router
from .config import settings
from .messaging.consumer import SensorConsumer
from .messaging.subscriber import MqttSubscriber
from .models.database import SessionLocal, init_database
from .services.telemetry import TelemetryService

# Configure logging for our app (uvicorn only configures its own loggers)
logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(levelname)s:     %(name)s - %(message)s",
)
logger = logging.getLogger(__name__)


async def _bg_start_subscriber(subscriber: MqttSubscriber) -> None:
    """Connect to the broker in the background so uvicorn starts immediately."""
    try:
        await asyncio.to_thread(subscriber.start)
    except Exception as e:
        logger.error("MQTT subscriber failed to start: %s", e)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan: database bootstrap and MQTT subscription."""
    logger.info("Database: %s", settings.database_url)
    await asyncio.to_thread(init_database)
    logger.info("Database initialized")

    service = TelemetryService(SessionLocal)
    set_telemetry_service(service)

    subscriber = None
    if settings.mqtt_enabled:
        subscriber = MqttSubscriber(SensorConsumer(service))
        asyncio.create_task(_bg_start_subscriber(subscriber))
    else:
        logger.info("MQTT ingestion disabled")

    yield

    logger.info("Shutting down...")
    if subscriber:
        await asyncio.to_thread(subscriber.stop)
    logger.info("Application shutdown complete")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title="SensorHub",
        version="0.1.0",
        lifespan=lifespan,
    )
    register_exception_handlers(app)
    app.include_router(api_router)
    return app


# Application instance
app = create_app()


def run() -> None:
    import uvicorn

    uvicorn.run(app, host=settings.host, port=settings.port)


if __name__ == "__main__":
    run()
