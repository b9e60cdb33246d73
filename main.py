from logging_config import setup_logging

# Initialize logging BEFORE anything else
setup_logging()

from contextlib import asynccontextmanager
from logging_config import get_logger
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from middleware import RequestLifecycleMiddleware
from routes import notify, presence, ws
from database import ensure_indexes
from models.notification import utc_timestamp
from realtime.manager import manager
from services.consumer import start_consumer, stop_consumer
from services.dispatcher import dispatcher
from config import config

logger = get_logger("app")


@asynccontextmanager
async def lifespan(app: FastAPI):
    await ensure_indexes()

    consumer = task = None
    if config.CONSUMER_ENABLED:
        consumer, task = start_consumer(dispatcher.handle_event)
        logger.info("Task event consumer started")
    else:
        logger.warning("Task event consumer disabled (CONSUMER_ENABLED=false)")

    yield

    if consumer is not None:
        await stop_consumer(consumer, task)
    logger.info("Notification service stopped")


app = FastAPI(title="TaskFlow Notification Service", lifespan=lifespan)

# CORS remains here as it's a global setting
app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS if config.ENV == "production" else ["*"],
    allow_credentials=True,
    allow_methods=["GET", "POST"],
    allow_headers=["*"],
)

# Request lifecycle middleware (request ID, context vars, duration logging)
app.add_middleware(RequestLifecycleMiddleware)

# REGISTER ROUTERS
app.include_router(ws.router)
app.include_router(notify.router)
app.include_router(presence.router)

logger.info("All routers registered, Notification Service ready")

@app.get("/health")
async def health():
    return {
        "service": "notification-service",
        "status": "healthy",
        "timestamp": utc_timestamp(),
        "connections": manager.connection_count,
    }
