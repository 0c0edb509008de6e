"""Main FastAPI application."""
import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from cadence.config import settings
from cadence.database import async_session_maker, engine as db_engine
from cadence.notifications.channel import NotificationChannel
from cadence.schedules import routes as schedule_routes
from cadence.schedules.engine import ScheduleEngine
from cadence.sync import routes as sync_routes
from cadence.sync.events import SyncEventChannel

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    notifier = NotificationChannel()
    sync_channel = SyncEventChannel()
    schedule_engine = ScheduleEngine(async_session_maker, notifier, settings)

    app.state.notifier = notifier
    app.state.sync_channel = sync_channel
    app.state.schedule_engine = schedule_engine

    # Sync completions flow into the engine through this consumer
    consumer = asyncio.create_task(sync_channel.consume(schedule_engine.handle_sync_event))
    logger.info("Schedule engine started")
    try:
        yield
    finally:
        consumer.cancel()
        try:
            await consumer
        except asyncio.CancelledError:
            pass
        await db_engine.dispose()
        logger.info("Schedule engine stopped")


# Create FastAPI app
app = FastAPI(
    title="Cadence API",
    description="Recurring schedules: next dates, status and auto-posting",
    version="0.1.0",
    lifespan=lifespan,
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(schedule_routes.router, prefix=settings.API_V1_PREFIX, tags=["Schedules"])
app.include_router(sync_routes.router, prefix=f"{settings.API_V1_PREFIX}/sync", tags=["Sync"])


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy"}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "cadence.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
    )
