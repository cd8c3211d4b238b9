import asyncio
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.responses import Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from src.api.errors import register_exception_handlers
from src.api.router import api_router
from src.core.config import settings
from src.core.logger import configure_logging, get_logger
from src.infrastructure.kafka.consumer import consume_loop
from src.startup import ServiceContainer, initialize_application

# Configure logging once and get service logger
configure_logging()
logger = get_logger("conditioning.main")


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("conditioning_service_starting")
    if getattr(app.state, "container", None) is None:
        app.state.container = ServiceContainer()
    await initialize_application(app.state.container)
    app.state.consumer_task = None
    if settings.change_events_enabled:
        app.state.consumer_ready = asyncio.Event()
        app.state.consumer_task = asyncio.create_task(
            consume_loop(app.state.container.dispatcher, app.state)
        )
    try:
        yield
    finally:
        logger.info("conditioning_service_stopping")
        if app.state.consumer_task is not None:
            app.state.consumer_task.cancel()
            try:
                await app.state.consumer_task
            except asyncio.CancelledError:  # expected during shutdown
                logger.debug("consumer_task_cancelled")
            except Exception:  # noqa
                logger.debug("consumer_task_non_critical_exit", exc_info=True)
        await app.state.container.shutdown()


app = FastAPI(title="Conditioning Log Service", version="0.1.0", lifespan=lifespan)
app.include_router(api_router)
register_exception_handlers(app)


@app.get("/metrics")
async def metrics():
    return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)
