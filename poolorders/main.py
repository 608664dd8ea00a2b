import logging
import sys
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.responses import Response

from poolorders.config import settings
from poolorders.db import Database, close_pool, get_pool, init_schema
from poolorders.errors import register_exception_handlers
from poolorders.metrics import get_metrics_bytes, get_metrics_content_type, sqs_queue_messages_in_flight, sqs_queue_messages_waiting
from poolorders.redis_client import close_redis, open_redis
from poolorders.routes import admin, catalog, dealer, stock
from poolorders.sqs_client import get_queue_depth

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(message)s",
    stream=sys.stdout,
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    pool = await get_pool()
    await init_schema(pool)
    app.state.db = Database(pool)
    if not await open_redis():
        logger.warning("Starting without Redis: email queueing and Idempotency-Key checks will fail until it returns")
    yield
    await close_redis()
    await close_pool()


app = FastAPI(title="Pool Order Management", lifespan=lifespan)
register_exception_handlers(app)
app.include_router(dealer.router)
app.include_router(admin.router)
app.include_router(stock.router)
app.include_router(catalog.router)


@app.get("/health")
async def health() -> dict:
    return {"status": "ok"}


@app.get("/metrics")
async def metrics() -> Response:
    """Prometheus scrape endpoint: order transitions, side-effect failures, SQS email queue depth (when using SQS)."""
    if settings.sqs_email_queue_url:
        try:
            waiting, in_flight = await get_queue_depth()
            sqs_queue_messages_waiting.set(waiting)
            sqs_queue_messages_in_flight.set(in_flight)
        except Exception as e:
            logger.warning("Could not read SQS queue depth: %s", e)
    return Response(
        content=get_metrics_bytes(),
        media_type=get_metrics_content_type(),
    )
