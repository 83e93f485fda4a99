""" Main entry point for the FastAPI application, including startup and shutdown events, middleware, and API routes."""
import asyncio
import logging
from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import PlainTextResponse
from starlette.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager

from floor_tracker.api import endpoints
from floor_tracker.core.config import settings
from floor_tracker.core.exceptions import StoreError, UpstreamFetchError
from floor_tracker.core.logging_config import setup_logging
from floor_tracker.core.sheets import build_store

from floor_tracker.services.ingestion_service import start_ingestion_loop
from floor_tracker.services.backfill_service import run_auto_backfill_loop

# Set up logging first
setup_logging()
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Application startup initiated.")
    store = build_store(settings)
    app.state.store = store

    tasks = []
    if settings.SAMPLER_ENABLED:
        tasks.append(asyncio.create_task(start_ingestion_loop(store, interval_seconds=settings.SAMPLE_INTERVAL_SECONDS)))
    if settings.BACKFILL_INTERVAL_SECONDS > 0:
        tasks.append(asyncio.create_task(run_auto_backfill_loop(
            store,
            interval_seconds=settings.BACKFILL_INTERVAL_SECONDS,
            initial_delay_seconds=settings.BACKFILL_INITIAL_DELAY_SECONDS,
        )))
    logger.info(f"Started {len(tasks)} background tasks. Application startup complete.")
    yield

    for task in tasks:
        task.cancel()
    await asyncio.gather(*tasks, return_exceptions=True)
    await store.aclose()
    logger.info("Application shutdown complete.")


app = FastAPI(
    title="Floor Price Tracker API",
    description="Floor price and market cap history backed by a Google Sheet.",
    version="1.0.0",
    lifespan=lifespan,
)

# Only the chart's site may read the API
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins,
    allow_methods=["GET"],
)


STORE_ERROR_MESSAGES = {
    "/marketcap": "Error fetching market cap data.",
    "/backfill-marketcap": "Error backfilling market cap.",
}


@app.exception_handler(StoreError)
async def store_exception_handler(request: Request, exc: StoreError):
    logger.error(f"Store error at {request.method} {request.url.path}: {exc}", exc_info=exc)
    message = STORE_ERROR_MESSAGES.get(request.url.path, "Error fetching data")
    return PlainTextResponse(message, status_code=500)


@app.exception_handler(UpstreamFetchError)
async def upstream_exception_handler(request: Request, exc: UpstreamFetchError):
    logger.error(f"Upstream error at {request.method} {request.url.path}: {exc}")
    return PlainTextResponse("Error fetching upstream price data", status_code=500)


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    if exc.status_code >= 500:
        logger.error(f"HTTP Exception (Server Error) at {request.method} {request.url.path}: {exc.detail}")
    elif exc.status_code >= 400:
        logger.warning(f"HTTP Exception (Client Error) at {request.method} {request.url.path}: {exc.detail}")
    return PlainTextResponse(str(exc.detail), status_code=exc.status_code, headers=exc.headers)


app.include_router(endpoints.router, tags=["Prices"])


@app.get("/", response_class=PlainTextResponse)
async def root():
    """Root endpoint to check if the API is running."""
    logger.debug("Root endpoint accessed.")
    return "Welcome to the Floor Price Tracker API. Use the /prices endpoint to fetch data."
