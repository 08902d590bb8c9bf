from __future__ import annotations
"""SceneSmith: FastAPI application entry point.

Mounts all API routes, configures CORS, serves media static files,
maps the error taxonomy to responses and recovers interrupted runs on startup.
"""

import logging
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from sqlalchemy.exc import SQLAlchemyError

from scenesmith.api.router import api_router
from scenesmith.api.ws import router as ws_router
from scenesmith.config import get_settings
from scenesmith.database import close_db, init_db
from scenesmith.errors import SceneSmithError, ValidationError
from scenesmith.services.repository import recover_interrupted_runs

settings = get_settings()

# Configure logging
logging.basicConfig(
    level=logging.DEBUG if settings.DEBUG else logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan: init DB and recover stuck runs on startup, close on shutdown."""
    logger.info("SceneSmith starting up...")
    logger.info("USE_MOCK_API: %s", settings.USE_MOCK_API)
    logger.info("Database: %s@%s/%s", settings.DB_USER, settings.DB_HOST, settings.DB_NAME)

    os.makedirs(settings.MEDIA_VOLUME, exist_ok=True)
    await init_db()

    # Generating rows older than the pipeline timeout belong to no live run
    try:
        await recover_interrupted_runs()
    except SQLAlchemyError as e:
        logger.warning("Startup recovery failed (non-fatal): %s", e)

    yield

    await close_db()
    logger.info("SceneSmith shut down")


app = FastAPI(
    title="SceneSmith API",
    description="Multi-scene AI video generation: script planning, scene clips, stitching",
    version="0.1.0",
    lifespan=lifespan,
    redirect_slashes=False,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(SceneSmithError)
async def scenesmith_error_handler(request: Request, exc: SceneSmithError):
    """Validation failures are reported in the body; everything else by status code."""
    if isinstance(exc, ValidationError):
        return JSONResponse(status_code=200, content={"error": exc.message})
    if exc.http_status >= 500:
        logger.error("%s %s failed: %s: %s", request.method, request.url.path, type(exc).__name__, exc.message)
    return JSONResponse(
        status_code=exc.http_status,
        content={"error": exc.message, "type": type(exc).__name__},
    )


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    first = exc.errors()[0] if exc.errors() else {}
    field = ".".join(str(p) for p in first.get("loc", ()) if p != "body")
    message = first.get("msg", "Invalid request")
    return JSONResponse(status_code=200, content={"error": f"{field}: {message}" if field else message})


# Mount API routes
app.include_router(api_router)
app.include_router(ws_router)

# Mount media static files
os.makedirs(settings.MEDIA_VOLUME, exist_ok=True)
app.mount("/media", StaticFiles(directory=settings.MEDIA_VOLUME), name="media")


@app.get("/")
async def root():
    """Health check endpoint."""
    return {
        "service": "SceneSmith",
        "status": "running",
        "mock_mode": settings.USE_MOCK_API,
    }


@app.get("/health")
async def health():
    """Detailed health check."""
    return {
        "status": "healthy",
        "database": settings.DB_HOST,
        "mock_mode": settings.USE_MOCK_API,
    }
