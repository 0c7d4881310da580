from __future__ import annotations
"""VideoGen — FastAPI application entry point.

Mounts the video API, wires the job orchestrator on startup and tears down
background polling, cleanup timers and HTTP/redis clients on shutdown.
"""

import logging
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from videogen.api.router import api_router
from videogen.config import get_settings
from videogen.errors import InvalidRequest, StorageConfigurationError, VideoGenerationError
from videogen.services.archive_indexer import ArchiveIndexer
from videogen.services.prompt_enhancer import PromptEnhancer
from videogen.services.video_orchestrator import build_orchestrator

settings = get_settings()

# Configure logging
logging.basicConfig(
    level=logging.DEBUG if settings.DEBUG else logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan: build the orchestrator on startup, drain it on shutdown."""
    logger.info("%s starting up...", settings.APP_NAME)
    logger.info("Storage: %s, job registry: %s", settings.STORAGE_TYPE, settings.JOB_STORE)

    try:
        orchestrator = build_orchestrator(settings)
    except StorageConfigurationError:
        logger.exception("Invalid storage configuration")
        raise

    app.state.orchestrator = orchestrator
    app.state.archive_indexer = ArchiveIndexer(orchestrator.asset_store)
    app.state.prompt_enhancer = PromptEnhancer(
        api_key=settings.OPENAI_API_KEY,
        base_url=settings.OPENAI_BASE_URL,
        model=settings.PROMPT_ENHANCER_MODEL,
        timeout=settings.HTTP_TIMEOUT,
    )

    yield

    await app.state.prompt_enhancer.aclose()
    await orchestrator.shutdown()
    logger.info("%s shut down", settings.APP_NAME)


app = FastAPI(
    title="VideoGen API",
    description="Asynchronous video generation across OpenAI Sora and Google Veo",
    version="0.1.0",
    lifespan=lifespan,
    redirect_slashes=False,
)

_cors_origins = os.environ.get(
    "CORS_ORIGINS",
    "http://localhost:3000,http://127.0.0.1:3000",
).split(",")
app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(VideoGenerationError)
async def video_generation_error_handler(request: Request, exc: VideoGenerationError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content={"error": exc.to_dict()})


@app.exception_handler(RequestValidationError)
async def request_validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    problems = []
    for err in exc.errors():
        location = ".".join(str(part) for part in err.get("loc", ()) if part != "body")
        problems.append(f"{location}: {err.get('msg')}" if location else str(err.get("msg")))
    error = InvalidRequest("; ".join(problems) or "Invalid request")
    return JSONResponse(status_code=error.status_code, content={"error": error.to_dict()})


# Mount API routes
app.include_router(api_router)


@app.get("/health")
async def health():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "service": settings.APP_NAME,
        "storage": settings.STORAGE_TYPE,
        "jobStore": settings.JOB_STORE,
    }
