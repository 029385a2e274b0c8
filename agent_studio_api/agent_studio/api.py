"""FastAPI Server for Agent Studio RAG

Serves the agentic RAG chat endpoint for configured AI agents.
"""

import logging
import os
import uuid
import time
from contextlib import asynccontextmanager
from dataclasses import asdict
from typing import Any, Dict

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from .config import load_config
from .models import HealthResponse, ErrorResponse
from .database import init_db
from .logging_utils import setup_logging, request_id_ctx
from .agentic import create_agentic_pipeline
from .agentic.background import BackgroundTaskSet
from .agentic.llm import create_llm_client
from .agentic.retrieval import create_retriever
from .agentic.store import PipelineStore
from .routers.rag_chat import router as rag_chat_router

# Setup structured logging (default INFO, overridden after config load)
setup_logging(os.getenv("LOG_LEVEL", "INFO"))
logger = logging.getLogger(__name__)

config: Any = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifecycle manager for pipeline initialization and background drain."""
    global config

    logger.info("Initializing Agent Studio RAG API...")

    try:
        config = load_config()
        setup_logging(config.advanced.log_level, json_output=config.advanced.log_json)

        init_db()

        llm_client = create_llm_client(config.llm)
        retriever = create_retriever(config.retrieval)
        background = BackgroundTaskSet()

        app.state.llm_client = llm_client
        app.state.background = background
        app.state.pipeline = create_agentic_pipeline(
            llm_client,
            retriever,
            store=PipelineStore(),
            background=background,
            config=asdict(config.agentic)
        )
        logger.info(
            f"Agentic RAG pipeline initialized (provider={llm_client.provider.provider}, "
            f"retrieval={config.retrieval.backend})"
        )

        yield

    except Exception as e:
        logger.error(f"Failed to initialize Agent Studio RAG API: {e}")
        raise

    finally:
        background = getattr(app.state, "background", None)
        if background is not None:
            timeout = config.advanced.background_drain_timeout_seconds if config else 5.0
            await background.drain(timeout=timeout)
        logger.info("Shutting down Agent Studio RAG API")


# Create FastAPI app
config_temp = load_config()  # Load config for app metadata

app = FastAPI(
    title=config_temp.api.title,
    description=config_temp.api.description,
    version=config_temp.api.version,
    lifespan=lifespan
)


@app.middleware("http")
async def chat_request_scope(request: Request, call_next):
    """Bind a request id for log correlation and echo it back to the caller."""
    request_id = request.headers.get("x-request-id") or uuid.uuid4().hex
    ctx_token = request_id_ctx.set(request_id)
    started = time.perf_counter()
    status_code = 500
    try:
        response = await call_next(request)
        status_code = response.status_code
        response.headers["X-Request-Id"] = request_id
        return response
    finally:
        logger.info(
            "request_completed",
            extra={
                "event": "request_completed",
                "method": request.method,
                "path": request.url.path,
                "status_code": status_code,
                "duration_ms": round((time.perf_counter() - started) * 1000)
            }
        )
        request_id_ctx.reset(ctx_token)


# Setup CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=config_temp.api.cors_origins,
    allow_credentials=config_temp.api.cors_credentials,
    allow_methods=config_temp.api.cors_methods,
    allow_headers=config_temp.api.cors_headers
)

app.include_router(rag_chat_router)


# ============================================================================
# ENDPOINTS
# ============================================================================

@app.get("/", response_model=Dict[str, str])
async def root():
    """Root endpoint with API information."""
    return {
        "name": config_temp.api.title,
        "version": config_temp.api.version,
        "description": config_temp.api.description,
        "docs": "/docs",
        "health": "/health"
    }


@app.get("/health", response_model=HealthResponse)
async def health_check(request: Request):
    """Health check endpoint with provider and pipeline status."""
    active_config = config if config is not None else config_temp
    llm_client = getattr(request.app.state, "llm_client", None)
    pipeline = getattr(request.app.state, "pipeline", None)

    return HealthResponse(
        status="healthy" if pipeline is not None else "initializing",
        version=active_config.api.version,
        llm_provider=llm_client.provider.provider if llm_client else None,
        llm_configured=bool(llm_client and llm_client.is_configured),
        retrieval_backend=active_config.retrieval.backend,
        agentic_enabled=active_config.agentic.enabled
    )


@app.get("/healthz")
async def healthz():
    """Lightweight health check for container liveness."""
    return {"status": "ok"}


# ============================================================================
# ERROR HANDLERS
# ============================================================================

def _format_validation_error(exc: RequestValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return "Invalid request body"
    first = errors[0]
    location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    message = first.get("msg", "invalid value")
    return f"{location}: {message}" if location else message


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request, exc):
    """Malformed bodies are client errors."""
    detail = _format_validation_error(exc)
    logger.warning(f"Invalid request: {detail}")
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=ErrorResponse(error="Invalid request", detail=detail).model_dump()
    )


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request, exc):
    """Handle HTTP exceptions."""
    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(error=str(exc.detail)).model_dump(exclude_none=True),
        headers=getattr(exc, "headers", None)
    )


@app.exception_handler(Exception)
async def general_exception_handler(request, exc):
    """Handle general exceptions without leaking details."""
    logger.error(f"Unhandled exception: {exc}", exc_info=exc)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=ErrorResponse(error="Internal server error").model_dump(exclude_none=True)
    )


if __name__ == "__main__":
    import uvicorn

    # Load config for port
    cfg = load_config()

    uvicorn.run(
        "agent_studio.api:app",
        host=cfg.api.host,
        port=cfg.api.port,
        reload=True
    )
