from __future__ import annotations

import time
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import structlog
import uvicorn
from fastapi import Depends, FastAPI, Request, Response
from fastapi.responses import JSONResponse

from mock_completions.config import Settings, get_settings
from mock_completions.errors import (
    REQUEST_ID_HEADER,
    ErrorContext,
    ErrorHandler,
    setup_error_handlers,
)
from mock_completions.inference.engine import MockCompletionEngine
from mock_completions.logging_utils import configure_logging
from mock_completions.metrics import (
    ACTIVE_CONNECTIONS,
    REQUEST_COUNTER,
    REQUEST_LATENCY,
    metrics_app,
    record_validation_failure,
    set_health_status,
    update_service_info,
)
from mock_completions.models.request import CompletionRequest
from mock_completions.models.response import CompletionResponse, ErrorResponse
from mock_completions.validators import validate_request

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    settings: Settings = get_settings()
    configure_logging(settings.log_level)
    app.state.debug = settings.debug

    update_service_info(settings.default_encoding)

    engine = MockCompletionEngine(settings=settings, logger=logger)
    engine.warm_up()
    app.state.engine = engine
    set_health_status("api", True)
    set_health_status("tokenizer", engine.tokenizer_ready())

    logger.info("Service started successfully")
    yield

    logger.info("Service shutting down")


app = FastAPI(
    title="Mock Completions API",
    version="0.1.0",
    description="Deterministic stand-in for a text-completion API; no model is run",
    lifespan=lifespan,
)

setup_error_handlers(app)


def get_engine(request: Request) -> MockCompletionEngine:
    return request.app.state.engine  # type: ignore


@app.middleware("http")
async def access_log_middleware(request: Request, call_next) -> Response:
    start = time.perf_counter()
    request_id = request.headers.get(REQUEST_ID_HEADER) or ErrorHandler.generate_request_id()
    request.state.request_id = request_id
    response = None
    try:
        response = await call_next(request)
        response.headers[REQUEST_ID_HEADER] = request_id
        return response
    finally:
        duration_ms = int((time.perf_counter() - start) * 1000)
        logger.info(
            "http_request",
            method=request.method,
            path=request.url.path,
            status_code=getattr(response, "status_code", None),
            duration_ms=duration_ms,
            client_ip=getattr(request.client, "host", None),
            request_id=request_id,
        )


@app.get("/healthz")
async def healthz(request: Request) -> dict:
    """Health check with component status."""
    engine = getattr(request.app.state, "engine", None)
    tokenizer_ok = bool(engine and engine.tokenizer_ready())
    set_health_status("tokenizer", tokenizer_ok)

    return {
        "status": "ok" if tokenizer_ok else "degraded",
        "timestamp": time.time(),
        "components": {
            "api": "healthy",
            "tokenizer": "healthy" if tokenizer_ok else "unhealthy",
        },
    }


@app.post(
    "/v1/completions",
    response_model=CompletionResponse,
    responses={400: {"model": ErrorResponse}},
)
def completions(
    req: CompletionRequest,
    request: Request,
    engine: MockCompletionEngine = Depends(get_engine),
) -> JSONResponse:
    route = "/v1/completions"
    start = time.perf_counter()

    ACTIVE_CONNECTIONS.inc()
    REQUEST_COUNTER.labels(route=route, status="started").inc()

    with ErrorContext("completion", request_id=request.state.request_id):
        try:
            error = validate_request(req)
            if error is not None:
                record_validation_failure(error.param)
                REQUEST_COUNTER.labels(route=route, status="invalid").inc()
                raise error

            completion = engine.create_completion(req)
            REQUEST_COUNTER.labels(route=route, status="ok").inc()
            return JSONResponse(completion.model_dump())
        finally:
            ACTIVE_CONNECTIONS.dec()
            REQUEST_LATENCY.labels(route=route).observe(time.perf_counter() - start)


if get_settings().metrics_enabled:
    app.mount("/metrics", metrics_app)


def run() -> None:
    """Console entry point: serve the app with uvicorn."""
    settings = get_settings()
    configure_logging(settings.log_level)
    uvicorn.run(
        "mock_completions.main:app",
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    run()
