from __future__ import annotations

import time
import uuid
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, Dict

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.api import register_routes
from app.core.config import get_settings
from app.core.dispatch_queue import DispatchQueue
from app.core.errors import AppError
from app.core.logging import get_logger, set_log_context, setup_logging
from app.llm.claude_client import ClaudeClient
from app.schemas import QueueStatusOut
from app.translate.service import Translator

SERVICE_NAME = "ego-translation-proxy"

log = get_logger("translate.main")


def _error_json(detail: str, code: str, status_code: int) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"detail": detail, "code": code})


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    setup_logging(settings.LOG_LEVEL)

    app.state.settings = settings
    app.state.queue = DispatchQueue(
        max_per_window=settings.QUEUE_MAX_PER_MINUTE,
        window_s=settings.QUEUE_WINDOW_SECONDS,
        safety_margin_s=settings.QUEUE_SAFETY_MARGIN_SECONDS,
        dispatch_delay_s=settings.QUEUE_DISPATCH_DELAY_SECONDS,
        max_pending=settings.QUEUE_MAX_PENDING,
    )
    app.state.claude = ClaudeClient(
        api_key=settings.CLAUDE_API_KEY,
        base_url=settings.CLAUDE_BASE_URL,
        model=settings.CLAUDE_MODEL,
        api_version=settings.CLAUDE_API_VERSION,
        max_tokens=settings.MAX_TOKENS,
        timeout_s=settings.TIMEOUT,
    )
    app.state.translator = Translator(
        app.state.claude,
        app.state.queue,
        large_input_tokens=settings.LARGE_INPUT_TOKENS_WARN,
        output_tokens_warn=settings.OUTPUT_TOKENS_WARN,
        line_mismatch_warn=settings.LINE_MISMATCH_WARN,
    )

    log.info(
        "startup ok | model=%s max_tokens=%s claude_key=%s queue=%s/%.0fs",
        settings.CLAUDE_MODEL,
        settings.MAX_TOKENS,
        "configured" if settings.CLAUDE_API_KEY else "missing",
        settings.QUEUE_MAX_PER_MINUTE,
        settings.QUEUE_WINDOW_SECONDS,
    )
    try:
        yield
    finally:
        await app.state.queue.close()
        await app.state.claude.aclose()
        log.info("shutdown ok")


app = FastAPI(title="EGO Translation Proxy", version="1.0", lifespan=lifespan)

settings = get_settings()
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Content-Type"],
)

register_routes(app)


@app.middleware("http")
async def request_context(request: Request, call_next):
    rid = request.headers.get("X-Request-ID") or str(uuid.uuid4())
    request.state.request_id = rid
    set_log_context(request_id=rid)

    t0 = time.perf_counter()
    try:
        response = await call_next(request)
    finally:
        dt_ms = int((time.perf_counter() - t0) * 1000)
        log.debug("request %s %s done in %sms", request.method, request.url.path, dt_ms)

    response.headers["X-Request-ID"] = rid
    return response


@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError):
    return _error_json(exc.detail, exc.code, exc.status_code)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    return _error_json("Invalid request", "validation_error", 422)


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    detail = exc.detail if isinstance(exc.detail, str) else "HTTP error"
    return _error_json(detail, "http_error", exc.status_code)


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    log.exception("unhandled error: %s", exc)
    return _error_json("Internal server error", "internal_error", 500)


def _queue_json(request: Request) -> Dict[str, Any]:
    return QueueStatusOut.from_status(request.app.state.queue.status()).to_json()


@app.get("/")
async def root(request: Request) -> Dict[str, Any]:
    s = request.app.state.settings
    return {
        "status": "ok",
        "service": SERVICE_NAME,
        "message": "Claude translation proxy is running",
        "port": s.PORT,
        "maxTokens": s.MAX_TOKENS,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "hasClaudeKey": bool(s.CLAUDE_API_KEY),
        "queue": _queue_json(request),
    }


@app.get("/health")
async def health(request: Request) -> Dict[str, Any]:
    s = request.app.state.settings
    return {
        "status": "ok",
        "message": "Health check passed",
        "hasClaudeKey": bool(s.CLAUDE_API_KEY),
        "maxTokens": s.MAX_TOKENS,
        "claude": request.app.state.claude.health(),
        "queue": _queue_json(request),
    }
