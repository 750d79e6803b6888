from __future__ import annotations

from fastapi import APIRouter, Request
from fastapi.responses import PlainTextResponse, Response

from app.core.errors import AppError
from app.core.logging import get_logger
from app.schemas import QueueStatusOut
from app.translate.service import Translator

router = APIRouter(tags=["translate"])
log = get_logger("translate.routes")


def _passthrough(raw: bytes) -> Response:
    # The original bytes, untouched, even when they are not valid UTF-8.
    return Response(content=raw, media_type="text/plain")


@router.post("/translate", response_class=PlainTextResponse)
async def translate(request: Request) -> Response:
    """Translate the raw request body; on any failure echo it back unchanged."""
    raw = await request.body()
    text = raw.decode("utf-8", errors="replace")

    if not text.strip():
        log.info("empty text received, returning as-is")
        return _passthrough(raw)

    settings = request.app.state.settings
    if not settings.CLAUDE_API_KEY:
        log.error("no Claude API key configured, returning original text")
        return _passthrough(raw)

    translator: Translator = request.app.state.translator
    try:
        result = await translator.translate(text)
    except AppError as e:
        log.warning(
            "translation failed (code=%s upstream_status=%s): %s; falling back to original text",
            e.code,
            getattr(e, "upstream_status", None),
            e.detail,
        )
        return _passthrough(raw)
    except Exception:
        log.exception("unexpected translation error; falling back to original text")
        return _passthrough(raw)

    return PlainTextResponse(result.text)


@router.get("/queue/status")
async def queue_status(request: Request):
    status = QueueStatusOut.from_status(request.app.state.queue.status())
    return status.to_json()
