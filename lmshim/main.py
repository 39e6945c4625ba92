from __future__ import annotations

import logging
import time
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, StreamingResponse

from .config import CANONICAL_MODEL, Settings, settings as default_settings
from .errors import InvalidRequestError, UpstreamError
from .schemas.openai import ErrorResponse
from .stream import relay_stream
from .transform import normalize_request, parse_chat_request, to_upstream_payload
from .upstream import UpstreamClient


logger = logging.getLogger("lmshim.main")

SSE_HEADERS = {
    "Content-Type": "text/event-stream",
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}

CONTEXT_LENGTH = 16384


def model_descriptor() -> Dict[str, Any]:
    return {
        "id": CANONICAL_MODEL,
        "object": "model",
        "type": "llm",
        "publisher": "openrouter",
        "arch": "llama",
        "compatibility_type": "openai",
        "quantization": "none",
        "state": "loaded",
        "max_context_length": CONTEXT_LENGTH,
        "loaded_context_length": CONTEXT_LENGTH,
        "created": int(time.time()),
    }


def _error(status: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status, content=ErrorResponse(error=message).model_dump())


def create_app(settings: Optional[Settings] = None, upstream: Optional[Any] = None) -> FastAPI:
    """Build the shim app.

    ``upstream`` is anything with ``open_stream(payload)``; by default an
    UpstreamClient over ``settings``. Tests pass a fake here.
    """
    settings = settings or default_settings
    upstream = upstream if upstream is not None else UpstreamClient(settings)

    app = FastAPI(title="LM Studio to OpenRouter shim")
    app.state.settings = settings
    app.state.upstream = upstream

    @app.get("/")
    async def root():
        return {"ok": True, "backend": settings.base_url}

    async def list_models():
        return {"object": "list", "data": [model_descriptor()]}

    async def chat_completions(request: Request):
        raw = await request.body()
        try:
            parsed = parse_chat_request(raw)
        except InvalidRequestError as e:
            logger.info("[proxy] rejected request body: %s", e)
            return _error(400, "invalid request")

        req = normalize_request(parsed, settings)
        payload = to_upstream_payload(req)
        try:
            upstream_stream = await upstream.open_stream(payload)
        except UpstreamError as e:
            logger.error("[ERROR] %s", e)
            return _error(500, str(e))

        return StreamingResponse(
            relay_stream(upstream_stream, is_disconnected=request.is_disconnected),
            headers=SSE_HEADERS,
        )

    for prefix in ("/v1", "/api/v0"):
        app.add_api_route(f"{prefix}/models", list_models, methods=["GET"])
        app.add_api_route(f"{prefix}/chat/completions", chat_completions, methods=["POST"])

    @app.on_event("shutdown")
    async def _shutdown_close_client():
        close = getattr(upstream, "aclose", None)
        if close is not None:
            await close()

    return app


app = create_app()
