from __future__ import annotations

import json
import logging
from typing import Any, Dict, Optional

from pydantic import ValidationError

from .config import Settings
from .errors import InvalidRequestError
from .schemas.openai import ChatCompletionChunk, ChatRequest, ChunkDelta


logger = logging.getLogger("lmshim.transform")

DONE_FRAME = b"data: [DONE]\n\n"
STOP_REASON = "stop"


def parse_chat_request(raw: bytes | str) -> ChatRequest:
    """Decode a client body into a ChatRequest.

    Any decoding or shape problem raises InvalidRequestError before anything else happens.
    """
    try:
        body = json.loads(raw)
    except (TypeError, ValueError) as e:
        raise InvalidRequestError(f"malformed JSON body: {e}") from e
    if not isinstance(body, dict):
        raise InvalidRequestError("request body must be a JSON object")
    try:
        return ChatRequest.model_validate(body)
    except ValidationError as e:
        raise InvalidRequestError(str(e)) from e


def normalize_request(req: ChatRequest, settings: Settings) -> ChatRequest:
    """Map legacy model names to upstream ids and fill in max_tokens."""
    update: Dict[str, Any] = {"model": settings.map_model(req.model)}
    if req.max_tokens is None or req.max_tokens <= 0:
        update["max_tokens"] = settings.default_max_tokens
    out = req.model_copy(update=update)
    logger.info("[PROMPT] model=%s, messages=%d", out.model, len(out.messages))
    return out


def to_upstream_payload(req: ChatRequest) -> Dict[str, Any]:
    """Build the OpenAI chat-completions body sent to the provider.

    keep_alive/format/tools/options are deliberately absent. The upstream call is always a stream.
    """
    payload: Dict[str, Any] = {
        "model": req.model,
        "messages": [m.model_dump(exclude_none=True) for m in req.messages],
        "max_tokens": req.max_tokens,
        "stream": True,
    }
    if req.temperature is not None:
        payload["temperature"] = req.temperature
    if req.top_p is not None:
        payload["top_p"] = req.top_p
    return payload


def reshape_event(chunk: ChatCompletionChunk) -> ChatCompletionChunk:
    """Return a copy of ``chunk`` with ``logprobs`` explicitly null on every choice.

    LM Studio always sends the key; the provider leaves it out. Deltas are not touched.
    """
    out = chunk.model_copy(deep=True)
    for choice in out.choices:
        choice.logprobs = None
    return out


def finalize_event(chunk: ChatCompletionChunk) -> ChatCompletionChunk:
    """Turn a content-free last event into an explicit stop event.

    Only the first choice is inspected. Events that still carry content come back unchanged.
    """
    if not chunk.choices or chunk.choices[0].delta.has_content:
        return chunk
    out = chunk.model_copy(deep=True)
    first = out.choices[0]
    first.delta = ChunkDelta()
    first.finish_reason = STOP_REASON
    return out


def encode_event(chunk: ChatCompletionChunk) -> Optional[bytes]:
    try:
        return json.dumps(chunk.wire(), ensure_ascii=False, separators=(",", ":")).encode("utf-8")
    except (TypeError, ValueError) as e:
        logger.warning("[JSON ERROR] dropping event id=%s: %s", chunk.id or "?", e)
        return None


def sse_frame(data: bytes) -> bytes:
    return b"data: " + data + b"\n\n"
