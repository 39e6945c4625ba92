from typing import Any, Dict, Optional

import pytest

from lmshim.config import Settings
from lmshim.schemas.openai import ChatCompletionChunk


def chunk(content: Optional[str] = None, finish_reason: Optional[str] = None, role: Optional[str] = None, **extra: Any) -> ChatCompletionChunk:
    delta: Dict[str, Any] = {}
    if role is not None:
        delta["role"] = role
    if content is not None:
        delta["content"] = content
    return ChatCompletionChunk.model_validate({
        "id": "gen-1",
        "object": "chat.completion.chunk",
        "created": 1700000000,
        "model": "deepseek/deepseek-chat-v3-0324:free",
        "choices": [{"index": 0, "delta": delta, "finish_reason": finish_reason}],
        **extra,
    })


@pytest.fixture
def make_chunk():
    return chunk


@pytest.fixture
def settings(monkeypatch) -> Settings:
    monkeypatch.delenv("MODEL_MAP", raising=False)
    s = Settings()
    s.api_key = "test-key"
    s.base_url = "https://upstream.test/api/v1"
    return s
