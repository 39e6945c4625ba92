import json
import os
from typing import Dict, Optional


LEGACY_MODEL_ALIAS = "deepseek-r1-distill-llama-8b"
CANONICAL_MODEL = "deepseek/deepseek-chat-v3-0324:free"


def _flag(name: str, default: str = "0") -> bool:
    return os.environ.get(name, default).lower() in ("1", "true", "yes")


class Settings:
    def __init__(self) -> None:
        # Required at launch; checked by the launcher, not here, so tests can build apps without it.
        self.api_key: Optional[str] = os.environ.get("OPENROUTER_API_KEY") or None
        self.base_url: str = os.environ.get("OPENROUTER_BASE_URL", "https://openrouter.ai/api/v1")
        self.host: str = os.environ.get("SHIM_HOST", "127.0.0.1")
        try:
            self.port: int = int(os.environ.get("SHIM_PORT", "1234"))
        except Exception:
            self.port = 1234
        # Whole-call deadline for one upstream stream, measured from the moment the call starts.
        try:
            self.upstream_timeout: float = max(1.0, float(os.environ.get("UPSTREAM_TIMEOUT", "300")))
        except Exception:
            self.upstream_timeout = 300.0
        try:
            self.connect_timeout: float = max(1.0, float(os.environ.get("UPSTREAM_CONNECT_TIMEOUT", "10")))
        except Exception:
            self.connect_timeout = 10.0
        # MODEL_MAP expects a JSON object string mapping client model names → upstream model names
        self.model_map: Dict[str, str] = {LEGACY_MODEL_ALIAS: CANONICAL_MODEL}
        model_map_raw = os.environ.get("MODEL_MAP", "{}")
        try:
            extra = json.loads(model_map_raw)
            if isinstance(extra, dict):
                self.model_map.update({str(k): str(v) for k, v in extra.items()})
        except Exception:
            ...
        try:
            self.default_max_tokens: int = max(1, int(os.environ.get("DEFAULT_MAX_TOKENS", "1024")))
        except Exception:
            self.default_max_tokens = 1024
        # Consecutive non-data SSE lines tolerated inside a single receive.
        try:
            self.empty_messages_limit: int = max(1, int(os.environ.get("STREAM_EMPTY_MESSAGES_LIMIT", "300")))
        except Exception:
            self.empty_messages_limit = 300
        self.http2: bool = _flag("PROXY_HTTP2")
        self.debug: bool = _flag("DEBUG_PROXY")
        self.log_level: str = os.environ.get("LOG_LEVEL", "INFO")

    def map_model(self, model: str) -> str:
        return self.model_map.get(model, model)

    @property
    def chat_completions_url(self) -> str:
        return f"{self.base_url.rstrip('/')}/chat/completions"


settings = Settings()
