from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator


# OpenAI chat-completions schema (the subset the shim reads or rewrites)


class ChatMessage(BaseModel):
    model_config = ConfigDict(extra="allow")

    role: str
    # Either a plain string or an array of content parts
    content: Optional[Union[str, List[Dict[str, Any]]]] = None
    name: Optional[str] = None


class ChatRequest(BaseModel):
    model_config = ConfigDict(extra="ignore")

    model: str = ""
    messages: List[ChatMessage] = Field(default_factory=list)
    temperature: Optional[float] = None
    top_p: Optional[float] = None
    # null is accepted and treated like the zero value
    max_tokens: Optional[int] = None
    stream: Optional[bool] = None
    # Accepted from LM Studio / Ollama style clients, never sent upstream
    keep_alive: Any = None
    format: Any = None
    tools: Any = None
    options: Any = None


# Streaming chunk payloads. Dumped with exclude_unset so the wire form keeps
# exactly the keys upstream sent plus the ones set while reshaping.


class ChunkDelta(BaseModel):
    model_config = ConfigDict(extra="allow")

    role: Optional[str] = None
    content: Optional[str] = None

    @model_validator(mode="before")
    @classmethod
    def _drop_empty_content(cls, data: Any) -> Any:
        # The provider client omits empty content, so "" and null both mean "no content key".
        if isinstance(data, dict) and "content" in data and not data["content"]:
            data = {k: v for k, v in data.items() if k != "content"}
        return data

    @property
    def has_content(self) -> bool:
        return "content" in self.model_fields_set


class ChunkChoice(BaseModel):
    model_config = ConfigDict(extra="allow")

    index: int = 0
    delta: ChunkDelta = Field(default_factory=ChunkDelta)
    finish_reason: Optional[str] = None
    logprobs: Optional[Any] = None

    @model_validator(mode="before")
    @classmethod
    def _null_fields(cls, data: Any) -> Any:
        # Decode like the provider client: a null delta is an empty one, a null index is unset.
        # finish_reason and logprobs keep an explicit null.
        if isinstance(data, dict):
            data = {k: v for k, v in data.items() if not (k == "index" and v is None)}
            if "delta" in data and data["delta"] is None:
                data["delta"] = {}
        return data


_CHUNK_SCALARS = ("id", "object", "created", "model", "choices")


class ChatCompletionChunk(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: str = ""
    object: str = "chat.completion.chunk"
    created: int = 0
    model: str = ""
    choices: List[ChunkChoice] = Field(default_factory=list)

    @model_validator(mode="before")
    @classmethod
    def _null_scalars(cls, data: Any) -> Any:
        if isinstance(data, dict):
            data = {k: v for k, v in data.items() if not (k in _CHUNK_SCALARS and v is None)}
        return data

    def wire(self) -> Dict[str, Any]:
        return self.model_dump(exclude_unset=True)


class ErrorResponse(BaseModel):
    error: str
