from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, AsyncIterator, Dict, Optional

import httpx

from .config import Settings
from .errors import StreamEnd, UpstreamError, UpstreamTimeout
from .schemas.openai import ChatCompletionChunk


logger = logging.getLogger("lmshim.upstream")


def _error_message(status: int, body_text: str) -> str:
    try:
        j = json.loads(body_text) if body_text else {}
        err = j.get("error") if isinstance(j, dict) else None
        if isinstance(err, dict):
            message = err.get("message") or json.dumps(err, ensure_ascii=False)
        else:
            message = err or (j.get("message") if isinstance(j, dict) else None) or (json.dumps(j, ensure_ascii=False) if j else "")
    except Exception:
        message = body_text
    if not message:
        message = f"Upstream returned HTTP {status} without body"
    return f"error, status code: {status}, message: {message}"


class UpstreamStream:
    """One open streaming chat completion.

    ``recv()`` yields decoded chunks, raises StreamEnd on ``[DONE]``/EOF, UpstreamTimeout once
    the call deadline passes and UpstreamError for anything else. The deadline is an absolute
    event-loop time fixed when the call was opened.
    """

    def __init__(self, response: httpx.Response, deadline: float, empty_messages_limit: int = 300) -> None:
        self._response = response
        self._lines: AsyncIterator[str] = response.aiter_lines()
        self._deadline = deadline
        self._empty_messages_limit = empty_messages_limit
        self._closed = False

    async def __aenter__(self) -> "UpstreamStream":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def _next_line(self) -> str:
        remaining = self._deadline - asyncio.get_running_loop().time()
        if remaining <= 0:
            raise UpstreamTimeout("upstream deadline exceeded")
        try:
            return await asyncio.wait_for(self._lines.__anext__(), timeout=remaining)
        except StopAsyncIteration:
            raise StreamEnd() from None
        except asyncio.TimeoutError:
            raise UpstreamTimeout("upstream deadline exceeded") from None
        except httpx.TimeoutException as e:
            raise UpstreamTimeout(f"upstream read timed out: {e}") from e
        except httpx.HTTPError as e:
            raise UpstreamError(f"upstream read failed: {e}") from e

    async def recv(self) -> ChatCompletionChunk:
        if self._closed:
            raise StreamEnd()
        empty = 0
        while True:
            line = (await self._next_line()).strip()
            if not line.startswith("data:"):
                # blank separators and ": keep-alive" comments
                empty += 1
                if empty > self._empty_messages_limit:
                    raise UpstreamError("stream has sent too many empty messages")
                continue
            payload = line[5:].strip()
            if payload == "[DONE]":
                raise StreamEnd()
            try:
                obj = json.loads(payload)
            except ValueError as e:
                raise UpstreamError(f"undecodable stream event: {payload[:100]}") from e
            if not isinstance(obj, dict):
                raise UpstreamError(f"unexpected stream event: {payload[:100]}")
            if obj.get("error"):
                err = obj["error"]
                message = err.get("message") if isinstance(err, dict) else str(err)
                raise UpstreamError(f"upstream stream error: {message}")
            try:
                return ChatCompletionChunk.model_validate(obj)
            except ValueError as e:
                raise UpstreamError(f"unexpected stream event: {e}") from e

    async def aclose(self) -> None:
        if self._closed:
            return
        self._closed = True
        await self._response.aclose()


class UpstreamClient:
    """Opens streaming chat completions against the configured provider.

    Holds the pooled httpx client shared by every request of the process.
    """

    def __init__(self, settings: Settings, client: Optional[httpx.AsyncClient] = None) -> None:
        self.settings = settings
        self._client = client

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            limits = httpx.Limits(
                max_connections=100,
                max_keepalive_connections=20,
                keepalive_expiry=30.0,
            )
            try:
                self._client = httpx.AsyncClient(http2=self.settings.http2, limits=limits)
            except ImportError:
                # If http2 extras not installed, gracefully fall back to HTTP/1.1
                self._client = httpx.AsyncClient(http2=False, limits=limits)
        return self._client

    def _headers(self) -> Dict[str, str]:
        headers = {"Accept": "text/event-stream", "Content-Type": "application/json"}
        if self.settings.api_key:
            headers["Authorization"] = f"Bearer {self.settings.api_key}"
        return headers

    async def open_stream(self, payload: Dict[str, Any]) -> UpstreamStream:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.settings.upstream_timeout
        client = self._get_client()
        url = self.settings.chat_completions_url
        request = client.build_request(
            "POST",
            url,
            json=payload,
            headers=self._headers(),
            timeout=httpx.Timeout(self.settings.upstream_timeout, connect=self.settings.connect_timeout),
        )
        if self.settings.debug:
            logger.debug(
                "[proxy] upstream request (stream): %s",
                json.dumps({"url": url, **{k: v for k, v in payload.items() if k != "messages"}}, ensure_ascii=False),
            )
        try:
            response = await asyncio.wait_for(client.send(request, stream=True), timeout=self.settings.upstream_timeout)
        except asyncio.TimeoutError:
            raise UpstreamTimeout("upstream deadline exceeded while opening stream") from None
        except httpx.TimeoutException as e:
            raise UpstreamTimeout(f"upstream request timed out: {e}") from e
        except httpx.HTTPError as e:
            raise UpstreamError(f"upstream request failed: {type(e).__name__}: {e}") from e

        if response.status_code >= 400:
            try:
                body_bytes = await response.aread()
                body_text = body_bytes.decode("utf-8", errors="ignore") if body_bytes else ""
            except httpx.HTTPError:
                body_text = ""
            finally:
                await response.aclose()
            raise UpstreamError(_error_message(response.status_code, body_text), status_code=response.status_code)

        logger.debug("[proxy] upstream stream opened, status: %s", response.status_code)
        return UpstreamStream(response, deadline, self.settings.empty_messages_limit)

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None
