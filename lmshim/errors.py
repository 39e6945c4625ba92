from __future__ import annotations

from typing import Optional


class ShimError(RuntimeError):
    ...


class InvalidRequestError(ShimError):
    """Client body could not be decoded into a chat-completion request."""


class UpstreamError(ShimError):
    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class UpstreamTimeout(UpstreamError):
    """The per-request upstream deadline expired."""


class StreamEnd(Exception):
    """Natural end of the upstream stream (``data: [DONE]`` or EOF).

    Not an error: it is the expected terminal signal of ``UpstreamStream.recv``.
    """
