"""Writing relay output onto the downstream HTTP response.

Once the first fragment is flushed the status line and headers are
final. Anything that goes wrong after that can only end the body early;
it can't be reported as an error status or appended as JSON.
"""

import logging
from collections.abc import AsyncIterator
from typing import Protocol

from fastapi.responses import JSONResponse, Response, StreamingResponse
from starlette.types import Receive, Scope, Send

from .errors import RelayError, StreamInterrupted, status_for

logger = logging.getLogger(__name__)

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Headers": "authorization, x-client-info, apikey, content-type",
    "Access-Control-Allow-Methods": "POST, OPTIONS",
}

STREAM_HEADERS = {
    **CORS_HEADERS,
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
}


class FragmentStream(Protocol):
    """What the writer needs from an upstream stream."""

    def __aiter__(self) -> AsyncIterator[str]: ...

    async def aclose(self) -> None: ...


async def relay_fragments(stream: FragmentStream) -> AsyncIterator[bytes]:
    """Yield each upstream fragment as UTF-8 bytes, one write per fragment.

    Pulls the next fragment only after the previous one has been taken,
    so the transport's pace bounds how fast we read upstream.
    StreamInterrupted is logged and re-raised: the server then aborts the
    response instead of terminating it cleanly.
    """
    count = 0
    try:
        async for fragment in stream:
            count += 1
            yield fragment.encode("utf-8")
        logger.info(f"Stream completed: {count} fragments")
    except StreamInterrupted as e:
        logger.error(f"Stream interrupted after {count} fragments: {e}")
        raise
    finally:
        await stream.aclose()


class RelayResponse(StreamingResponse):
    """A text/plain streaming response that always releases its upstream.

    Covers the case where the client disconnects and the server cancels
    the send loop while the fragment generator is parked at a yield.
    """

    media_type = "text/plain"

    def __init__(self, stream: FragmentStream):
        super().__init__(
            relay_fragments(stream),
            status_code=200,
            headers=STREAM_HEADERS,
        )
        self.upstream = stream

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        try:
            await super().__call__(scope, receive, send)
        finally:
            await self.upstream.aclose()


def preflight_response() -> Response:
    """Answer a CORS preflight without touching anything else."""
    return Response(content="ok", status_code=200, headers=CORS_HEADERS)


def error_response(error: Exception) -> JSONResponse:
    """Render a pre-stream failure as `{"error": message}` with CORS headers."""
    if isinstance(error, RelayError):
        message = error.message
    else:
        message = "Internal server error"
    return JSONResponse(
        {"error": message},
        status_code=status_for(error),
        headers=CORS_HEADERS,
    )
