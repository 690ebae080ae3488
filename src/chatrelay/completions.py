"""Completion provider client (OpenAI-compatible chat completions).

Streaming mode returns a CompletionStream: a lazy, single-pass async
iterator over the text deltas of the server-sent event stream. Nothing
is buffered past the fragment currently being handed to the caller.

The provider sends:
- `data: {...}` chunks carrying `choices[0].delta.content`
- optionally `data: {"error": {...}}` if generation fails mid-way
- `data: [DONE]` as the end marker

A stream that ends without `[DONE]` was cut short.
"""

import json
import logging
from collections.abc import AsyncIterator

import httpx

from . import config
from .config import GenerationParams
from .errors import StreamInterrupted, UpstreamUnavailable

logger = logging.getLogger(__name__)

DONE_MARKER = "[DONE]"


def _delta_content(event: dict) -> str:
    """Text carried by one streamed chunk, or "" for role/finish-only chunks.

    Chunks that don't have the expected shape carry no text.
    """
    choices = event.get("choices")
    if not isinstance(choices, list) or not choices or not isinstance(choices[0], dict):
        return ""
    delta = choices[0].get("delta")
    if not isinstance(delta, dict):
        return ""
    content = delta.get("content")
    return content if isinstance(content, str) else ""


def _error_detail(response: httpx.Response) -> str:
    """Best-effort short description of a provider error body."""
    try:
        body = response.json()
    except ValueError:
        return response.text[:200]
    error = body.get("error") if isinstance(body, dict) else None
    if isinstance(error, dict):
        return str(error.get("message") or error.get("type") or error)
    return str(error or body)[:200]


class CompletionStream:
    """One streaming completion. Iterate it once; close it when done."""

    def __init__(self, response: httpx.Response):
        self._response = response
        self._consumed = False
        self._closed = False
        self.fragment_count = 0

    def __aiter__(self) -> AsyncIterator[str]:
        if self._consumed:
            raise RuntimeError("Completion stream can only be consumed once")
        self._consumed = True
        return self._fragments()

    async def _fragments(self) -> AsyncIterator[str]:
        finished = False
        try:
            async for line in self._response.aiter_lines():
                if not line.startswith("data:"):
                    continue
                data = line[5:].strip()
                if data == DONE_MARKER:
                    finished = True
                    break

                try:
                    event = json.loads(data)
                except json.JSONDecodeError:
                    logger.warning(f"Skipping unparseable stream line ({len(data)} chars)")
                    continue
                if not isinstance(event, dict):
                    continue

                if event.get("error"):
                    raise StreamInterrupted(f"Provider error mid-stream: {event['error']}")

                content = _delta_content(event)
                if content:
                    self.fragment_count += 1
                    yield content
        except httpx.HTTPError as e:
            raise StreamInterrupted(f"Provider connection dropped: {e!r}") from e
        finally:
            await self.aclose()

        if not finished:
            raise StreamInterrupted("Provider stream ended without completion marker")

    async def aclose(self):
        """Release the upstream connection. Safe to call more than once."""
        if self._closed:
            return
        self._closed = True
        await self._response.aclose()


class CompletionClient:
    """Talks to `POST {base_url}/chat/completions`.

    Constructed once at startup and shared read-only by every request.
    """

    def __init__(
        self,
        api_key: str = config.OPENAI_API_KEY,
        base_url: str = config.OPENAI_BASE_URL,
        client: httpx.AsyncClient | None = None,
    ):
        self._client = client or httpx.AsyncClient(
            base_url=base_url,
            timeout=config.PROVIDER_TIMEOUT,
            headers={"Authorization": f"Bearer {api_key}"},
        )

    async def open_stream(
        self,
        messages: list[dict[str, str]],
        params: GenerationParams = config.STREAM_PARAMS,
    ) -> CompletionStream:
        """Start a streaming completion and wait for the provider to accept it.

        Raises UpstreamUnavailable if the connection fails or the provider
        answers with anything but 200. No fragment has been read yet when
        this returns.
        """
        payload = {**params.as_payload(), "messages": messages, "stream": True}
        request = self._client.build_request("POST", "/chat/completions", json=payload)

        try:
            response = await self._client.send(request, stream=True)
        except httpx.HTTPError as e:
            logger.error(f"Completion provider unreachable: {e!r}")
            raise UpstreamUnavailable("Failed to reach completion provider") from e

        if response.status_code != 200:
            try:
                await response.aread()
                detail = _error_detail(response)
            except httpx.HTTPError:
                detail = "unreadable error body"
            finally:
                await response.aclose()
            logger.error(f"Completion provider refused stream: status={response.status_code}, {detail}")
            raise UpstreamUnavailable("Failed to get response from completion provider")

        logger.info(f"Opened completion stream: model={params.model}, messages={len(messages)}")
        return CompletionStream(response)

    async def complete(
        self,
        messages: list[dict[str, str]],
        params: GenerationParams = config.SINGLE_SHOT_PARAMS,
    ) -> str:
        """Single-shot completion. Returns the assistant's whole reply."""
        payload = {**params.as_payload(), "messages": messages}

        try:
            response = await self._client.post("/chat/completions", json=payload)
        except httpx.HTTPError as e:
            logger.error(f"Completion provider unreachable: {e!r}")
            raise UpstreamUnavailable("Failed to reach completion provider") from e

        if response.status_code != 200:
            logger.error(f"Completion provider error: status={response.status_code}, {_error_detail(response)}")
            raise UpstreamUnavailable("Failed to get response from completion provider")

        try:
            content = response.json()["choices"][0]["message"]["content"]
        except (ValueError, KeyError, IndexError, TypeError) as e:
            raise UpstreamUnavailable("Unexpected response from completion provider") from e

        logger.info(f"Completion received: model={params.model}, chars={len(content or '')}")
        return content or ""

    async def aclose(self):
        """Close the HTTP client."""
        await self._client.aclose()
