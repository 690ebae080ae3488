"""chatrelay - FastAPI application.

Request flow for `POST /chat-stream`:
authenticate -> validate body -> assemble prompt -> open provider stream
-> relay fragments. Every step up to opening the stream can still fail
with a JSON error; after that the only way to fail is to cut the body.
"""

import logging
from contextlib import asynccontextmanager

import logfire
from fastapi import FastAPI, Request, Response
from fastapi.responses import JSONResponse

from .auth import IdentityClient
from .completions import CompletionClient
from .errors import MethodNotAllowed, RelayError
from .prompt import (
    ChatRequest,
    ChatStreamRequest,
    assemble_messages,
    assemble_single_shot,
    load_system_directive,
    parse_body,
)
from .relay import CORS_HEADERS, RelayResponse, error_response, preflight_response
from .telemetry import configure_telemetry, instrument_app

logger = logging.getLogger(__name__)

REJECTED_METHODS = ["GET", "HEAD", "PUT", "DELETE", "PATCH"]


def create_app(
    identity: IdentityClient | None = None,
    completions: CompletionClient | None = None,
    directive: dict[str, str] | None = None,
) -> FastAPI:
    """Build the app around its collaborators.

    Anything not passed in is constructed here from the environment. All
    of it is built once and only read afterwards.
    """
    identity = identity or IdentityClient()
    completions = completions or CompletionClient()
    directive = directive or load_system_directive()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Manage application lifecycle."""
        logger.info("chatrelay is ready.")
        yield
        logger.info("chatrelay is shutting down...")
        await identity.aclose()
        await completions.aclose()

    app = FastAPI(
        title="chatrelay",
        description="Streaming chat relay",
        lifespan=lifespan,
    )
    app.state.identity = identity
    app.state.completions = completions
    app.state.directive = directive

    @app.get("/health")
    async def health():
        """Health check endpoint."""
        return {"status": "ok", "service": "chatrelay"}

    @app.options("/chat-stream")
    @app.options("/chat")
    async def preflight() -> Response:
        """CORS preflight. Never authenticates."""
        logger.debug("Handling CORS preflight request")
        return preflight_response()

    @app.api_route("/chat-stream", methods=REJECTED_METHODS)
    @app.api_route("/chat", methods=REJECTED_METHODS)
    async def reject(request: Request) -> Response:
        return error_response(MethodNotAllowed(f"Method {request.method} not allowed"))

    @app.post("/chat-stream")
    async def chat_stream(request: Request) -> Response:
        """Relay the conversation to the provider and stream the reply back."""
        with logfire.span("relay: POST /chat-stream") as span:
            try:
                principal = await identity.validate(request.headers.get("authorization"))
                span.set_attribute("user_id", principal.id[:8])

                body = parse_body(ChatStreamRequest, await request.body())
                messages = assemble_messages(body.messages, directive)
                span.set_attribute("message_count", len(messages))

                stream = await completions.open_stream(messages)
            except RelayError as e:
                logger.warning(f"Rejected chat-stream request: {type(e).__name__}: {e}")
                span.set_level("warn")
                return error_response(e)
            except Exception as e:
                logger.exception("Unexpected error before streaming")
                span.record_exception(e)
                span.set_level("error")
                return error_response(e)

        logger.info(f"Beginning response stream for user {principal.id[:8]}")
        return RelayResponse(stream)

    @app.post("/chat")
    async def chat(request: Request) -> Response:
        """Single-shot variant: wait for the whole reply and return it as JSON."""
        with logfire.span("relay: POST /chat") as span:
            try:
                principal = await identity.validate(request.headers.get("authorization"))
                span.set_attribute("user_id", principal.id[:8])

                body = parse_body(ChatRequest, await request.body())
                messages = assemble_single_shot(body)
                span.set_attribute("message_count", len(messages))

                message = await completions.complete(messages)
            except RelayError as e:
                logger.warning(f"Rejected chat request: {type(e).__name__}: {e}")
                span.set_level("warn")
                return error_response(e)
            except Exception as e:
                logger.exception("Unexpected error in chat")
                span.record_exception(e)
                span.set_level("error")
                return error_response(e)

        return JSONResponse(
            {
                "message": message,
                "user": {"id": principal.id, "email": principal.email},
            },
            headers=CORS_HEADERS,
        )

    return app


def build_app() -> FastAPI:
    """Factory for uvicorn: telemetry first, so the HTTP clients are instrumented."""
    configure_telemetry()
    app = create_app()
    instrument_app(app)
    return app
