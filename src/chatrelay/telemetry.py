"""Logfire setup. Call once, before the server starts taking requests."""

import logging

import logfire
from fastapi import FastAPI


def configure_telemetry(level: int = logging.INFO) -> None:
    """Configure Logfire, route stdlib logging through it, and instrument httpx.

    Must run before the identity and provider clients are built. Without a
    LOGFIRE_TOKEN in the environment nothing leaves the process; records
    still go to the console.
    """
    logfire.configure(
        service_name="chatrelay",
        send_to_logfire="if-token-present",
    )
    logging.basicConfig(level=level, handlers=[logfire.LogfireLoggingHandler()])
    logfire.instrument_httpx()


def instrument_app(app: FastAPI) -> None:
    """Instrument the FastAPI app. Must run before it serves its first request."""
    logfire.instrument_fastapi(app)
