"""Failure kinds of the relay and the HTTP status each one maps to."""


class RelayError(Exception):
    """Base class for failures the dispatcher knows how to report."""

    default_message = "Request failed"

    def __init__(self, message: str | None = None):
        super().__init__(message or self.default_message)

    @property
    def message(self) -> str:
        return str(self)


class Unauthenticated(RelayError):
    """Missing bearer credential, or one the identity service rejected."""

    default_message = "Not authenticated"


class MalformedInput(RelayError):
    """Request body is not JSON or does not match the expected shape."""

    default_message = "Malformed request body"


class UpstreamUnavailable(RelayError):
    """The completion provider refused or could not start the call."""

    default_message = "Completion provider unavailable"


class MethodNotAllowed(RelayError):
    """Anything but POST or OPTIONS on a relay route."""

    default_message = "Method not allowed"


class StreamInterrupted(RelayError):
    """The provider's stream broke off after fragments were already sent.

    Never converted into a status code: by the time this is raised the
    response headers are on the wire.
    """

    default_message = "Completion stream interrupted"


STATUS_CODES: dict[type[RelayError], int] = {
    Unauthenticated: 401,
    MalformedInput: 400,
    MethodNotAllowed: 405,
    UpstreamUnavailable: 500,
}


def status_for(error: Exception) -> int:
    """Look up the HTTP status for an error by its kind, not its message."""
    for kind in type(error).__mro__:
        if kind in STATUS_CODES:
            return STATUS_CODES[kind]
    return 500
