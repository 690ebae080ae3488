"""Shared test doubles for the relay's two collaborators."""

import asyncio

import logfire
import pytest

from chatrelay.app import create_app
from chatrelay.auth import Principal, bearer_token
from chatrelay.errors import Unauthenticated, UpstreamUnavailable

logfire.configure(send_to_logfire=False, console=False)

ALICE = Principal(id="a1a1a1a1-0000-0000-0000-000000000000", email="alice@example.com")
BOB = Principal(id="b2b2b2b2-0000-0000-0000-000000000000", email="bob@example.com")


class FakeIdentity:
    """Stands in for IdentityClient. Knows a fixed set of tokens."""

    def __init__(self, calls: list, users: dict | None = None):
        self.calls = calls
        self.users = users if users is not None else {"alice-token": ALICE, "bob-token": BOB}
        self.closed = False

    async def validate(self, header):
        self.calls.append(("identity", header))
        token = bearer_token(header)
        if token not in self.users:
            raise Unauthenticated("Not authenticated")
        return self.users[token]

    async def aclose(self):
        self.closed = True


class FakeStream:
    """A scripted completion stream that yields control between fragments."""

    def __init__(self, fragments, error: Exception | None = None):
        self.fragments = list(fragments)
        self.error = error
        self.closed = False
        self.pulled = 0

    def __aiter__(self):
        return self._fragments()

    async def _fragments(self):
        for fragment in self.fragments:
            await asyncio.sleep(0)
            self.pulled += 1
            yield fragment
        if self.error is not None:
            raise self.error

    async def aclose(self):
        self.closed = True


class FakeCompletions:
    """Stands in for CompletionClient.

    `script` maps the content of the last turn to the fragments to stream
    back, so concurrent requests can be told apart.
    """

    def __init__(self, calls: list, script: dict | None = None, error: Exception | None = None,
                 open_error: Exception | None = None):
        self.calls = calls
        self.script = script or {}
        self.error = error
        self.open_error = open_error
        self.streams: list[FakeStream] = []
        self.requests: list[list[dict]] = []
        self.closed = False

    def _fragments_for(self, messages):
        last = messages[-1]["content"] if len(messages) > 1 else ""
        return self.script.get(last, ["Hello", " ", "world"])

    async def open_stream(self, messages, params=None):
        self.calls.append(("completions", len(messages)))
        self.requests.append(messages)
        if self.open_error is not None:
            raise self.open_error
        stream = FakeStream(self._fragments_for(messages), self.error)
        self.streams.append(stream)
        return stream

    async def complete(self, messages, params=None):
        self.calls.append(("complete", len(messages)))
        self.requests.append(messages)
        if self.open_error is not None:
            raise self.open_error
        return "".join(self._fragments_for(messages))

    async def aclose(self):
        self.closed = True


@pytest.fixture
def calls():
    return []


@pytest.fixture
def identity(calls):
    return FakeIdentity(calls)


@pytest.fixture
def completions(calls):
    return FakeCompletions(calls)


@pytest.fixture
def app(identity, completions):
    return create_app(identity=identity, completions=completions)


@pytest.fixture
def upstream_down(calls):
    return FakeCompletions(calls, open_error=UpstreamUnavailable("Failed to get response from completion provider"))
