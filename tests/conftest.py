"""Pytest configuration and fixtures for streamchat tests."""

import asyncio
from datetime import datetime, timedelta, timezone
from typing import List, Optional, Sequence

import pytest
from httpx import ASGITransport, AsyncClient

from streamchat.models import Message
from streamchat.relay.config import settings as relay_settings
from streamchat.store import MemoryStorage, SessionStore


class FakeTransport:
    """Relay stand-in yielding canned fragments.

    If ``error`` is set it is raised after ``fail_after`` fragments have been
    yielded (immediately when ``fail_after`` is 0).
    """

    def __init__(
        self,
        fragments: Sequence[str] = (),
        error: Optional[Exception] = None,
        fail_after: int = 0,
    ):
        self.fragments = list(fragments)
        self.error = error
        self.fail_after = fail_after
        self.calls: List[List[Message]] = []

    async def stream_chat(self, messages):
        self.calls.append(list(messages))
        if self.error is not None:
            for fragment in self.fragments[: self.fail_after]:
                yield fragment
            raise self.error
        for fragment in self.fragments:
            yield fragment


class GatedTransport:
    """Relay stand-in that blocks mid-stream until ``release()`` is called."""

    def __init__(self, before: str = "partial", after: str = " done"):
        self.before = before
        self.after = after
        self._gate = asyncio.Event()
        self.calls: List[List[Message]] = []

    def release(self) -> None:
        self._gate.set()

    async def stream_chat(self, messages):
        self.calls.append(list(messages))
        yield self.before
        await self._gate.wait()
        yield self.after


class StepClock:
    """Deterministic UTC clock advancing one second per call."""

    def __init__(self, start: Optional[datetime] = None):
        self.current = start or datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        self.current += timedelta(seconds=1)
        return self.current


@pytest.fixture
def transport():
    return FakeTransport(["Hi", " there"])


@pytest.fixture
def clock():
    return StepClock()


@pytest.fixture
def store(transport, clock):
    return SessionStore(transport, clock=clock)


@pytest.fixture
def memory_storage():
    return MemoryStorage()


@pytest.fixture
def gemini_key(monkeypatch):
    """Configure a relay API key for the duration of a test."""
    monkeypatch.setattr(relay_settings, "gemini_api_key", "test-key")
    return "test-key"


@pytest.fixture
async def client():
    """HTTP client bound to the relay app."""
    from streamchat.relay.main import app

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
