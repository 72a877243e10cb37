"""Shared fixtures: scripted completion service, in-memory persistence."""

from __future__ import annotations

import json
from typing import Any

import pytest

from plainness.config import default_config
from plainness.errors import PersistenceFailure
from plainness.store.db import MemoryStore
from plainness.store.gateway import PersistenceGateway


class ScriptedService:
    """Completion service that replays canned replies in order.

    A reply may be a string, an exception instance (raised), or a callable
    taking the call record and returning a string.
    """

    def __init__(self, replies: list[Any] | None = None) -> None:
        self.replies: list[Any] = list(replies or [])
        self.calls: list[dict[str, Any]] = []

    def queue(self, *replies: Any) -> None:
        self.replies.extend(replies)

    def complete(self, system: str, messages: list[dict[str, str]], max_tokens: int) -> str:
        call = {"system": system, "messages": messages, "max_tokens": max_tokens}
        self.calls.append(call)
        if not self.replies:
            raise AssertionError("unexpected completion call")
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        if callable(reply):
            return reply(call)
        return reply


class FailingStore:
    """Backend whose every operation fails."""

    def get(self, key: str) -> str | None:
        raise PersistenceFailure("disk on fire")

    def set(self, key: str, value: str) -> None:
        raise PersistenceFailure("disk on fire")

    def delete(self, key: str) -> None:
        raise PersistenceFailure("disk on fire")


class FakeClock:
    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def config() -> dict:
    return default_config()


@pytest.fixture
def store() -> MemoryStore:
    return MemoryStore()


@pytest.fixture
def gateway(store: MemoryStore) -> PersistenceGateway:
    return PersistenceGateway(store)


@pytest.fixture
def service() -> ScriptedService:
    return ScriptedService()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


def suggestion_json(*items: tuple[str, str, str, str]) -> str:
    """Build a model reply: JSON array of (original, suggestion, reason, mode)."""
    return json.dumps([
        {"original": o, "suggestion": s, "reason": r, "mode": m} for o, s, r, m in items
    ])
