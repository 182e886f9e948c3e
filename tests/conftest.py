"""Shared fixtures: in-memory store, engine, identity and an app wired to them."""

import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from feedsync.config import FeedConfig
from feedsync.engine import FeedEngine
from feedsync.services import (
    InMemoryDocumentStore,
    InMemoryNotificationRelay,
    StaticIdentityProvider,
)


class StepClock:
    """Deterministic clock: every call is one second after the previous one."""

    def __init__(self):
        self.now = datetime(2024, 1, 1, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        self.now += timedelta(seconds=1)
        return self.now


async def settle(rounds: int = 50) -> None:
    """Let scheduled snapshot deliveries and author joins run."""
    for _ in range(rounds):
        await asyncio.sleep(0)


@pytest.fixture
def store():
    return InMemoryDocumentStore(clock=StepClock())


@pytest.fixture
def engine(store):
    return FeedEngine(store)


@pytest.fixture
def identity():
    return StaticIdentityProvider()


@pytest.fixture
def relay(store):
    return InMemoryNotificationRelay(store)


@pytest.fixture
def config():
    return FeedConfig()
