"""
Shared pytest fixtures for the fan-out engine tests.

These fixtures provide a seeded store and fresh delivery channels for every
test, so tests never interfere with each other.

Cast:
- Alice: wants email for most channels, follows Bob, watches Bob's private tick
- Bob: the main author; all email off
- Carol: no verified email address; watches Bob's post
- Dave: default settings; watches Bob's private tick without following Bob
"""

from datetime import datetime, timedelta, timezone

import pytest

from fanout import Events
from shared.channels import EmailNotifier
from shared.data_store import DataStore
from shared.errors import UpstreamError
from shared.models import Member
from shared.settings import FanoutSettings
from shared.socket_bus import SocketBus

T0 = datetime(2024, 5, 1, 9, 0, tzinfo=timezone.utc)


def at(minutes: int) -> datetime:
    """Timestamp `minutes` after the fixture epoch."""
    return T0 + timedelta(minutes=minutes)


# =============================================================================
# Seed data
# =============================================================================

MEMBERS = [
    {
        "id": "alice",
        "username": "alice",
        "display_name": "Alice",
        "primary_email": "alice@example.com",
        "gravatar": "a1",
        "password": "hashed",
        "config": {"notifications": {
            "post": {"email": True},
            "follow": {"email": True},
            "accept": {"email": True},
            "comment": {"email": True},
            "session": {"email": True},
            "request": {"email": "true"},
        }},
    },
    {
        "id": "bob",
        "username": "bob",
        "display_name": "Bob",
        "primary_email": "bob@example.com",
        "gravatar": "b2",
        "config": {"notifications": {
            "post": {"email": False},
            "follow": {"email": False},
            "comment": {"email": False},
        }},
    },
    {
        "id": "carol",
        "username": "carol",
        "display_name": "Carol",
        "primary_email": "",
        "config": {"notifications": {"post": {"email": True}, "accept": {"email": True}}},
    },
    {
        "id": "dave",
        "username": "dave",
        "display_name": "Dave",
        "primary_email": "dave@example.com",
        "config": {},
    },
]

CRAGS = [
    {"id": "crag-1", "name": "Ceuse", "key": "ceuse", "country": "FR", "author_id": "bob", "created": at(0)},
]

ASCENTS = [
    {"id": "asc-1", "name": "Biographie", "key": "biographie", "grade": "9a+", "crag_id": "crag-1",
     "author_id": "bob", "created": at(0)},
]

POSTS = [
    {"id": "post-1", "author_id": "bob", "title": "Send train", "body": "Finally clipped the chains.",
     "public": True, "created": at(10)},
]

COMMENTS = [
    {"id": f"c-{i}", "author_id": "alice", "parent_id": "post-1", "parent_type": "post",
     "body": f"comment {i}", "created": at(20 + i)}
    for i in range(1, 8)
] + [
    {"id": "c-tp", "author_id": "alice", "parent_id": "tick-priv", "parent_type": "tick",
     "body": "strong!", "created": at(50)},
]

MEDIAS = [
    {"id": "m-1", "parent_id": "post-1", "url": "/m/1.jpg", "created": at(11)},
    {"id": "m-2", "parent_id": "post-1", "url": "/m/2.jpg", "created": at(12)},
]

HANGTENS = [
    {"id": "h-1", "author_id": "alice", "parent_id": "post-1", "parent_type": "post", "created": at(30)},
]

SESSIONS = [
    {"id": "sess-1", "author_id": "bob", "crag_id": "crag-1", "created": at(40)},
    {"id": "sess-private", "author_id": "bob", "crag_id": "crag-1", "created": at(60)},
]

ACTIONS = [
    {"id": "act-1", "session_id": "sess-1", "index": 0},
    {"id": "act-2", "session_id": "sess-private", "index": 0},
]

TICKS = [
    {"id": "tick-priv", "author_id": "bob", "action_id": "act-1", "index": 1, "ascent_id": "asc-1",
     "crag_id": "crag-1", "public": False, "created": at(42)},
    {"id": "tick-pub", "author_id": "bob", "action_id": "act-1", "index": 0, "ascent_id": "asc-1",
     "crag_id": "crag-1", "public": True, "created": at(41)},
    {"id": "tick-hidden", "author_id": "bob", "action_id": "act-2", "index": 0, "ascent_id": "asc-1",
     "crag_id": "crag-1", "public": False, "created": at(61)},
]

SUBSCRIPTIONS = [
    {"id": "sub-ab", "subscriber_id": "alice", "subscribee_id": "bob",
     "meta": {"type": "member", "style": "follow"}, "mute": False},
    {"id": "sub-cp", "subscriber_id": "carol", "subscribee_id": "post-1",
     "meta": {"type": "post", "style": "watch"}, "mute": False},
    {"id": "sub-dt", "subscriber_id": "dave", "subscribee_id": "tick-priv",
     "meta": {"type": "tick", "style": "watch"}, "mute": False},
    {"id": "sub-at", "subscriber_id": "alice", "subscribee_id": "tick-priv",
     "meta": {"type": "tick", "style": "watch"}, "mute": False},
]


class FailingStore(DataStore):
    """Store whose chosen (method, collection) calls raise UpstreamError."""

    def __init__(self):
        super().__init__()
        self.failures: set[tuple[str, str]] = set()

    def fail(self, method: str, collection: str) -> None:
        self.failures.add((method, collection))

    def _maybe_fail(self, method: str, collection: str) -> None:
        if (method, collection) in self.failures:
            raise UpstreamError(f"{method} on {collection} failed")

    async def read(self, collection, query, inflate=None):
        self._maybe_fail("read", collection)
        return await super().read(collection, query, inflate=inflate)

    async def list(self, collection, query=None, sort=None, limit=None, inflate=None):
        self._maybe_fail("list", collection)
        return await super().list(collection, query, sort=sort, limit=limit, inflate=inflate)

    async def remove(self, collection, query):
        self._maybe_fail("remove", collection)
        return await super().remove(collection, query)


def seed(store: DataStore) -> DataStore:
    """Load the full cast and content into a store."""
    store.seed("members", [Member.model_validate(m).model_dump() for m in MEMBERS])
    store.seed("crags", CRAGS)
    store.seed("ascents", ASCENTS)
    store.seed("posts", POSTS)
    store.seed("comments", COMMENTS)
    store.seed("medias", MEDIAS)
    store.seed("hangtens", HANGTENS)
    store.seed("sessions", SESSIONS)
    store.seed("actions", ACTIONS)
    store.seed("ticks", TICKS)
    store.seed("subscriptions", SUBSCRIPTIONS)
    return store


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture
def store() -> DataStore:
    """Fresh, fully seeded store for each test."""
    return seed(DataStore())


@pytest.fixture
def failing_store() -> FailingStore:
    """Seeded store that can be told to fail on chosen calls."""
    return seed(FailingStore())


@pytest.fixture
def settings() -> FanoutSettings:
    """Production settings, so email is delivered."""
    return FanoutSettings(environment="production")


@pytest.fixture
def socket_bus() -> SocketBus:
    """Fresh in-process socket for each test."""
    return SocketBus()


@pytest.fixture
def emailer() -> EmailNotifier:
    """Fresh EmailNotifier that never fails."""
    return EmailNotifier(fail_rate=0.0)


@pytest.fixture
def engine(store, socket_bus, emailer, settings) -> Events:
    """Engine wired to the seeded store and fresh channels."""
    return Events(store, sock=socket_bus, emailer=emailer, settings=settings)
