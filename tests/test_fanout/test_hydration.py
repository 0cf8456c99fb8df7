"""
Tests for event hydration and authorization.

These tests verify the variant hydrators for climbing content and datasets,
and how rejection propagates:
- a denied tick inside a session drops only that tick
- a session with no visible tick rejects the whole event
- a denied parent rejects the comment event wrapping it
"""

import pytest

from fanout.hydration import HydrationEngine, HydratorRegistry, is_rejected
from fanout.hydrators import DEFAULT_HYDRATORS
from fanout.hydrators_datasets import DATASET_HYDRATORS
from shared.profiles import MEMBER


def _event(action_type, action_id, **fields):
    event = {"id": "e-1", "actor_id": "bob", "action_type": action_type, "action_id": action_id}
    event.update(fields)
    return event


@pytest.fixture
def hydration(store) -> HydrationEngine:
    return HydrationEngine(store)


class TestPost:
    """Tests for post events."""

    @pytest.mark.asyncio
    async def test_expands_post(self, hydration):
        view = await hydration.hydrate(_event("post", "post-1"), "alice")
        post = view["action"]

        assert not is_rejected(view)
        assert post["author"]["display_name"] == "Bob"
        assert [m["id"] for m in post["medias"]] == ["m-2", "m-1"]
        assert [h["id"] for h in post["hangtens"]] == ["h-1"]

    @pytest.mark.asyncio
    async def test_latest_comments_oldest_first(self, hydration):
        view = await hydration.hydrate(_event("post", "post-1"), None)
        comments = view["action"]["comments"]

        assert [c["id"] for c in comments] == ["c-3", "c-4", "c-5", "c-6", "c-7"]
        assert comments[0]["author"]["username"] == "alice"

    @pytest.mark.asyncio
    async def test_comment_limit(self, store):
        hydration = HydrationEngine(store, comment_limit=2)
        view = await hydration.hydrate(_event("post", "post-1"), None)

        assert [c["id"] for c in view["action"]["comments"]] == ["c-6", "c-7"]

    @pytest.mark.asyncio
    async def test_event_is_not_modified(self, hydration):
        event = _event("post", "post-1")
        await hydration.hydrate(event, None)
        assert "action" not in event


class TestTick:
    """Tests for tick events."""

    @pytest.mark.asyncio
    async def test_private_tick_for_follower(self, hydration):
        view = await hydration.hydrate(_event("tick", "tick-priv"), "alice")
        tick = view["action"]

        assert not is_rejected(view)
        assert tick["ascent"]["grade"] == "9a+"
        assert tick["crag"]["name"] == "Ceuse"
        assert [c["id"] for c in tick["comments"]] == ["c-tp"]

    @pytest.mark.asyncio
    async def test_private_tick_for_stranger(self, hydration):
        view = await hydration.hydrate(_event("tick", "tick-priv"), "dave")

        assert is_rejected(view)
        assert "author" not in view["action"]

    @pytest.mark.asyncio
    async def test_private_tick_for_anonymous(self, hydration):
        assert is_rejected(await hydration.hydrate(_event("tick", "tick-priv"), None))


class TestSession:
    """Tests for session events and per-tick rejection."""

    @pytest.mark.asyncio
    async def test_hidden_tick_dropped(self, hydration):
        view = await hydration.hydrate(_event("session", "sess-1"), "dave")
        session = view["action"]

        assert not is_rejected(view)
        assert session["crag"]["name"] == "Ceuse"
        assert [t["id"] for t in session["actions"][0]["ticks"]] == ["tick-pub"]

    @pytest.mark.asyncio
    async def test_all_ticks_visible_to_follower(self, hydration):
        view = await hydration.hydrate(_event("session", "sess-1"), "alice")
        ticks = view["action"]["actions"][0]["ticks"]

        assert [t["id"] for t in ticks] == ["tick-pub", "tick-priv"]
        assert all(t["author"]["id"] == "bob" for t in ticks)

    @pytest.mark.asyncio
    async def test_no_visible_tick_rejects_event(self, hydration):
        view = await hydration.hydrate(_event("session", "sess-private"), "dave")

        assert is_rejected(view)
        assert view["action"]["actions"][0]["ticks"] == []

    @pytest.mark.asyncio
    async def test_session_visible_to_author(self, hydration):
        view = await hydration.hydrate(_event("session", "sess-private"), "bob")
        assert not is_rejected(view)


class TestWrappedParents:
    """Tests for comments and hangtens wrapping a post or a tick."""

    @pytest.mark.asyncio
    async def test_comment_on_post(self, hydration):
        view = await hydration.hydrate(_event("comment", "c-1", target_id="post-1"), "dave")

        assert not is_rejected(view)
        assert view["action"]["author"]["id"] == "alice"
        assert view["target"]["id"] == "post-1"
        assert len(view["target"]["comments"]) == 5

    @pytest.mark.asyncio
    async def test_comment_on_hidden_tick(self, hydration):
        view = await hydration.hydrate(_event("comment", "c-tp", target_id="tick-priv"), "dave")
        assert is_rejected(view)

    @pytest.mark.asyncio
    async def test_comment_on_visible_tick(self, hydration):
        view = await hydration.hydrate(_event("comment", "c-tp", target_id="tick-priv"), "alice")

        assert not is_rejected(view)
        assert view["target"]["ascent"]["name"] == "Biographie"

    @pytest.mark.asyncio
    async def test_hangten_on_post(self, hydration):
        view = await hydration.hydrate(_event("hangten", "h-1", target_id="post-1"), None)

        assert view["target"]["author"]["display_name"] == "Bob"


class TestOtherTypes:
    """Tests for crags, ascents, relationships and unknown types."""

    @pytest.mark.asyncio
    async def test_ascent(self, hydration):
        view = await hydration.hydrate(_event("ascent", "asc-1"), None)

        assert view["action"]["crag"]["name"] == "Ceuse"
        assert view["action"]["hangtens"] == []

    @pytest.mark.asyncio
    async def test_crag(self, hydration):
        view = await hydration.hydrate(_event("crag", "crag-1"), None)
        assert view["action"]["author"]["id"] == "bob"

    @pytest.mark.asyncio
    async def test_private_crag(self, store, hydration):
        store.seed("crags", [{"id": "crag-p", "name": "Secret", "author_id": "bob", "public": False}])

        assert is_rejected(await hydration.hydrate(_event("crag", "crag-p"), "dave"))
        assert not is_rejected(await hydration.hydrate(_event("crag", "crag-p"), "alice"))

    @pytest.mark.asyncio
    async def test_private_ascent(self, store, hydration):
        store.seed("ascents", [{"id": "asc-p", "name": "Project", "crag_id": "crag-1",
                                "author_id": "bob", "public": False}])

        assert is_rejected(await hydration.hydrate(_event("ascent", "asc-p"), None))
        view = await hydration.hydrate(_event("ascent", "asc-p"), "bob")
        assert view["action"]["crag"]["name"] == "Ceuse"

    @pytest.mark.asyncio
    async def test_relationship_event_is_not_hydrated(self, hydration):
        event = _event("follow", "sub-ab", data={"action": {"id": "alice"}})
        view = await hydration.hydrate(event, None)

        assert view == event

    @pytest.mark.asyncio
    async def test_unregistered_type_joins_action_only(self, store, hydration):
        store.seed("routes", [{"id": "r-1", "author_id": "bob", "name": "Tufa"}])

        view = await hydration.hydrate(_event("route", "r-1"), None)

        assert view["action"] == {"id": "r-1", "author_id": "bob", "name": "Tufa"}


class TestRegistry:
    """Tests for registering variants."""

    def test_default_registry(self):
        for action_type in ("post", "session", "tick", "crag", "ascent", "comment", "hangten"):
            assert action_type in DEFAULT_HYDRATORS

    @pytest.mark.asyncio
    async def test_extended_registry(self, store):
        registry = DEFAULT_HYDRATORS.copy()

        @registry.register("route")
        async def hydrate_route(ctx, item, owner):
            await ctx.store.inflate(item, {"author": MEMBER})

        store.seed("routes", [{"id": "r-1", "author_id": "bob"}])
        view = await HydrationEngine(store, registry=registry).hydrate(_event("route", "r-1"))

        assert view["action"]["author"]["display_name"] == "Bob"
        assert "route" not in DEFAULT_HYDRATORS

    @pytest.mark.asyncio
    async def test_injected_access_predicate(self, store):
        async def deny_all(store, requestor, resource):
            return False

        hydration = HydrationEngine(store, access=deny_all)

        assert not is_rejected(await hydration.hydrate(_event("post", "post-1"), "bob"))
        assert is_rejected(await hydration.hydrate(_event("tick", "tick-pub"), "bob"))


class TestDatasets:
    """Tests for the dataset vocabulary."""

    @pytest.fixture
    def datasets(self, store):
        store.seed("datasets", [
            {"id": "ds-1", "title": "Grades", "author_id": "bob", "public": False},
            {"id": "ds-2", "title": "Crags", "author_id": "carol", "public": True},
        ])
        store.seed("views", [
            {"id": "v-1", "title": "By country", "author_id": "carol", "dataset_id": "ds-1", "public": True},
        ])
        store.seed("notes", [
            {"id": "n-2", "author_id": "alice", "parent_id": "ds-1", "parent_type": "dataset", "created": 2},
            {"id": "n-1", "author_id": "alice", "parent_id": "ds-1", "parent_type": "dataset", "created": 1},
        ])
        return HydrationEngine(store, registry=DATASET_HYDRATORS)

    @pytest.mark.asyncio
    async def test_private_dataset(self, datasets):
        assert is_rejected(await datasets.hydrate(_event("dataset", "ds-1"), "dave"))

        view = await datasets.hydrate(_event("dataset", "ds-1"), "alice")
        assert [n["id"] for n in view["action"]["notes"]] == ["n-1", "n-2"]

    @pytest.mark.asyncio
    async def test_view_joins_dataset(self, datasets):
        view = await datasets.hydrate(_event("view", "v-1"), None)

        assert view["action"]["dataset"]["title"] == "Grades"
        assert view["action"]["author"]["display_name"] == "Carol"

    @pytest.mark.asyncio
    async def test_note_on_private_dataset(self, datasets):
        event = _event("note", "n-1", target_id="ds-1")

        assert is_rejected(await datasets.hydrate(event, "dave"))
        assert not is_rejected(await datasets.hydrate(event, "bob"))

    def test_registries_are_separate(self):
        assert "dataset" not in DEFAULT_HYDRATORS
        assert "post" not in DATASET_HYDRATORS
        assert isinstance(DATASET_HYDRATORS, HydratorRegistry)
