"""
Hydration engine: builds the client-facing view of an event.

An event stores only references (`actor_id`, `action_id`, `target_id`). Before
it is shown to anyone, the engine joins in the action record and lets a
*variant hydrator*, picked by `action_type`, expand whatever that kind of
action needs: author profiles, latest comments, media, nested sub-records.

Authorization is part of hydration. Variants whose content can be private ask
the access predicate before expanding anything, and mark a record rejected
when the requestor may not see it. Which record gets marked is up to the
caller of the variant:
- the event itself, when the access-controlled item is the event's action or
  the parent it wraps, so the whole event is vetoed
- the item, when it is one element of a collection (a tick inside a session),
  so only that element is dropped

A rejected event must not be delivered. The flag is a `_rejected` key, which
client views strip.

Variants live in a HydratorRegistry keyed by action type. Two registries ship
with the engine: climbing content (fanout.hydrators) and datasets
(fanout.hydrators_datasets).
"""

import asyncio
import copy
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Iterable, Optional

from shared.access import AccessPredicate, check_access, has_access
from shared.data_store import DataStore
from shared.profiles import MEMBER, Profile, collection_for
from fanout.events import RELATIONSHIP_ACTIONS

logger = logging.getLogger("fanout.hydration")

REJECTED = "_rejected"


def reject(record: dict) -> None:
    """Mark a record as not deliverable."""
    record[REJECTED] = True


def is_rejected(record: Optional[dict]) -> bool:
    return bool(record and record.get(REJECTED))


# Variant hydrator: (context, item to expand, record to reject on denial)
Hydrator = Callable[["HydrationContext", dict, dict], Awaitable[None]]


class HydratorRegistry:
    """
    Maps action types to variant hydrators.

    Example:
        registry = HydratorRegistry()

        @registry.register("post")
        async def hydrate_post(ctx, item, owner):
            await ctx.store.inflate(item, {"author": MEMBER})
    """

    def __init__(self, hydrators: Optional[dict[str, Hydrator]] = None):
        self._hydrators: dict[str, Hydrator] = dict(hydrators or {})

    def register(self, action_type: str) -> Callable[[Hydrator], Hydrator]:
        def decorator(hydrator: Hydrator) -> Hydrator:
            self._hydrators[action_type] = hydrator
            return hydrator
        return decorator

    def get(self, action_type: str) -> Optional[Hydrator]:
        return self._hydrators.get(action_type)

    def copy(self) -> "HydratorRegistry":
        """Independent copy, for extending a shipped registry."""
        return HydratorRegistry(self._hydrators)

    def __contains__(self, action_type: str) -> bool:
        return action_type in self._hydrators

    def __iter__(self):
        return iter(self._hydrators)


@dataclass
class HydrationContext:
    """State shared by every variant during one hydration."""
    store: DataStore
    access: AccessPredicate
    registry: HydratorRegistry
    requestor: Optional[dict]
    comment_limit: int = 5

    async def allowed(self, resource: dict) -> bool:
        """Ask the access predicate on behalf of the requestor."""
        return await check_access(self.access, self.store, self.requestor, resource)

    async def hydrate(self, action_type: str, item: Optional[dict], owner: dict) -> None:
        """Run the variant registered for `action_type`, if any."""
        hydrator = self.registry.get(action_type)
        if hydrator is None or item is None:
            return
        await hydrator(self, item, owner)

    async def latest_comments(self, item: dict) -> None:
        """Attach the newest comments, oldest first, with their authors."""
        await self.store.fill(
            item, "comments", "parent_id",
            sort={"created": -1},
            limit=self.comment_limit,
            reverse=True,
            inflate={"author": MEMBER},
        )


def parent_hydrator(parent_types: Iterable[str]) -> Hydrator:
    """
    Build a variant for actions attached to a polymorphic parent
    (a comment on a post or a tick, a note on a dataset or a view).

    The action's `parent_type` names the parent's type tag. The parent is
    joined as the event's `target` and hydrated with its own variant, with
    the event as the owner, so a denied parent vetoes the whole event.
    """
    parents = frozenset(parent_types)

    async def hydrate_with_parent(ctx: HydrationContext, item: dict, owner: dict) -> None:
        parent_type = item.get("parent_type")
        joins = [ctx.store.inflate(item, {"author": MEMBER})]
        if parent_type:
            joins.append(ctx.store.inflate(owner, {"target": Profile(collection_for(parent_type))}))
        await asyncio.gather(*joins)

        if parent_type in parents:
            await ctx.hydrate(parent_type, owner.get("target"), owner)

    return hydrate_with_parent


class HydrationEngine:
    """
    Entry point for hydrating events.

    Example:
        engine = HydrationEngine(store)
        view = await engine.hydrate(event, requestor_id="alice")
        if not is_rejected(view):
            send(view)
    """

    def __init__(
        self,
        store: DataStore,
        access: AccessPredicate = has_access,
        registry: Optional[HydratorRegistry] = None,
        comment_limit: int = 5,
    ):
        if registry is None:
            from fanout.hydrators import DEFAULT_HYDRATORS
            registry = DEFAULT_HYDRATORS
        self.store = store
        self.access = access
        self.registry = registry
        self.comment_limit = comment_limit

    async def hydrate(self, event: dict, requestor_id: Optional[str] = None) -> dict:
        """
        Build the hydrated view of an event.

        The event itself is not modified. The returned copy carries the
        joined `action` (and `target` for wrapping variants) and is marked
        rejected when authorization vetoed it.

        Args:
            event: Stored event record
            requestor_id: Member the view is built for; None for anonymous
        """
        view = copy.deepcopy(event)
        action_type = view["action_type"]
        if action_type in RELATIONSHIP_ACTIONS:
            return view

        await self.store.inflate(view, {"action": Profile(collection_for(action_type))})

        ctx = HydrationContext(
            store=self.store,
            access=self.access,
            registry=self.registry,
            requestor={"id": requestor_id} if requestor_id else None,
            comment_limit=self.comment_limit,
        )
        await ctx.hydrate(action_type, view.get("action"), view)

        if is_rejected(view):
            logger.info(f"Event {view.get('id')} ({action_type}) rejected for requestor {requestor_id}")
        return view
