"""
Variant hydrators for climbing content.

| action type | expands |
|---|---|
| post | author, medias, latest comments, hangtens |
| session | author, crag, ordered actions, their ordered ticks (each a tick) |
| tick | access check, then author, ascent, crag, medias, latest comments, hangtens |
| crag | author, hangtens |
| ascent | author, crag, hangtens |
| comment, hangten | author, then the parent post or tick as `target` |

A session is only worth showing if at least one of its ticks is visible. Ticks
are checked one by one, filtered once all checks are done, and if none is
left the whole event is rejected.
"""

import asyncio
import logging

from shared.profiles import ASCENT, CRAG, MEMBER
from fanout.hydration import (
    HydrationContext,
    HydratorRegistry,
    is_rejected,
    parent_hydrator,
    reject,
)

logger = logging.getLogger("fanout.hydration")

DEFAULT_HYDRATORS = HydratorRegistry()


@DEFAULT_HYDRATORS.register("post")
async def hydrate_post(ctx: HydrationContext, item: dict, owner: dict) -> None:
    await asyncio.gather(
        ctx.store.inflate(item, {"author": MEMBER}),
        ctx.store.fill(item, "medias", "parent_id", sort={"created": -1}),
        ctx.latest_comments(item),
        ctx.store.fill(item, "hangtens", "parent_id"),
    )


@DEFAULT_HYDRATORS.register("session")
async def hydrate_session(ctx: HydrationContext, item: dict, owner: dict) -> None:
    await asyncio.gather(
        ctx.store.inflate(item, {"author": MEMBER, "crag": CRAG}),
        ctx.store.fill(item, "actions", "session_id", sort={"index": 1}),
    )
    actions = item.get("actions", [])
    await ctx.store.fill(actions, "ticks", "action_id", sort={"index": 1})

    # Each tick is its own owner: a denied tick drops out, the session stays
    ticks = [tick for action in actions for tick in action.get("ticks", [])]
    await asyncio.gather(*(ctx.hydrate("tick", tick, tick) for tick in ticks))

    visible = 0
    for action in actions:
        action["ticks"] = [tick for tick in action.get("ticks", []) if not is_rejected(tick)]
        visible += len(action["ticks"])

    if visible == 0:
        logger.debug(f"Session {item.get('id')} has no visible ticks")
        reject(owner)


@DEFAULT_HYDRATORS.register("tick")
async def hydrate_tick(ctx: HydrationContext, item: dict, owner: dict) -> None:
    if not await ctx.allowed(item):
        reject(owner)
        return
    await asyncio.gather(
        ctx.store.inflate(item, {"author": MEMBER, "ascent": ASCENT, "crag": CRAG}),
        ctx.store.fill(item, "medias", "parent_id", sort={"created": -1}),
        ctx.latest_comments(item),
        ctx.store.fill(item, "hangtens", "parent_id"),
    )


@DEFAULT_HYDRATORS.register("crag")
async def hydrate_crag(ctx: HydrationContext, item: dict, owner: dict) -> None:
    if not await ctx.allowed(item):
        reject(owner)
        return
    await asyncio.gather(
        ctx.store.inflate(item, {"author": MEMBER}),
        ctx.store.fill(item, "hangtens", "parent_id"),
    )


@DEFAULT_HYDRATORS.register("ascent")
async def hydrate_ascent(ctx: HydrationContext, item: dict, owner: dict) -> None:
    if not await ctx.allowed(item):
        reject(owner)
        return
    await asyncio.gather(
        ctx.store.inflate(item, {"author": MEMBER, "crag": CRAG}),
        ctx.store.fill(item, "hangtens", "parent_id"),
    )


# Comments and hangtens hang off a post or a tick
DEFAULT_HYDRATORS.register("comment")(parent_hydrator({"post", "tick"}))
DEFAULT_HYDRATORS.register("hangten")(parent_hydrator({"post", "tick"}))
