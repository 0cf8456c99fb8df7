"""
Variant hydrators for the dataset domain.

Same engine, different vocabulary: users publish datasets, build views on top
of them, and leave notes and comments on either. Datasets and views can be
private, so both check access before expanding.
"""

import asyncio

from shared.profiles import DATASET, MEMBER
from fanout.hydration import HydrationContext, HydratorRegistry, parent_hydrator, reject

DATASET_HYDRATORS = HydratorRegistry()


@DATASET_HYDRATORS.register("dataset")
async def hydrate_dataset(ctx: HydrationContext, item: dict, owner: dict) -> None:
    if not await ctx.allowed(item):
        reject(owner)
        return
    await asyncio.gather(
        ctx.store.inflate(item, {"author": MEMBER}),
        ctx.latest_comments(item),
        ctx.store.fill(item, "notes", "parent_id", sort={"created": 1}),
    )


@DATASET_HYDRATORS.register("view")
async def hydrate_view(ctx: HydrationContext, item: dict, owner: dict) -> None:
    if not await ctx.allowed(item):
        reject(owner)
        return
    await asyncio.gather(
        ctx.store.inflate(item, {"author": MEMBER, "dataset": DATASET}),
        ctx.latest_comments(item),
        ctx.store.fill(item, "notes", "parent_id", sort={"created": 1}),
    )


DATASET_HYDRATORS.register("note")(parent_hydrator({"dataset", "view"}))
DATASET_HYDRATORS.register("comment")(parent_hydrator({"dataset", "view"}))
