"""
In-memory document store for the fan-out engine.

This module provides the narrow store interface the engine consumes: CRUD over
named collections of dict records, plus the two relationship helpers:
- inflate: follow a `<field>_id` foreign key and copy the related record in
- fill: list the children pointing back at a parent and attach them

Design decisions:
- Records are plain dicts with a string `id`
- Queries are Mongo-style: equality on (dotted) paths, plus `$or`
- Updates support `$set` with dotted paths only
- Unique indexes raise ConflictError, so duplicate subscriptions are
  distinguishable from other failures
- Every read returns deep copies; callers may mutate what they get back

In a real deployment this is a database driver. The methods are coroutines so
that a networked store can be swapped in without touching the engine. Such an
adapter reports its own failures as UpstreamError, which the engine lets
propagate.
"""

from __future__ import annotations

import copy
from collections import defaultdict
from typing import Any, Iterable, Optional, Union
from uuid import uuid4

from shared.errors import ConflictError, ValidationError
from shared.profiles import Profile

Query = dict[str, Any]
Sort = dict[str, int]

_MISSING = object()


def _get_path(record: dict, path: str) -> Any:
    """Resolve a dotted path inside a record."""
    value: Any = record
    for part in path.split("."):
        if not isinstance(value, dict) or part not in value:
            return _MISSING
        value = value[part]
    return value


def _set_path(record: dict, path: str, value: Any) -> None:
    """Set a dotted path inside a record, creating intermediate dicts."""
    parts = path.split(".")
    target = record
    for part in parts[:-1]:
        target = target.setdefault(part, {})
    target[parts[-1]] = value


def matches(record: dict, query: Optional[Query]) -> bool:
    """Check whether a record satisfies a query."""
    if not query:
        return True
    for key, expected in query.items():
        if key == "$or":
            if not any(matches(record, clause) for clause in expected):
                return False
            continue
        value = _get_path(record, key)
        if value is _MISSING:
            value = None
        if value != expected:
            return False
    return True


def _sort_records(records: list[dict], sort: Optional[Sort]) -> list[dict]:
    """Sort records by one or more fields (1 ascending, -1 descending)."""
    if not sort:
        return records
    # Stable sorts applied from the least significant key
    for field, direction in reversed(list(sort.items())):
        def key(record, field=field):
            value = _get_path(record, field)
            missing = value is _MISSING or value is None
            return (missing, None if missing else value)
        records = sorted(records, key=key, reverse=direction < 0)
    return records


class DataStore:
    """
    Collection-oriented document store.

    Example:
        store = DataStore()
        sub = await store.create("subscriptions", {...})
        subs = await store.list("subscriptions", {"meta.style": "follow"})
    """

    DEFAULT_UNIQUE_INDEXES: dict[str, list[tuple[str, ...]]] = {
        "subscriptions": [("subscriber_id", "subscribee_id")],
    }

    def __init__(self, unique_indexes: Optional[dict[str, list[tuple[str, ...]]]] = None):
        """
        Initialize an empty store.

        Args:
            unique_indexes: Per-collection lists of field tuples that must be
                unique. Defaults to the (subscriber_id, subscribee_id) pair on
                subscriptions.
        """
        self._collections: dict[str, dict[str, dict]] = defaultdict(dict)
        self.unique_indexes = (
            self.DEFAULT_UNIQUE_INDEXES if unique_indexes is None else unique_indexes
        )

    # =========================================================================
    # Seeding (synchronous, for fixtures)
    # =========================================================================

    def seed(self, collection: str, records: Iterable[dict]) -> None:
        """Insert records directly, bypassing index checks."""
        for record in records:
            record = copy.deepcopy(record)
            record.setdefault("id", uuid4().hex)
            self._collections[collection][record["id"]] = record

    def count(self, collection: str, query: Optional[Query] = None) -> int:
        """Number of records in a collection matching a query."""
        return sum(1 for r in self._collections[collection].values() if matches(r, query))

    # =========================================================================
    # CRUD
    # =========================================================================

    def _check_unique(self, collection: str, record: dict) -> None:
        existing = self._collections[collection]
        if record["id"] in existing:
            raise ConflictError(collection, {"id": record["id"]})
        for fields in self.unique_indexes.get(collection, []):
            key = {f: _get_path(record, f) for f in fields}
            if any(matches(other, key) for other in existing.values()):
                raise ConflictError(collection, key)

    async def create(
        self,
        collection: str,
        record: dict,
        inflate: Optional[dict[str, Profile]] = None,
    ) -> dict:
        """
        Insert a record and return a copy of it.

        Raises:
            ConflictError: If a unique index would be violated
        """
        record = copy.deepcopy(record)
        record.setdefault("id", uuid4().hex)
        self._check_unique(collection, record)
        self._collections[collection][record["id"]] = record

        result = copy.deepcopy(record)
        if inflate:
            await self.inflate(result, inflate)
        return result

    async def read(
        self,
        collection: str,
        query: Query,
        inflate: Optional[dict[str, Profile]] = None,
    ) -> Optional[dict]:
        """Get the first record matching a query, or None."""
        for record in self._collections[collection].values():
            if matches(record, query):
                result = copy.deepcopy(record)
                if inflate:
                    await self.inflate(result, inflate)
                return result
        return None

    async def list(
        self,
        collection: str,
        query: Optional[Query] = None,
        sort: Optional[Sort] = None,
        limit: Optional[int] = None,
        inflate: Optional[dict[str, Profile]] = None,
    ) -> list[dict]:
        """List records matching a query, optionally sorted and limited."""
        records = [r for r in self._collections[collection].values() if matches(r, query)]
        records = _sort_records(records, sort)
        if limit is not None:
            records = records[:limit]
        results = copy.deepcopy(records)
        if inflate:
            await self.inflate(results, inflate)
        return results

    async def update(self, collection: str, query: Query, patch: dict) -> int:
        """
        Apply a `$set` patch to every matching record.

        Returns:
            Number of records updated
        """
        if set(patch) != {"$set"}:
            raise ValidationError(f"Unsupported update: {sorted(patch)}")
        updated = 0
        for record in self._collections[collection].values():
            if matches(record, query):
                for path, value in patch["$set"].items():
                    _set_path(record, path, copy.deepcopy(value))
                updated += 1
        return updated

    async def remove(self, collection: str, query: Query) -> int:
        """
        Delete every matching record.

        Returns:
            Number of records removed
        """
        records = self._collections[collection]
        doomed = [rid for rid, r in records.items() if matches(r, query)]
        for rid in doomed:
            del records[rid]
        return len(doomed)

    # =========================================================================
    # Relationship helpers
    # =========================================================================

    async def inflate(self, target: Union[dict, list[dict]], profiles: dict[str, Profile]) -> None:
        """
        Join related records into `target` in place.

        For each `field -> profile`, the value of `<field>_id` is looked up in
        `profile.collection` and the projected record is stored under `field`.
        A dangling key yields None. Records without the key are left alone.
        """
        targets = target if isinstance(target, list) else [target]
        for item in targets:
            if item is None:
                continue
            for field, profile in profiles.items():
                key = item.get(f"{field}_id")
                if key is None:
                    continue
                related = self._collections[profile.collection].get(key)
                item[field] = copy.deepcopy(profile.project(related)) if related else None

    async def fill(
        self,
        parents: Union[dict, list[dict]],
        collection: str,
        key_field: str,
        sort: Optional[Sort] = None,
        limit: Optional[int] = None,
        reverse: bool = False,
        inflate: Optional[dict[str, Profile]] = None,
    ) -> None:
        """
        Attach child records to each parent, under `parent[collection]`.

        Children are the records of `collection` whose `key_field` equals the
        parent's id. `reverse` flips the order after sorting and limiting,
        which is how "latest N, oldest first" lists are built.
        """
        parents = parents if isinstance(parents, list) else [parents]
        for parent in parents:
            if parent is None:
                continue
            children = await self.list(
                collection, {key_field: parent["id"]}, sort=sort, limit=limit, inflate=inflate
            )
            if reverse:
                children.reverse()
            parent[collection] = children
