"""
Recipient resolution: which subscriptions an event fans out to.

| method | subscriptions |
|---|---|
| DEMAND_SUBSCRIPTION | followers of the actor, plus watchers of the target |
| DEMAND_WATCH_SUBSCRIPTION | watchers of the target who may still see it |
| DEMAND_WATCH_SUBSCRIPTION_FROM_AUTHOR | the target author's own watch on the target |
| WITH_SUBSCRIPTION | exactly the subscription named in the options |

Muted subscriptions are never returned. A strategy that depends on a target
resolves to nothing when the event has none.

DEMAND_WATCH_SUBSCRIPTION is the one strategy that authorizes the recipients
themselves: each candidate's subscribee is reloaded fresh from its own
collection and checked against the subscriber, so a watcher who lost access
since subscribing is dropped.
"""

import asyncio
import logging
from typing import Optional

from shared.access import AccessPredicate, check_access, has_access
from shared.data_store import DataStore, Query
from shared.errors import ValidationError
from shared.models import NotifyRoles, PublishOptions, ResolveMethod
from shared.profiles import RECIPIENT, Profile, collection_for
from fanout.hydration import is_rejected, reject

logger = logging.getLogger("fanout.resolver")


def _watchers(subscribee_id: str) -> Query:
    return {"subscribee_id": subscribee_id, "meta.style": "watch", "mute": False}


class RecipientResolver:
    """Turns an event and a strategy into a list of enriched subscriptions."""

    def __init__(self, store: DataStore, access: AccessPredicate = has_access):
        self.store = store
        self.access = access

    def build_query(self, event: dict, options: PublishOptions) -> Optional[Query]:
        """
        Subscription query for a strategy, or None when there is nothing to
        look up.
        """
        method = options.method or ResolveMethod.DEMAND_SUBSCRIPTION
        target_id = event.get("target_id")

        if method == ResolveMethod.DEMAND_SUBSCRIPTION:
            followers = {"subscribee_id": event["actor_id"], "meta.style": "follow", "mute": False}
            if target_id:
                return {"$or": [followers, _watchers(target_id)]}
            return followers

        if method == ResolveMethod.DEMAND_WATCH_SUBSCRIPTION:
            return _watchers(target_id) if target_id else None

        if method == ResolveMethod.DEMAND_WATCH_SUBSCRIPTION_FROM_AUTHOR:
            author_id = event.get("target_author_id")
            if target_id and author_id:
                return dict(_watchers(target_id), subscriber_id=author_id)
            return None

        if method == ResolveMethod.WITH_SUBSCRIPTION:
            if options.subscription_id:
                return {"id": options.subscription_id}
            return None

        raise ValidationError(f"Unknown resolve method: {method}")

    async def resolve(
        self,
        event: dict,
        options: PublishOptions,
        notify: Optional[NotifyRoles] = None,
    ) -> list[dict]:
        """
        List the subscriptions an event should reach.

        Subscribers are joined with what delivery needs (email address and
        notification config). Subscribees are joined the same way only when
        they are going to be notified.
        """
        query = self.build_query(event, options)
        if query is None:
            return []

        inflate = {"subscriber": RECIPIENT}
        if notify is not None and notify.subscribee:
            inflate["subscribee"] = RECIPIENT
        subscriptions = await self.store.list("subscriptions", query, inflate=inflate)

        if subscriptions and options.method == ResolveMethod.DEMAND_WATCH_SUBSCRIPTION:
            subscriptions = await self._authorize(subscriptions)

        logger.debug(f"Resolved {len(subscriptions)} subscriptions for event {event.get('id')}")
        return subscriptions

    async def _authorize(self, subscriptions: list[dict]) -> list[dict]:
        """Drop watchers that may no longer see what they watch."""
        await asyncio.gather(*(self._check(sub) for sub in subscriptions))

        allowed = [sub for sub in subscriptions if not is_rejected(sub)]
        dropped = len(subscriptions) - len(allowed)
        if dropped:
            logger.info(f"Dropped {dropped} watcher(s) without access")
        return allowed

    async def _check(self, subscription: dict) -> None:
        profile = Profile(collection_for(subscription["meta"]["type"]))
        await self.store.inflate(subscription, {"subscribee": profile})
        if not await check_access(
            self.access, self.store, subscription.get("subscriber"), subscription.get("subscribee")
        ):
            reject(subscription)
