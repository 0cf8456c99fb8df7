"""
Publish engine: the single choke point for fan-out.

Every subscription change ends in `publish`, and so does every piece of
content an application wants announced. One publish call:
1. Pushes the raw data live: broadcast on `channel`, or only to the author
   when the data is private
2. Creates the event record (or amends an existing one)
3. Resolves the recipient subscriptions and hydrates the event, concurrently
4. Stops if hydration rejected the event
5. Pushes `event.new` to the actor, and to every recipient if the event is
   public
6. Creates and delivers notifications

Design decisions:
- All collaborators are injected; there is no module-level engine
- Independent reads run concurrently with asyncio.gather: the first failure
  propagates and later stages do not run
- Persisted records are never rolled back when a later stage fails
"""

import asyncio
import copy
import logging
from dataclasses import dataclass, field
from typing import Any, Optional, Union

from pydantic import ValidationError as PydanticValidationError

from shared.access import AccessPredicate, has_access
from shared.channels import EmailNotifier, LiveTransport, Socket
from shared.data_store import DataStore
from shared.errors import ConflictError, NotFoundError, ValidationError
from shared.models import (
    Event,
    NotifyRoles,
    PublishOptions,
    ResolveMethod,
    Subscription,
    SubscriptionMeta,
    SubscriptionStyle,
)
from shared.profiles import MEMBER, profile_for
from shared.settings import FanoutSettings, get_settings
from fanout.dispatcher import NotificationDispatcher
from fanout.events import Topics, author_of, client_view, removed_payload, subscription_event
from fanout.hydration import HydrationEngine, HydratorRegistry, is_rejected
from fanout.resolver import RecipientResolver

logger = logging.getLogger("fanout.engine")

Party = Union[dict, str]


def _party_id(party: Party) -> str:
    """Accept a record or a bare id."""
    if isinstance(party, dict):
        return party["id"]
    return party


def _validated(model, value):
    """Validate input with a pydantic model, as an engine ValidationError."""
    if isinstance(value, model):
        return value
    try:
        return model.model_validate(value or {})
    except PydanticValidationError as e:
        raise ValidationError(str(e)) from e


@dataclass
class PublishResult:
    """
    What a publish call did.

    `event` is None when only raw data was published. `rejected` means the
    event was stored but authorization stopped its delivery.
    """
    event: Optional[dict] = None
    recipients: list[dict] = field(default_factory=list)
    notifications: list[dict] = field(default_factory=list)
    rejected: bool = False

    @property
    def delivered(self) -> bool:
        return self.event is not None and not self.rejected


class Events:
    """
    The fan-out engine.

    Example:
        events = Events(store, sock=SocketBus(), emailer=EmailNotifier())
        await events.subscribe(alice, bob, {"type": "member", "style": "follow"})
        await events.publish("post", "post.new", post, event={...},
                             notify={"subscriber": True})
    """

    def __init__(
        self,
        store: DataStore,
        sock: Optional[Socket] = None,
        emailer: Optional[EmailNotifier] = None,
        access: AccessPredicate = has_access,
        hydrators: Optional[HydratorRegistry] = None,
        settings: Optional[FanoutSettings] = None,
    ):
        """
        Initialize the engine.

        Args:
            store: Document store holding members, content and engine records
            sock: Socket for live messages (no live push when None)
            emailer: Email side channel (no email when None)
            access: Access predicate used for hydration and watcher checks
            hydrators: Variant registry (defaults to climbing content)
            settings: Engine settings (defaults to the environment's)
        """
        self.settings = settings or get_settings()
        self.store = store
        self.transport = LiveTransport(sock) if sock is not None else None
        self.emailer = emailer
        self.resolver = RecipientResolver(store, access)
        self.hydration = HydrationEngine(
            store, access, hydrators, comment_limit=self.settings.comment_limit
        )
        self.dispatcher = NotificationDispatcher(store, self.transport, emailer, self.settings)

    def send(self, channel: str, topic: str, data: Any) -> None:
        """Push data over the live transport, if there is one."""
        if self.transport:
            self.transport.send(channel, topic, data)

    # =========================================================================
    # Subscriptions
    # =========================================================================

    async def subscribe(self, subscriber: Party, subscribee: Party, meta: Union[dict, SubscriptionMeta]) -> dict:
        """
        Subscribe a member to an entity.

        Watching publishes the new subscription only. Following and follow
        requests also create an event that notifies the subscribee.
        Subscribing twice is a no-op that returns the existing subscription.
        """
        meta = _validated(SubscriptionMeta, meta)
        pair = {"subscriber_id": _party_id(subscriber), "subscribee_id": _party_id(subscribee)}
        inflate = {"subscriber": MEMBER, "subscribee": profile_for(meta.type)}

        try:
            subscription = await self.store.create(
                "subscriptions",
                Subscription(meta=meta, **pair).model_dump(),
                inflate=inflate,
            )
        except ConflictError:
            logger.warning(f"Already subscribed: {pair['subscriber_id']} -> {pair['subscribee_id']}")
            return await self.store.read("subscriptions", pair, inflate=inflate)

        style = meta.style
        logger.info(f"Subscribed {pair['subscriber_id']} -> {pair['subscribee_id']} ({style})")

        if style == SubscriptionStyle.WATCH:
            await self.publish(style, Topics.new(style), subscription)
        else:
            await self.publish(
                style, Topics.new(style), subscription,
                event=subscription_event(subscription, "subscriber", "subscribee", style),
                options=self._with_subscription(subscription),
                notify={"subscribee": True},
            )
        return subscription

    async def accept(self, subscription: dict) -> dict:
        """
        Accept a follow request.

        Flips the subscription to `follow`, then announces the acceptance to
        the requester and the new follow to the subscribee.

        Raises:
            ValidationError: If the subscription is not a pending request
            NotFoundError: If the stored subscription is gone or was already
                accepted
        """
        subscription = copy.deepcopy(subscription)
        meta = subscription.get("meta") or {}
        if meta.get("style") != SubscriptionStyle.REQUEST:
            raise ValidationError(f"Subscription {subscription.get('id')} is not a pending request")

        _, updated = await asyncio.gather(
            self.store.inflate(subscription, {"subscriber": MEMBER, "subscribee": profile_for(meta["type"])}),
            self.store.update(
                "subscriptions",
                {"id": subscription["id"], "meta.style": SubscriptionStyle.REQUEST.value},
                {"$set": {"meta.style": SubscriptionStyle.FOLLOW.value}},
            ),
        )
        if not updated:
            raise NotFoundError(f"No pending request {subscription['id']}")

        subscription["meta"]["style"] = SubscriptionStyle.FOLLOW.value
        logger.info(f"Accepted {subscription['subscriber_id']} -> {subscription['subscribee_id']}")

        options = self._with_subscription(subscription)
        accept = SubscriptionStyle.ACCEPT.value
        follow = SubscriptionStyle.FOLLOW.value
        await asyncio.gather(
            self.publish(
                accept, Topics.new(accept), subscription,
                event=subscription_event(subscription, "subscribee", "subscriber", accept),
                options=options,
                notify={"subscriber": True},
            ),
            self.publish(
                follow, Topics.new(follow), subscription,
                event=subscription_event(subscription, "subscriber", "subscribee", follow),
                options=options,
                notify={"subscribee": True},
            ),
        )
        return subscription

    async def unsubscribe(self, subscriber: Party, subscribee: Party) -> Optional[dict]:
        """
        Remove a subscription and every notification sent through it.

        Returns:
            The removed subscription, or None if there was nothing to remove
        """
        pair = {"subscriber_id": _party_id(subscriber), "subscribee_id": _party_id(subscribee)}
        subscription = await self.store.read("subscriptions", pair)
        if subscription is None:
            logger.debug(f"Nothing to unsubscribe: {pair['subscriber_id']} -> {pair['subscribee_id']}")
            return None

        removed, notes = await asyncio.gather(
            self.store.remove("subscriptions", {"id": subscription["id"]}),
            self.store.list("notifications", {"subscription_id": subscription["id"]}),
        )
        if not removed:
            return None

        style = subscription["meta"]["style"]
        payload = removed_payload(subscription["id"])
        await self.publish(
            self.settings.member_channel(subscription["subscriber_id"]), Topics.removed(style), payload
        )
        if style == SubscriptionStyle.FOLLOW:
            await self.publish(
                self.settings.member_channel(subscription["subscribee_id"]), Topics.removed(style), payload
            )
        for note in notes:
            await self.publish(
                self.settings.member_channel(note["subscriber_id"]),
                Topics.NOTIFICATION_REMOVED,
                removed_payload(note["id"]),
            )

        await self.store.remove("notifications", {"subscription_id": subscription["id"]})
        logger.info(
            f"Unsubscribed {pair['subscriber_id']} -> {pair['subscribee_id']}, "
            f"removed {len(notes)} notification(s)"
        )
        return subscription

    def _with_subscription(self, subscription: dict) -> dict:
        return {
            "method": ResolveMethod.WITH_SUBSCRIPTION.value,
            "subscription_id": subscription["id"],
        }

    # =========================================================================
    # Publishing
    # =========================================================================

    async def publish(
        self,
        channel: str,
        topic: str,
        data: Any,
        event: Optional[dict] = None,
        options: Optional[Union[dict, PublishOptions]] = None,
        notify: Optional[Union[dict, NotifyRoles]] = None,
    ) -> PublishResult:
        """
        Publish data over a channel with a topic.
        Optionally create an event.
        Optionally create notifications.

        Args:
            channel: Broadcast channel; also selects recipients' email setting
            topic: Topic of the raw data message
            data: The raw data (the post, the subscription, ...)
            event: Event to create, or `{"id": ..., "$set": {...}}` to amend one
            options: Resolver options (method, subscription_id, requestor_id)
            notify: Roles to notify, e.g. {"subscriber": True}

        Raises:
            ValidationError: If channel, topic or data is missing, or the
                event or options are malformed; nothing has been published
            NotFoundError: If an amended event does not exist
            UpstreamError: If a collaborator failed; later stages do not run
        """
        if not channel or not topic or data is None:
            raise ValidationError("Invalid data")

        data = copy.deepcopy(data)
        event = copy.deepcopy(event)
        options = _validated(PublishOptions, options)
        if options.method is None:
            options = options.model_copy(
                update={"method": ResolveMethod(self.settings.default_method).value}
            )
        notify = _validated(NotifyRoles, notify)
        new_event = self._new_event(event, data) if event is not None else None

        if self.transport:
            self._publish_raw(channel, topic, data)

        if event is None:
            return PublishResult()

        record = await self._save_event(event, new_event)

        subscriptions, view = await asyncio.gather(
            self.resolver.resolve(record, options, notify),
            self.hydration.hydrate(record, options.requestor_id or record["actor_id"]),
        )
        if is_rejected(view):
            logger.info(f"Event {record['id']} rejected; not delivered")
            return PublishResult(event=record, rejected=True)

        view = client_view(view)
        self.send(self.settings.member_channel(record["actor_id"]), Topics.EVENT_NEW, view)
        if record.get("public", True) is not False:
            for subscription in subscriptions:
                self.send(
                    self.settings.member_channel(subscription["subscriber"]["id"]),
                    Topics.EVENT_NEW,
                    view,
                )

        body = data.get("body") if isinstance(data, dict) else None
        notifications = await self.dispatcher.dispatch(channel, record, subscriptions, notify, body)
        return PublishResult(event=record, recipients=subscriptions, notifications=notifications)

    def _publish_raw(self, channel: str, topic: str, data: Any) -> None:
        """Broadcast public data; send private data to its author only."""
        if not isinstance(data, dict) or data.get("public") is not False:
            self.transport.send(channel, topic, client_view(data))
            return
        author_id = author_of(data)
        if author_id is None:
            raise ValidationError("Private data has no author")
        self.transport.send(self.settings.member_channel(author_id), topic, client_view(data))

    def _new_event(self, event: dict, data: Any) -> Optional[dict]:
        """Validated record for an event to create; None when amending."""
        if event.get("id"):
            return None
        if isinstance(data, dict):
            date = data.get("date") or data.get("created")
            if date is not None:
                event["date"] = date
        return _validated(Event, event).model_dump()

    async def _save_event(self, event: dict, new_event: Optional[dict]) -> dict:
        """Create the event, or amend and re-read an existing one."""
        if new_event is not None:
            record = await self.store.create("events", new_event)
            logger.debug(f"Created event {record['id']} ({record['action_type']})")
            return record

        patch = event.get("$set")
        if patch:
            await self.store.update("events", {"id": event["id"]}, {"$set": patch})
        record = await self.store.read("events", {"id": event["id"]})
        if record is None:
            raise NotFoundError(f"Event {event['id']} not found")
        return record

    # =========================================================================
    # Reading
    # =========================================================================

    async def hydrate(self, event: Union[dict, str], requestor_id: Optional[str] = None) -> Optional[dict]:
        """
        Hydrated client view of an event for a requestor (None for anonymous).

        Returns:
            The view, or None when the requestor may not see the event

        Raises:
            NotFoundError: If an event id was given and does not exist
        """
        if isinstance(event, str):
            record = await self.store.read("events", {"id": event})
            if record is None:
                raise NotFoundError(f"Event {event} not found")
            event = record
        view = await self.hydration.hydrate(event, requestor_id)
        if is_rejected(view):
            return None
        return client_view(view)

    async def drain(self) -> None:
        """Wait for background email sends to finish."""
        await self.dispatcher.drain()
