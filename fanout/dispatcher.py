"""
Notification dispatcher.

Turns a resolved recipient set into persisted notifications and delivers them:
1. Create a Notification record for each (subscription, notify role) pair
2. Push it live to the recipient's private channel
3. Email it, if the recipient wants email for this channel

Design decisions:
- A member is never notified about their own action through their own
  subscription
- Units across recipients and roles run concurrently; dispatch returns once
  all have finished
- Email is fire-and-forget: it runs as a background task, its failure is
  logged and never reaches the publisher
- Notifications are not rolled back when delivery fails
"""

import asyncio
import logging
from typing import Optional

from shared.channels import EmailNotifier, LiveTransport
from shared.data_store import DataStore
from shared.errors import DeliveryError
from shared.models import MemberConfig, Notification, NotifyRoles
from shared.settings import FanoutSettings, get_settings
from fanout.events import Topics, client_view

logger = logging.getLogger("fanout.dispatcher")


class NotificationDispatcher:
    """
    Persists and delivers notifications for one published event.

    Example:
        dispatcher = NotificationDispatcher(store, transport, emailer)
        notes = await dispatcher.dispatch("post", event, subscriptions,
                                          NotifyRoles(subscriber=True))
        await dispatcher.drain()  # wait for background email
    """

    def __init__(
        self,
        store: DataStore,
        transport: Optional[LiveTransport] = None,
        emailer: Optional[EmailNotifier] = None,
        settings: Optional[FanoutSettings] = None,
    ):
        """
        Initialize the dispatcher.

        Args:
            store: Store the notifications are written to
            transport: Live transport (no live push when None)
            emailer: Email side channel (no email when None)
            settings: Engine settings (defaults to the environment's)
        """
        self.store = store
        self.transport = transport
        self.emailer = emailer
        self.settings = settings or get_settings()

        # Background email sends still in flight
        self._pending: set[asyncio.Task] = set()
        self.emails_scheduled = 0

    async def dispatch(
        self,
        channel: str,
        event: dict,
        subscriptions: list[dict],
        notify: NotifyRoles,
        body: Optional[str] = None,
    ) -> list[dict]:
        """
        Notify every enabled role of every subscription.

        Args:
            channel: The publish channel; selects the recipient's email setting
            event: The stored event being announced
            subscriptions: Resolved subscriptions with roles inflated
            notify: Which roles to notify
            body: Free text for the email (post body, comment text)

        Returns:
            The created notification records
        """
        roles = notify.enabled()
        if not subscriptions or not roles:
            return []

        results = await asyncio.gather(*(
            self._deliver(channel, event, subscription, role, body)
            for subscription in subscriptions
            for role in roles
        ))
        notifications = [note for note in results if note is not None]

        logger.info(
            f"Event {event['id']}: {len(notifications)} notification(s) "
            f"for {len(subscriptions)} subscription(s)"
        )
        return notifications

    async def _deliver(
        self,
        channel: str,
        event: dict,
        subscription: dict,
        role: str,
        body: Optional[str],
    ) -> Optional[dict]:
        recipient = subscription.get(role)
        if not recipient:
            logger.debug(f"Subscription {subscription['id']} has no {role} to notify")
            return None

        subscriber_id = subscription["subscriber"]["id"]
        if recipient["id"] == subscriber_id and subscriber_id == event["actor_id"]:
            return None

        note = await self.store.create("notifications", Notification(
            subscriber_id=recipient["id"],
            subscription_id=subscription["id"],
            event_id=event["id"],
        ).model_dump())
        message = dict(note, event=event)

        if self.transport:
            self.transport.send(
                self.settings.member_channel(recipient["id"]),
                Topics.NOTIFICATION_NEW,
                client_view(message),
            )

        if self._wants_email(channel, recipient):
            self._schedule_email(recipient, message, body)

        return note

    def _wants_email(self, channel: str, recipient: dict) -> bool:
        """Check the emailer, the recipient's settings, address and mode."""
        if not self.emailer or not self.settings.delivery_enabled:
            return False
        if not recipient.get("primary_email"):
            return False
        config = MemberConfig.model_validate(recipient.get("config") or {})
        return config.wants_email(channel)

    def _schedule_email(self, recipient: dict, message: dict, body: Optional[str]) -> None:
        task = asyncio.create_task(self._send_email(recipient, message, body))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        self.emails_scheduled += 1

    async def _send_email(self, recipient: dict, message: dict, body: Optional[str]) -> None:
        try:
            result = await self.emailer.notify(recipient, message, body)
        except DeliveryError as e:
            logger.error(f"Could not email notification {message['id']}: {e}")
            return
        except Exception as e:
            logger.error(f"Failed to email notification {message['id']} to {recipient['id']}: {e}")
            return
        if not result.success:
            logger.error(f"Failed to email notification {message['id']} to {recipient['id']}: {result.error}")

    @property
    def pending_emails(self) -> int:
        return len(self._pending)

    async def drain(self) -> None:
        """Wait for every background email send to finish."""
        while self._pending:
            await asyncio.gather(*list(self._pending))
