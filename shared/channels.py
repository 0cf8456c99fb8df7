"""
Delivery channels for the fan-out engine.

- LiveTransport: pushes messages to connected clients over a socket. Each
  message is a single line `<channel> <topic> <json>`.
- EmailNotifier: mock email side channel. Renders the notification template
  and records what would have been sent.

Design decisions:
- The transport is fire-and-forget; it never waits for acknowledgement
- The emailer tracks sent messages for test assertions
- Email failures can be simulated for testing error handling
"""

import json
import logging
import random
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional, Protocol

from shared.errors import DeliveryError, UpstreamError
from shared.templates import notification_context, render_notification

logger = logging.getLogger("notifications")
transport_logger = logging.getLogger("live_transport")


def _json_default(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    return str(value)


def encode_message(channel: str, topic: str, payload: Any) -> str:
    """Serialize one live message as `<channel> <topic> <json>`."""
    return " ".join([channel, topic, json.dumps(payload, default=_json_default)])


class Socket(Protocol):
    def send(self, message: str) -> Any: ...


class LiveTransport:
    """
    Sends live messages over a socket-like object.

    Any object with a `send(str)` method works: a ZeroMQ publisher, a
    websocket hub, or the in-process SocketBus.
    """

    def __init__(self, sock: Socket):
        self.sock = sock
        self.sent_count = 0

    def send(self, channel: str, topic: str, payload: Any) -> None:
        """
        Push a payload to everyone listening on `channel`.

        Raises:
            UpstreamError: If the socket rejects the message
        """
        try:
            self.sock.send(encode_message(channel, topic, payload))
        except Exception as e:
            raise UpstreamError(f"Live transport failed on {channel} {topic}: {e}") from e
        self.sent_count += 1
        transport_logger.debug(f"[LIVE] {channel} {topic}")


@dataclass
class NotificationResult:
    """
    Result of an email send attempt.

    Captures success/failure and metadata for debugging and testing.
    """
    success: bool
    recipient: str
    subject: str
    body: str
    notification_id: Optional[str] = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    error: Optional[str] = None

    def __str__(self) -> str:
        status = "✓" if self.success else "✗"
        return f"{status} EMAIL to {self.recipient}: {self.subject}"


class EmailNotifier:
    """
    Mock email channel.

    Logs email sends and tracks them for test assertions.
    Can simulate failures for testing error handling.
    """

    def __init__(self, fail_rate: float = 0.0, from_addr: str = "notifications@island.io"):
        """
        Initialize the email notifier.

        Args:
            fail_rate: Probability of send failure (0.0 to 1.0), for testing.
            from_addr: Sender address (for logging)
        """
        self.fail_rate = fail_rate
        self.from_addr = from_addr
        self.sent_messages: list[NotificationResult] = []

    async def notify(
        self,
        recipient: dict,
        notification: dict,
        body: Optional[str] = None,
    ) -> NotificationResult:
        """
        Email a notification to its recipient.

        Args:
            recipient: Member record with `primary_email`
            notification: Notification with its event attached under `event`
            body: Optional free text from the published data (post body,
                comment text)

        Returns:
            NotificationResult indicating success/failure

        Raises:
            DeliveryError: If the recipient has no email address
        """
        to = recipient.get("primary_email")
        if not to:
            raise DeliveryError(f"Member {recipient.get('id')} has no email address")

        context = notification_context(recipient, notification)
        subject, text = render_notification(body=body, **context)

        if random.random() < self.fail_rate:
            result = NotificationResult(
                success=False,
                recipient=to,
                subject=subject,
                body=text,
                notification_id=notification.get("id"),
                error="Simulated email delivery failure",
            )
            logger.error(f"[EMAIL FAILED] To: {to} | Subject: {subject} | Error: {result.error}")
        else:
            result = NotificationResult(
                success=True,
                recipient=to,
                subject=subject,
                body=text,
                notification_id=notification.get("id"),
            )
            logger.info(f"[EMAIL] From: {self.from_addr} | To: {to} | Subject: {subject}")
            logger.debug(f"[EMAIL BODY] {text}")

        self.sent_messages.append(result)
        return result

    def get_sent_count(self) -> int:
        """Get the number of messages sent (for testing)."""
        return len(self.sent_messages)

    def get_successful_sends(self) -> list[NotificationResult]:
        """Get all successful sends."""
        return [m for m in self.sent_messages if m.success]

    def clear_history(self):
        """Clear sent message history (useful between tests)."""
        self.sent_messages.clear()

    def find_message_to(self, recipient: str) -> Optional[NotificationResult]:
        """Find a message sent to a specific address."""
        for msg in self.sent_messages:
            if msg.recipient == recipient:
                return msg
        return None
