"""
In-process socket for live messages.

SocketBus accepts the single-line messages LiveTransport writes
(`<channel> <topic> <json>`), decodes them and hands them to whoever listens
on that channel. In production the socket is a message broker and listeners
are connected clients. Here it is a plain in-memory pub/sub.

Design decisions:
- Synchronous delivery, in registration order
- Channel-based subscriptions, with a wildcard for all channels
- Every message is kept in a log for debugging and test assertions
- A failing listener is logged and does not stop the others
"""

import json
import logging
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Optional

logger = logging.getLogger("socket_bus")


@dataclass
class SocketMessage:
    """
    One decoded live message.

    Attributes:
        channel: Broadcast channel or private member channel
        topic: Message topic, e.g. "event.new" or "follow.removed"
        payload: Decoded JSON payload
        received_at: When the bus received the message
    """
    channel: str
    topic: str
    payload: Any
    received_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @classmethod
    def parse(cls, line: str) -> "SocketMessage":
        """Decode a `<channel> <topic> <json>` line."""
        channel, topic, body = line.split(" ", 2)
        return cls(channel=channel, topic=topic, payload=json.loads(body))

    def __str__(self) -> str:
        return f"SocketMessage({self.channel} {self.topic})"


# Type alias for listener functions
MessageHandler = Callable[[SocketMessage], None]


class SocketBus:
    """
    In-memory socket implementing channel pub/sub.

    Example usage:
        bus = SocketBus()
        bus.subscribe("mem-alice", lambda m: print(m.topic, m.payload))
        transport = LiveTransport(bus)
        transport.send("mem-alice", "event.new", {...})
    """

    def __init__(self):
        """Initialize the bus with empty listener lists."""
        # Map of channel -> list of handlers
        self._subscribers: dict[str, list[MessageHandler]] = defaultdict(list)

        # Track all messages for debugging/assertions
        self._message_log: list[SocketMessage] = []

    def subscribe(self, channel: str, handler: MessageHandler) -> None:
        """Listen to messages on one channel."""
        self._subscribers[channel].append(handler)
        logger.debug(f"Subscribed handler to '{channel}'")

    def subscribe_all(self, handler: MessageHandler) -> None:
        """Listen to messages on every channel."""
        self._subscribers["*"].append(handler)

    def unsubscribe(self, channel: str, handler: MessageHandler) -> bool:
        """
        Stop listening on a channel.

        Returns:
            True if the handler was found and removed, False otherwise
        """
        try:
            self._subscribers[channel].remove(handler)
            return True
        except ValueError:
            return False

    def send(self, line: str) -> int:
        """
        Receive a raw line from a transport and deliver it.

        Returns:
            Number of handlers that received the message
        """
        message = SocketMessage.parse(line)
        self._message_log.append(message)
        logger.debug(f"Received: {message}")

        handlers = self._subscribers.get(message.channel, []) + self._subscribers.get("*", [])
        for handler in handlers:
            try:
                handler(message)
            except Exception as e:
                logger.error(f"Handler raised exception for {message}: {e}")
        return len(handlers)

    def messages(self, channel: Optional[str] = None, topic: Optional[str] = None) -> list[SocketMessage]:
        """Logged messages, optionally filtered by channel and topic."""
        return [
            m for m in self._message_log
            if (channel is None or m.channel == channel)
            and (topic is None or m.topic == topic)
        ]

    def get_message_log(self) -> list[SocketMessage]:
        return self._message_log.copy()

    def clear_message_log(self) -> None:
        self._message_log.clear()
