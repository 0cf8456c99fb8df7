"""
Shared infrastructure for the fan-out engine.

This package contains the collaborators the engine consumes:
- Domain models (Member, Subscription, Event, Notification)
- Document store with join/fill helpers
- Access predicate and join profiles
- Live transport, in-process socket and mock email notifier
- Email templates and settings
"""

from shared.models import (
    Member,
    MemberConfig,
    ChannelPreferences,
    Subscription,
    SubscriptionMeta,
    SubscriptionStyle,
    Event,
    Notification,
    PublishOptions,
    NotifyRoles,
    ResolveMethod,
)
from shared.data_store import DataStore
from shared.channels import EmailNotifier, LiveTransport, NotificationResult
from shared.socket_bus import SocketBus, SocketMessage

__all__ = [
    "Member",
    "MemberConfig",
    "ChannelPreferences",
    "Subscription",
    "SubscriptionMeta",
    "SubscriptionStyle",
    "Event",
    "Notification",
    "PublishOptions",
    "NotifyRoles",
    "ResolveMethod",
    "DataStore",
    "EmailNotifier",
    "LiveTransport",
    "NotificationResult",
    "SocketBus",
    "SocketMessage",
]
