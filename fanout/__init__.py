"""
Event fan-out and notification engine.

Subscriptions, events and notifications for a social platform:
- Events: the publish engine (publish, subscribe, accept, unsubscribe, hydrate)
- RecipientResolver: which subscriptions an event reaches
- HydrationEngine: client views of events, with authorization
- NotificationDispatcher: persisted notifications, live push and email
"""

from shared.errors import (
    ConflictError,
    DeliveryError,
    FanoutError,
    NotFoundError,
    UpstreamError,
    ValidationError,
)
from fanout.events import Topics, client_view
from fanout.hydration import HydrationEngine, HydratorRegistry, is_rejected, reject
from fanout.hydrators import DEFAULT_HYDRATORS
from fanout.hydrators_datasets import DATASET_HYDRATORS
from fanout.resolver import RecipientResolver
from fanout.dispatcher import NotificationDispatcher
from fanout.engine import Events, PublishResult

__all__ = [
    "Events",
    "PublishResult",
    "RecipientResolver",
    "HydrationEngine",
    "HydratorRegistry",
    "NotificationDispatcher",
    "DEFAULT_HYDRATORS",
    "DATASET_HYDRATORS",
    "Topics",
    "client_view",
    "is_rejected",
    "reject",
    "FanoutError",
    "ValidationError",
    "NotFoundError",
    "ConflictError",
    "UpstreamError",
    "DeliveryError",
]
