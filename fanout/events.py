"""
Event helpers for the fan-out engine.

This module defines the topic names and action types the engine treats
specially. It also provides builders for the events that subscription changes
publish.

Design decisions:
- Topics are `<noun>.<verb>`, e.g. "event.new", "follow.removed"
- Relationship events carry a denormalized identity snapshot of both parties
  in `data`, so clients can render them without further lookups
- Client views never include transient (`_`-prefixed) or private fields
"""

import copy
import hashlib
from typing import Any, Optional

from shared.models import SubscriptionStyle


# =============================================================================
# Constants
# =============================================================================

class Topics:
    """Live message topics published by the engine itself."""
    EVENT_NEW = "event.new"
    NOTIFICATION_NEW = "notification.new"
    NOTIFICATION_REMOVED = "notification.removed"

    @staticmethod
    def new(name: str) -> str:
        return f"{name}.new"

    @staticmethod
    def removed(name: str) -> str:
        return f"{name}.removed"


# Action types that carry only the identity snapshot; nothing to hydrate
RELATIONSHIP_ACTIONS = frozenset(style.value for style in SubscriptionStyle)

# Never sent to clients
PRIVATE_FIELDS = frozenset({"config", "primary_email", "password", "salt"})

# Hashed when a member has neither gravatar nor email
FALLBACK_EMAIL = "foo@bar.baz"


# =============================================================================
# Snapshots
# =============================================================================

def gravatar_hash(email: Optional[str]) -> str:
    """Gravatar hash of an email address."""
    normalized = (email or FALLBACK_EMAIL).strip().lower()
    return hashlib.md5(normalized.encode("utf-8")).hexdigest()


def identity_snapshot(party: dict, style: Optional[str] = None) -> dict:
    """
    Denormalized identity of one side of a subscription.

    The acting side also records the relationship style and its avatar hash.
    """
    snapshot = {
        "id": party["id"],
        "display_name": party.get("display_name") or party.get("name"),
        "username": party.get("username"),
    }
    if style is not None:
        snapshot["gravatar"] = party.get("gravatar") or gravatar_hash(party.get("primary_email"))
        snapshot["type"] = style
    return snapshot


def subscription_event(subscription: dict, actor: str, target: str, action_type: str) -> dict:
    """
    Create the event announcing a subscription change.

    Args:
        subscription: Subscription with `subscriber` and `subscribee` inflated
        actor: Which side acted ("subscriber" or "subscribee")
        target: The other side
        action_type: "follow", "request" or "accept"
    """
    acting = subscription[actor]
    targeted = subscription[target]
    return {
        "actor_id": acting["id"],
        "target_id": targeted["id"],
        "action_id": subscription["id"],
        "action_type": action_type,
        "data": {
            "action": identity_snapshot(acting, style=action_type),
            "target": identity_snapshot(targeted),
        },
    }


def removed_payload(record_id: str) -> dict:
    """Payload of a `*.removed` message."""
    return {"id": record_id}


# =============================================================================
# Client views
# =============================================================================

def client_view(value: Any) -> Any:
    """
    Deep copy of `value` safe to hand to clients.

    Drops `_`-prefixed bookkeeping keys (such as rejection flags) and private
    member fields at every level.
    """
    if isinstance(value, dict):
        return {
            key: client_view(item) for key, item in value.items()
            if not key.startswith("_") and key not in PRIVATE_FIELDS
        }
    if isinstance(value, list):
        return [client_view(item) for item in value]
    return copy.deepcopy(value)


def author_of(data: dict) -> Optional[str]:
    """Member who owns a piece of published data."""
    for field in ("author", "actor"):
        nested = data.get(field)
        if isinstance(nested, dict) and nested.get("id"):
            return nested["id"]
    return data.get("author_id") or data.get("actor_id")
