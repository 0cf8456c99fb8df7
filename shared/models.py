"""
Domain models for the fan-out engine.

Records live in the store as plain dicts; these models validate what comes in
and fill in defaults before a record is written. `model_dump()` produces the
stored shape.

Design decisions:
- Using Pydantic for validation and serialization
- Enum fields are stored as their string values
- Event and member records allow extra fields, since action payloads differ
  per action type
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional, Union
from pydantic import BaseModel, Field, ConfigDict


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# =============================================================================
# Enums
# =============================================================================

class SubscriptionStyle(str, Enum):
    """
    Kind of relationship a subscription expresses.

    A subscription starts as REQUEST or is created directly as WATCH/FOLLOW.
    Accepting a request turns it into FOLLOW. ACCEPT is only used as an
    action type on the event announcing the acceptance.
    """
    REQUEST = "request"
    WATCH = "watch"
    FOLLOW = "follow"
    ACCEPT = "accept"


class ResolveMethod(str, Enum):
    """Strategies for picking the subscriptions an event fans out to."""
    DEMAND_SUBSCRIPTION = "DEMAND_SUBSCRIPTION"
    DEMAND_WATCH_SUBSCRIPTION = "DEMAND_WATCH_SUBSCRIPTION"
    DEMAND_WATCH_SUBSCRIPTION_FROM_AUTHOR = "DEMAND_WATCH_SUBSCRIPTION_FROM_AUTHOR"
    WITH_SUBSCRIPTION = "WITH_SUBSCRIPTION"


# =============================================================================
# Members
# =============================================================================

class ChannelPreferences(BaseModel):
    """
    Delivery settings for one publish channel.

    Older member records store the flag as the string "true", so both forms
    are accepted.
    """
    email: Union[bool, str] = Field(default=False, description="Receive via email")

    @property
    def email_enabled(self) -> bool:
        return self.email is True or self.email == "true"


class MemberConfig(BaseModel):
    """Per-member settings. `notifications` is keyed by publish channel."""
    notifications: dict[str, ChannelPreferences] = Field(default_factory=dict)

    def wants_email(self, channel: str) -> bool:
        pref = self.notifications.get(channel)
        return bool(pref and pref.email_enabled)


class Member(BaseModel):
    """
    A member of the platform: a subscriber, an actor, or a notification
    recipient.
    """
    id: str = Field(..., description="Unique member identifier")
    username: str
    display_name: str
    primary_email: str = Field(default="", description="Empty when unverified")
    gravatar: Optional[str] = None
    avatar: Optional[str] = None
    config: MemberConfig = Field(default_factory=MemberConfig)
    created: datetime = Field(default_factory=utcnow)

    model_config = ConfigDict(extra="allow")


# =============================================================================
# Subscriptions, events and notifications
# =============================================================================

class SubscriptionMeta(BaseModel):
    """What is subscribed to (`type`) and how (`style`)."""
    type: str = Field(..., min_length=1, description="Entity kind of the subscribee")
    style: SubscriptionStyle

    model_config = ConfigDict(use_enum_values=True)


class Subscription(BaseModel):
    """
    A subscriber's interest in a subscribee.

    (subscriber_id, subscribee_id) is unique across the store.
    """
    subscriber_id: str
    subscribee_id: str
    meta: SubscriptionMeta
    mute: bool = False
    created: datetime = Field(default_factory=utcnow)


class Event(BaseModel):
    """
    Durable record of an action.

    `action_type` selects how the event is hydrated for clients. `data`
    holds the denormalized `action`/`target` snapshot taken at publish time.
    """
    actor_id: str
    action_type: str = Field(..., min_length=1)
    action_id: Optional[str] = None
    target_id: Optional[str] = None
    target_author_id: Optional[str] = None
    date: datetime = Field(default_factory=utcnow)
    public: bool = True
    data: dict[str, Any] = Field(default_factory=dict)

    model_config = ConfigDict(extra="allow")


class Notification(BaseModel):
    """One event delivered to one recipient through one subscription."""
    subscriber_id: str = Field(..., description="The recipient")
    subscription_id: str
    event_id: str
    read: bool = False
    created: datetime = Field(default_factory=utcnow)


# =============================================================================
# Publish parameters
# =============================================================================

class PublishOptions(BaseModel):
    """
    Options controlling recipient resolution.

    `requestor_id` is the member on whose behalf access checks run while
    hydrating the event. When unset, the event's actor is used.
    """
    method: Optional[ResolveMethod] = None
    subscription_id: Optional[str] = None
    requestor_id: Optional[str] = None

    model_config = ConfigDict(use_enum_values=True)


class NotifyRoles(BaseModel):
    """Which side of each resolved subscription receives a notification."""
    subscriber: bool = False
    subscribee: bool = False

    model_config = ConfigDict(extra="forbid")

    def enabled(self) -> list[str]:
        """Names of the roles to notify, in a stable order."""
        return [role for role in ("subscriber", "subscribee") if getattr(self, role)]
