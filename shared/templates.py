"""
Notification email templates.

This module provides one template per action type. Templates support variable
substitution using Python's string formatting.

Design decisions:
- Templates are stored as simple strings with {variable} placeholders
- Every template receives the same variables: recipient_name, actor_name,
  target_name and body
- Action types without a template fall back to a generic one
"""

from dataclasses import dataclass
from typing import Optional


@dataclass
class NotificationTemplate:
    """An email subject and body for one action type."""
    action_type: str
    email_subject: str
    email_body: str

    def render_email(self, **kwargs) -> tuple[str, str]:
        """
        Render the email template with provided variables.

        Returns:
            Tuple of (subject, body)
        """
        return (
            self.email_subject.format(**kwargs),
            self.email_body.format(**kwargs),
        )


# =============================================================================
# Template Definitions
# =============================================================================

_FOOTER = """
--
You are receiving this because of your notification settings.
"""

TEMPLATES: dict[str, NotificationTemplate] = {

    # -------------------------------------------------------------------------
    # Relationships
    # -------------------------------------------------------------------------

    "follow": NotificationTemplate(
        action_type="follow",
        email_subject="{actor_name} is now following you",
        email_body="Hi {recipient_name},\n\n{actor_name} started following you.\n" + _FOOTER,
    ),

    "request": NotificationTemplate(
        action_type="request",
        email_subject="{actor_name} wants to follow you",
        email_body="Hi {recipient_name},\n\n{actor_name} sent you a follow request.\n" + _FOOTER,
    ),

    "accept": NotificationTemplate(
        action_type="accept",
        email_subject="{actor_name} accepted your request",
        email_body="Hi {recipient_name},\n\n{actor_name} accepted your follow request.\n" + _FOOTER,
    ),

    # -------------------------------------------------------------------------
    # Content
    # -------------------------------------------------------------------------

    "post": NotificationTemplate(
        action_type="post",
        email_subject="{actor_name} posted something new",
        email_body="Hi {recipient_name},\n\n{actor_name} posted:\n\n{body}\n" + _FOOTER,
    ),

    "session": NotificationTemplate(
        action_type="session",
        email_subject="{actor_name} logged a session",
        email_body="Hi {recipient_name},\n\n{actor_name} logged a session at {target_name}.\n" + _FOOTER,
    ),

    "tick": NotificationTemplate(
        action_type="tick",
        email_subject="{actor_name} ticked {target_name}",
        email_body="Hi {recipient_name},\n\n{actor_name} ticked {target_name}.\n" + _FOOTER,
    ),

    "comment": NotificationTemplate(
        action_type="comment",
        email_subject="{actor_name} commented on {target_name}",
        email_body="Hi {recipient_name},\n\n{actor_name} wrote:\n\n{body}\n" + _FOOTER,
    ),

    "hangten": NotificationTemplate(
        action_type="hangten",
        email_subject="{actor_name} gave {target_name} a hangten",
        email_body="Hi {recipient_name},\n\n{actor_name} liked {target_name}.\n" + _FOOTER,
    ),

    # -------------------------------------------------------------------------
    # Datasets
    # -------------------------------------------------------------------------

    "dataset": NotificationTemplate(
        action_type="dataset",
        email_subject="{actor_name} published a dataset",
        email_body="Hi {recipient_name},\n\n{actor_name} published {target_name}.\n" + _FOOTER,
    ),

    "view": NotificationTemplate(
        action_type="view",
        email_subject="{actor_name} created a view of {target_name}",
        email_body="Hi {recipient_name},\n\n{actor_name} created a new view of {target_name}.\n" + _FOOTER,
    ),

    "note": NotificationTemplate(
        action_type="note",
        email_subject="{actor_name} left a note on {target_name}",
        email_body="Hi {recipient_name},\n\n{actor_name} wrote:\n\n{body}\n" + _FOOTER,
    ),
}

GENERIC_TEMPLATE = NotificationTemplate(
    action_type="*",
    email_subject="New activity from {actor_name}",
    email_body="Hi {recipient_name},\n\nThere is new activity from {actor_name}.\n" + _FOOTER,
)


# =============================================================================
# Template Access Functions
# =============================================================================

def get_template(action_type: str) -> NotificationTemplate:
    """Get the template for an action type, or the generic one."""
    return TEMPLATES.get(action_type, GENERIC_TEMPLATE)


def render_notification(
    action_type: str,
    recipient_name: str,
    actor_name: str,
    target_name: Optional[str] = None,
    body: Optional[str] = None,
) -> tuple[str, str]:
    """
    Render the email for a notification.

    Returns:
        Tuple of (subject, body)
    """
    return get_template(action_type).render_email(
        recipient_name=recipient_name,
        actor_name=actor_name,
        target_name=target_name or "something",
        body=body or "",
    )


def notification_context(recipient: dict, notification: dict) -> dict:
    """
    Pull template variables out of a recipient and a notification whose
    event is attached under `event`.
    """
    event = notification.get("event") or {}
    snapshot = event.get("data") or {}
    action = snapshot.get("action") or {}
    target = snapshot.get("target") or {}
    return {
        "action_type": event.get("action_type", "*"),
        "recipient_name": recipient.get("display_name") or recipient.get("username") or "there",
        "actor_name": action.get("display_name") or "Someone",
        "target_name": target.get("display_name") or target.get("name"),
    }
