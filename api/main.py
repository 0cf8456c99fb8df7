"""
FastAPI application for the fan-out engine.

This application provides:
1. Subscription endpoints (subscribe, accept, unsubscribe)
2. Publishing of raw data and events
3. Read paths: hydrated events and a member's notifications

The app is built around an injected `Events` engine, so tests and deployments
can wire their own store, socket and emailer.

Run with:
    uv run uvicorn api.main:app --reload

Then visit http://localhost:8000/docs for interactive API documentation.
"""

import logging
from contextlib import asynccontextmanager
from typing import Any, Optional

from fastapi import APIRouter, Depends, FastAPI, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s | %(name)-24s | %(levelname)-5s | %(message)s",
    datefmt="%H:%M:%S",
)

from fanout import Events, client_view
from shared.channels import EmailNotifier
from shared.data_store import DataStore
from shared.errors import FanoutError, NotFoundError, UpstreamError, ValidationError
from shared.models import NotifyRoles, PublishOptions, SubscriptionMeta
from shared.settings import get_settings
from shared.socket_bus import SocketBus

logger = logging.getLogger("api")


# Request/response models
class SubscribeRequest(BaseModel):
    """Subscribe a member to an entity."""
    subscriber_id: str
    subscribee_id: str
    meta: SubscriptionMeta


class PublishRequest(BaseModel):
    """Publish raw data, optionally with an event and notifications."""
    channel: str
    topic: str
    data: Any
    event: Optional[dict[str, Any]] = None
    options: Optional[PublishOptions] = None
    notify: Optional[NotifyRoles] = None


class PublishResponse(BaseModel):
    """What a publish did."""
    event_id: Optional[str] = None
    rejected: bool = False
    recipients: int = 0
    notification_ids: list[str] = []


# =============================================================================
# Error handling
# =============================================================================

ERROR_STATUS = {
    ValidationError: 400,
    NotFoundError: 404,
    UpstreamError: 502,
}


async def fanout_error_handler(request: Request, exc: FanoutError) -> JSONResponse:
    """Map engine errors to HTTP status codes."""
    status = next(
        (code for error, code in ERROR_STATUS.items() if isinstance(exc, error)),
        500,
    )
    if status >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc}")
    return JSONResponse(status_code=status, content={"detail": str(exc)})


def get_engine(request: Request) -> Events:
    return request.app.state.engine


router = APIRouter()


# =============================================================================
# Health Check
# =============================================================================

@router.get("/health", tags=["Health"])
def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "service": "fanout-engine"}


# =============================================================================
# Subscriptions
# =============================================================================

@router.post("/subscriptions", tags=["Subscriptions"])
async def subscribe(body: SubscribeRequest, engine: Events = Depends(get_engine)):
    """
    Subscribe a member to another member or to content.

    Subscribing twice returns the existing subscription.
    """
    subscription = await engine.subscribe(body.subscriber_id, body.subscribee_id, body.meta)
    return client_view(subscription)


@router.post("/subscriptions/{subscription_id}/accept", tags=["Subscriptions"])
async def accept(subscription_id: str, engine: Events = Depends(get_engine)):
    """Accept a pending follow request."""
    subscription = await engine.store.read("subscriptions", {"id": subscription_id})
    if subscription is None:
        raise NotFoundError(f"Subscription {subscription_id} not found")
    return client_view(await engine.accept(subscription))


@router.delete("/subscriptions/{subscriber_id}/{subscribee_id}", tags=["Subscriptions"])
async def unsubscribe(subscriber_id: str, subscribee_id: str, engine: Events = Depends(get_engine)):
    """Remove a subscription and its notifications. Missing pairs succeed."""
    removed = await engine.unsubscribe(subscriber_id, subscribee_id)
    return {"removed": removed["id"] if removed else None}


# =============================================================================
# Publishing
# =============================================================================

@router.post("/publish", response_model=PublishResponse, tags=["Publishing"])
async def publish(body: PublishRequest, engine: Events = Depends(get_engine)):
    """
    Publish data over a channel.

    With an `event`, the event is stored, hydrated and delivered to the
    recipients its resolve method selects.
    """
    result = await engine.publish(
        body.channel,
        body.topic,
        body.data,
        event=body.event,
        options=body.options,
        notify=body.notify,
    )
    return PublishResponse(
        event_id=result.event["id"] if result.event else None,
        rejected=result.rejected,
        recipients=len(result.recipients),
        notification_ids=[note["id"] for note in result.notifications],
    )


# =============================================================================
# Read paths
# =============================================================================

@router.get("/events/{event_id}", tags=["Events"])
async def get_event(event_id: str, requestor_id: Optional[str] = None, engine: Events = Depends(get_engine)):
    """Hydrated event as seen by `requestor_id` (anonymous when omitted)."""
    view = await engine.hydrate(event_id, requestor_id)
    if view is None:
        raise NotFoundError(f"Event {event_id} not found")
    return view


@router.get("/members/{member_id}/notifications", tags=["Events"])
async def list_notifications(member_id: str, engine: Events = Depends(get_engine)):
    """A member's notifications, newest first."""
    notes = await engine.store.list(
        "notifications", {"subscriber_id": member_id}, sort={"created": -1}
    )
    return client_view(notes)


# =============================================================================
# Application
# =============================================================================

def create_app(engine: Optional[Events] = None) -> FastAPI:
    """
    Build the application around an engine.

    Without one, an in-memory engine is created from the environment's
    settings.
    """
    if engine is None:
        settings = get_settings()
        engine = Events(
            DataStore(),
            sock=SocketBus(),
            emailer=EmailNotifier(from_addr=settings.email_from),
            settings=settings,
        )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application startup and shutdown."""
        logger.info("Starting fan-out engine API")
        yield
        await app.state.engine.drain()
        logger.info("Shutting down")

    app = FastAPI(
        title="Fan-out Engine",
        description="""
        Subscriptions, events and notifications.

        - `/subscriptions` - subscribe, accept follow requests, unsubscribe
        - `/publish` - publish raw data and events
        - `/events/{id}` - hydrated event for a requestor
        - `/members/{id}/notifications` - a member's notifications
        """,
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.engine = engine
    app.add_exception_handler(FanoutError, fanout_error_handler)
    app.include_router(router)
    return app


app = create_app()
