"""
Default access predicate.

Public resources are visible to everyone. A private resource (`public: False`)
is visible to its author, to itself when the resource is a member, and to
members following its author.

The engine takes the predicate as a constructor argument, so deployments with
richer rules pass their own coroutine with the same signature.
"""

from typing import Awaitable, Callable, Optional, Union

from shared.data_store import DataStore
from shared.errors import FanoutError, UpstreamError

Requestor = Union[dict, str, None]
AccessPredicate = Callable[[DataStore, Requestor, Optional[dict]], Awaitable[bool]]


def requestor_id(requestor: Requestor) -> Optional[str]:
    if isinstance(requestor, dict):
        return requestor.get("id")
    return requestor


async def has_access(store: DataStore, requestor: Requestor, resource: Optional[dict]) -> bool:
    """Check whether `requestor` (None for anonymous) may see `resource`."""
    if resource is None:
        return False
    if resource.get("public", True) is not False:
        return True

    member_id = requestor_id(requestor)
    if member_id is None:
        return False
    author_id = resource.get("author_id")
    if member_id in (author_id, resource.get("id")):
        return True
    if author_id is None:
        return False

    follow = await store.read("subscriptions", {
        "subscriber_id": member_id,
        "subscribee_id": author_id,
        "meta.style": "follow",
    })
    return follow is not None


async def check_access(
    access: AccessPredicate,
    store: DataStore,
    requestor: Requestor,
    resource: Optional[dict],
) -> bool:
    """
    Run an access predicate on behalf of the engine.

    Raises:
        UpstreamError: If the predicate itself failed
    """
    try:
        return await access(store, requestor, resource)
    except FanoutError:
        raise
    except Exception as e:
        raise UpstreamError(f"Access check failed: {e}") from e
