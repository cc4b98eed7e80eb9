"""Kopf handler that requests a reconcile when an installed Deployment
becomes available or unavailable.
"""

__all__ = ("handle_deployment_event", "is_available", "is_owned_by_eventmesh")

import threading
from typing import Any

import kopf

from eventmeshoperator import state
from eventmeshoperator.resync import global_resync

_availability: dict[str, bool] = {}
_availability_lock = threading.Lock()


def is_owned_by_eventmesh(meta: dict[str, Any]) -> bool:
    return any(
        ref.get("kind") == "EventMesh"
        and ref.get("apiVersion", "").startswith(f"{state.group}/")
        for ref in meta.get("ownerReferences") or []
    )


def is_available(status: dict[str, Any]) -> bool:
    return any(
        c.get("type") == "Available" and c.get("status") == "True"
        for c in status.get("conditions") or []
    )


@kopf.on.event(
    "apps",
    "v1",
    "deployments",
    when=lambda namespace, meta, **_: namespace == state.namespace
    and is_owned_by_eventmesh(meta),
)  # type: ignore[arg-type]
def handle_deployment_event(
    *,
    name: str,
    namespace: str,
    event: dict[str, Any],
    status: dict[str, Any],
    logger: Any,
    **kwargs: Any,
) -> None:
    """Request a resync of every EventMesh when the availability of an
    owned Deployment changes.

    The first event seen for a Deployment only records its availability.

    Parameters
    ----------
    name : `str`
        The name of the Deployment.
    namespace : `str`
        The namespace of the Deployment.
    event : `dict`
        The watch event.
    status : `dict`
        The status of the Deployment.
    logger : `Any`
        The kopf logger.
    **kwargs : `Any`
        Additional keyword arguments provided by kopf.
    """
    key = f"{namespace}/{name}"
    if event["type"] == "DELETED":
        with _availability_lock:
            _availability.pop(key, None)
        return

    available = is_available(status)
    with _availability_lock:
        previous = _availability.get(key)
        _availability[key] = available
    if previous is None or previous == available:
        return

    logger.info(
        f"Deployment {key} became {'available' if available else 'unavailable'}"
    )
    global_resync(logger=logger)
