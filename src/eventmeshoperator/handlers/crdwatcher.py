"""Kopf handler that starts and stops the scaler's watches as the CRDs they
depend on come and go.
"""

__all__ = ("handle_crd_event",)

from typing import Any

import kopf

from eventmeshoperator import state
from eventmeshoperator.scaler import BROKER_CRD_NAME, IMC_CRD_NAME

WATCHED_CRDS = frozenset({BROKER_CRD_NAME, IMC_CRD_NAME})


@kopf.on.event(
    "apiextensions.k8s.io",
    "v1",
    "customresourcedefinitions",
    when=lambda name, **_: name in WATCHED_CRDS,
)  # type: ignore[arg-type]
def handle_crd_event(
    *,
    name: str,
    event: dict[str, Any],
    body: dict[str, Any],
    logger: Any,
    **kwargs: Any,
) -> None:
    """Forward CRD creation and deletion to the scaler.

    Existing CRDs are reported with an event type of `None` when the
    operator starts. Updates are ignored.

    Parameters
    ----------
    name : `str`
        The name of the CRD.
    event : `dict`
        The watch event, with a ``type`` of ``ADDED``, ``MODIFIED``,
        ``DELETED`` or `None`.
    body : `dict`
        The body of the CRD.
    logger : `Any`
        The kopf logger.
    **kwargs : `Any`
        Additional keyword arguments provided by kopf.
    """
    if state.scaler is None:
        logger.warning(f"Ignoring event for CRD {name}, scaler not started")
        return

    handler = state.scaler.crd_event_handler()
    if event["type"] in (None, "ADDED"):
        logger.debug(f"CRD {name} is installed")
        handler.on_add(dict(body))
    elif event["type"] == "DELETED":
        logger.debug(f"CRD {name} is removed")
        handler.on_delete(dict(body))
