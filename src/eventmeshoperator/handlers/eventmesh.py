"""Kopf handler that reconciles an EventMesh."""

__all__ = ("owner_body", "reconcile_eventmesh")

from typing import Any

import kopf

from eventmeshoperator import state
from eventmeshoperator.eventmesh import EventMeshStatus, parse_eventmesh
from eventmeshoperator.reconciler.stages import StageOutcome


@kopf.on.resume(state.group, state.version, state.plural)  # type: ignore[arg-type]
@kopf.on.create(state.group, state.version, state.plural)  # type: ignore[arg-type]
@kopf.on.update(state.group, state.version, state.plural)  # type: ignore[arg-type]
def reconcile_eventmesh(
    *,
    body: dict[str, Any],
    meta: dict[str, Any],
    status: dict[str, Any],
    patch: kopf.Patch,
    logger: Any,
    **kwargs: Any,
) -> None:
    """Install Knative Eventing and the Kafka broker as configured by an
    EventMesh and record the outcome in its status.

    Parameters
    ----------
    body : `dict`
        The full body of the ``EventMesh`` as a read-only dict.
    meta : `dict`
        The ``metadata`` field of the ``EventMesh``.
    status : `dict`
        The ``status`` field of the ``EventMesh``.
    patch : `kopf.Patch`
        Patch applied to the ``EventMesh`` after the handler returns.
    logger : `Any`
        The kopf logger.
    **kwargs : `Any`
        Additional keyword arguments provided by kopf.

    Raises
    ------
    kopf.TemporaryError
        Raised if the operator has not finished starting up.
    kopf.PermanentError
        Raised if the reconcile pass cannot succeed without a change of the
        EventMesh or the release manifests.
    """
    if state.reconciler is None:
        raise kopf.TemporaryError("Operator is not started yet", delay=5)

    eventmesh = parse_eventmesh(dict(body))
    eventmesh_status = EventMeshStatus(dict(status))
    eventmesh_status.observed_generation = meta.get("generation")

    try:
        result = state.reconciler.reconcile(
            eventmesh, owner_body(body), eventmesh_status, logger=logger
        )
    finally:
        patch.status.update(eventmesh_status.to_dict())

    if result.outcome is StageOutcome.TERMINAL:
        raise kopf.PermanentError(
            f"Reconcile failed at stage {result.stage}: {result.error}"
        )


def owner_body(body: dict[str, Any]) -> dict[str, Any]:
    """Return the parts of an EventMesh body needed to own resources."""
    metadata = body["metadata"]
    return {
        "apiVersion": body["apiVersion"],
        "kind": body["kind"],
        "metadata": {
            "name": metadata["name"],
            "namespace": metadata.get("namespace"),
            "uid": metadata["uid"],
        },
    }
