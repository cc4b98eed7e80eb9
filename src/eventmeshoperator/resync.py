"""Requesting a fresh reconcile of every EventMesh."""

__all__ = ("global_resync",)

import datetime
from typing import Any

import structlog
from kubernetes.client.rest import ApiException

from eventmeshoperator import state
from eventmeshoperator.k8s import (
    create_k8sclient,
    list_eventmeshes,
    patch_eventmesh_annotations,
)


def global_resync(
    obj: Any = None, *, k8s_client: Any = None, logger: Any = None
) -> None:
    """Stamp the resync annotation onto every EventMesh so that kopf runs
    their update handlers.

    Parameters
    ----------
    obj
        The object whose change triggered the request; only logged.
    k8s_client
        A Kubernetes client (see `eventmeshoperator.k8s.create_k8sclient`).
    logger
        Logger; a structlog logger by default.
    """
    if logger is None:
        logger = structlog.get_logger(__name__)
    if k8s_client is None:
        k8s_client = create_k8sclient()

    if isinstance(obj, dict):
        metadata = obj.get("metadata", {})
        logger.info(
            "Requesting resync of all EventMeshes",
            trigger=f"{obj.get('kind')} {metadata.get('namespace', '')}/"
            f"{metadata.get('name')}",
        )

    now = datetime.datetime.now(datetime.timezone.utc).isoformat()
    for eventmesh in list_eventmeshes(k8s_client=k8s_client):
        metadata = eventmesh["metadata"]
        try:
            patch_eventmesh_annotations(
                name=metadata["name"],
                namespace=metadata["namespace"],
                annotations={state.resync_annotation: now},
                k8s_client=k8s_client,
            )
        except ApiException as exc:
            if exc.status == 404:
                continue
            raise
