"""Transformers that set the replicas of workloads and autoscalers."""

from __future__ import annotations

__all__ = ("SCALABLE_KINDS", "hpa_replicas", "scale", "set_hpa_min_replicas")

from typing import Any

from eventmeshoperator.manifests.manifest import Transformer
from eventmeshoperator.manifests.transform.common import TransformError

SCALABLE_KINDS = frozenset(
    {
        ("apps/v1", "Deployment"),
        ("apps/v1", "StatefulSet"),
        ("apps/v1", "ReplicaSet"),
        ("v1", "ReplicationController"),
    }
)
"""(apiVersion, kind) pairs that have a ``spec.replicas`` field."""


def _matches(
    resource: dict[str, Any], kind: str, name: str, namespace: str
) -> bool:
    metadata = resource.get("metadata", {})
    return (
        resource.get("kind") == kind
        and metadata.get("name") == name
        and metadata.get("namespace") == namespace
    )


def scale(
    api_version: str, kind: str, name: str, namespace: str, replicas: int
) -> Transformer:
    """Set ``spec.replicas`` of the named workload.

    Parameters
    ----------
    api_version : `str`
        API version of the workload, for example ``apps/v1``.
    kind : `str`
        Kind of the workload. Must be one of `SCALABLE_KINDS`.
    name : `str`
        Name of the workload.
    namespace : `str`
        Namespace of the workload.
    replicas : `int`
        The replica count to set.

    Raises
    ------
    TransformError
        Raised, when the transformer meets a scalable resource, if the
        target kind is not scalable.
    """
    target = (api_version, kind)

    def transform(resource: dict[str, Any]) -> None:
        if (resource.get("apiVersion"), resource.get("kind")) not in (
            SCALABLE_KINDS
        ):
            return
        if target not in SCALABLE_KINDS:
            raise TransformError(f"{api_version}, Kind={kind} is not scalable")
        if resource.get("apiVersion") != api_version:
            return
        if not _matches(resource, kind, name, namespace):
            return
        resource.setdefault("spec", {})["replicas"] = replicas

    return transform


def set_hpa_min_replicas(resource: dict[str, Any], min_replicas: int) -> None:
    """Set ``minReplicas`` of an HPA, raising ``maxReplicas`` (when set) by
    the same amount so that the range stays valid.
    """
    spec = resource.setdefault("spec", {})
    current_min = spec.get("minReplicas") or 0
    if not isinstance(current_min, int):
        raise TransformError(
            f"minReplicas of {resource['metadata'].get('name')} is not an "
            "integer"
        )
    spec["minReplicas"] = min_replicas
    if "maxReplicas" not in spec:
        return
    current_max = spec["maxReplicas"]
    if not isinstance(current_max, int):
        raise TransformError(
            f"maxReplicas of {resource['metadata'].get('name')} is not an "
            "integer"
        )
    spec["maxReplicas"] = current_max + (min_replicas - current_min)


def hpa_replicas(name: str, namespace: str, min_replicas: int) -> Transformer:
    """Set the minimum replicas of the named HorizontalPodAutoscaler."""

    def transform(resource: dict[str, Any]) -> None:
        if not _matches(resource, "HorizontalPodAutoscaler", name, namespace):
            return
        set_hpa_min_replicas(resource, min_replicas)

    return transform
