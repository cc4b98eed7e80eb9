"""Transformer that applies the user's per-workload overrides."""

from __future__ import annotations

__all__ = ("PROBE_FIELDS", "workloads_override")

import copy
from collections.abc import Sequence
from typing import Any

from eventmeshoperator import state
from eventmeshoperator.eventmesh import WorkloadOverride
from eventmeshoperator.manifests.manifest import Transformer
from eventmeshoperator.manifests.transform.scale import set_hpa_min_replicas

PROBE_FIELDS = (
    "initialDelaySeconds",
    "timeoutSeconds",
    "periodSeconds",
    "successThreshold",
    "failureThreshold",
    "terminationGracePeriodSeconds",
)
"""Probe fields that can be overridden."""


def workloads_override(
    overrides: Sequence[WorkloadOverride] | None,
) -> Transformer | None:
    """Apply workload overrides to matching Deployments, StatefulSets, Jobs
    and HorizontalPodAutoscalers.

    Deployments and StatefulSets match by name, Jobs by ``generateName``.
    Replicas are only set on workloads that are not autoscaled; for those,
    the override sets ``minReplicas`` of the governing HPA instead.

    Returns `None` when there are no overrides.
    """
    if overrides is None:
        return None

    def transform(resource: dict[str, Any]) -> None:
        kind = resource.get("kind")
        metadata = resource.get("metadata", {})
        for override in overrides:
            if kind in ("Deployment", "StatefulSet"):
                if metadata.get("name") != override.name:
                    continue
                if (
                    override.replicas is not None
                    and override.name not in state.autoscaled_workloads
                ):
                    resource.setdefault("spec", {})[
                        "replicas"
                    ] = override.replicas
            elif kind == "Job":
                if metadata.get("generateName") != override.name:
                    continue
            elif kind == "HorizontalPodAutoscaler":
                if override.replicas is not None and metadata.get(
                    "name"
                ) == state.hpa_name(override.name):
                    set_hpa_min_replicas(resource, override.replicas)
                continue
            else:
                continue

            _apply_to_workload(override, resource)

    return transform


def _apply_to_workload(
    override: WorkloadOverride, resource: dict[str, Any]
) -> None:
    metadata = resource.setdefault("metadata", {})
    template = resource.setdefault("spec", {}).setdefault("template", {})
    template_metadata = template.setdefault("metadata", {})
    pod_spec = template.setdefault("spec", {})

    for key in ("labels", "annotations"):
        values = getattr(override, key)
        if not values:
            continue
        if metadata.get(key) is None:
            metadata[key] = {}
        if template_metadata.get(key) is None:
            template_metadata[key] = {}
        metadata[key].update(values)
        template_metadata[key].update(values)

    if override.node_selector:
        pod_spec["nodeSelector"] = dict(override.node_selector)
    if override.topology_spread_constraints:
        pod_spec["topologySpreadConstraints"] = copy.deepcopy(
            override.topology_spread_constraints
        )
    if override.tolerations:
        pod_spec["tolerations"] = copy.deepcopy(override.tolerations)
    if override.affinity is not None:
        pod_spec["affinity"] = copy.deepcopy(override.affinity)

    containers = pod_spec.get("containers") or []
    for container in containers:
        name = container.get("name")

        resources = _find(override.resources, name)
        if resources is not None:
            current = container.setdefault("resources", {})
            for field in ("limits", "requests"):
                _merge_quantities(resources.get(field) or {}, current, field)

        env = _find(override.env, name)
        if env is not None:
            _merge_env(env.get("envVars") or [], container)

        for key, probes in (
            ("readinessProbe", override.readiness_probes),
            ("livenessProbe", override.liveness_probes),
        ):
            probe = _find(probes, name)
            if probe is not None:
                _merge_probe(probe, container, key)

    if override.host_network is not None:
        pod_spec["hostNetwork"] = override.host_network
        if override.host_network:
            pod_spec["dnsPolicy"] = "ClusterFirstWithHostNet"


def _find(
    items: Sequence[dict[str, Any]], container: str | None
) -> dict[str, Any] | None:
    for item in items:
        if item.get("container") == container:
            return item
    return None


def _merge_quantities(
    source: dict[str, Any], resources: dict[str, Any], field: str
) -> None:
    if resources.get(field):
        resources[field].update(source)
    else:
        resources[field] = dict(source)


def _merge_env(
    env_vars: Sequence[dict[str, Any]], container: dict[str, Any]
) -> None:
    current = container.get("env") or []
    if not current:
        container["env"] = copy.deepcopy(list(env_vars))
        return
    for var in env_vars:
        for i, existing in enumerate(current):
            if existing.get("name") == var.get("name"):
                current[i] = copy.deepcopy(var)
                break
        else:
            current.append(copy.deepcopy(var))
    container["env"] = current


def _merge_probe(
    override: dict[str, Any], container: dict[str, Any], key: str
) -> None:
    values = {
        field: override[field]
        for field in PROBE_FIELDS
        if override.get(field)
    }
    if not values:
        # An empty override disables the probe.
        container.pop(key, None)
        return
    if container.get(key) is None:
        container[key] = values
        return
    container[key].update(values)
