"""Ordered sets of Kubernetes resource definitions and how they are applied
to and deleted from a cluster.
"""

from __future__ import annotations

__all__ = (
    "KIND_PRIORITY_ORDER",
    "LessFunc",
    "Manifest",
    "ManifestClient",
    "Predicate",
    "Transformer",
    "all_of",
    "by_kind",
    "by_kind_priority",
    "by_name",
    "not_",
)

import copy
import functools
from collections.abc import Callable, Iterable, Iterator
from pathlib import Path
from typing import Any

import structlog
import yaml
from kubernetes.dynamic import DynamicClient
from kubernetes.dynamic.exceptions import NotFoundError, ResourceNotFoundError

Resource = dict[str, Any]
Transformer = Callable[[Resource], None]
"""Edits one resource definition in place.

Transformers are given a private copy of each resource. They leave resources
they are not interested in untouched and raise only when a resource they
target does not have the expected shape.
"""
Predicate = Callable[[Resource], bool]
LessFunc = Callable[[Resource, Resource], bool]

KIND_PRIORITY_ORDER = (
    "PriorityClass",
    "Namespace",
    "NetworkPolicy",
    "ResourceQuota",
    "LimitRange",
    "PodSecurityPolicy",
    "PodDisruptionBudget",
    "ServiceAccount",
    "Secret",
    "SecretList",
    "ConfigMap",
    "StorageClass",
    "PersistentVolume",
    "PersistentVolumeClaim",
    "CustomResourceDefinition",
    "ClusterRole",
    "ClusterRoleList",
    "ClusterRoleBinding",
    "ClusterRoleBindingList",
    "Role",
    "RoleList",
    "RoleBinding",
    "RoleBindingList",
    "Service",
    "DaemonSet",
    "Pod",
    "ReplicationController",
    "ReplicaSet",
    "Deployment",
    "HorizontalPodAutoscaler",
    "StatefulSet",
    "Job",
    "CronJob",
    "IngressClass",
    "Ingress",
    "APIService",
    "MutatingWebhookConfiguration",
    "ValidatingWebhookConfiguration",
)
"""Order in which resource kinds are applied; deletion uses the reverse.

Based on the kind ordering Helm uses when installing a chart.
"""

_KIND_POSITIONS = {kind: i for i, kind in enumerate(KIND_PRIORITY_ORDER)}


def _kind(resource: Resource) -> str:
    return resource.get("kind", "")


def _name(resource: Resource) -> str:
    return resource.get("metadata", {}).get("name", "")


def _namespace(resource: Resource) -> str | None:
    return resource.get("metadata", {}).get("namespace")


def by_kind(kind: str) -> Predicate:
    return lambda resource: _kind(resource) == kind


def by_name(name: str) -> Predicate:
    return lambda resource: _name(resource) == name


def not_(predicate: Predicate) -> Predicate:
    return lambda resource: not predicate(resource)


def all_of(*predicates: Predicate) -> Predicate:
    return lambda resource: all(p(resource) for p in predicates)


def by_kind_priority() -> LessFunc:
    """Order resources by `KIND_PRIORITY_ORDER`, unknown kinds last and
    alphabetically by kind among equals.
    """

    def less(a: Resource, b: Resource) -> bool:
        kind_a, kind_b = _kind(a), _kind(b)
        pos_a = _KIND_POSITIONS.get(kind_a, len(KIND_PRIORITY_ORDER))
        pos_b = _KIND_POSITIONS.get(kind_b, len(KIND_PRIORITY_ORDER))
        if pos_a != pos_b:
            return pos_a < pos_b
        return kind_a < kind_b

    return less


class Manifest:
    """An immutable, ordered list of resource definitions.

    Every operation returns a new `Manifest`.
    """

    def __init__(self, resources: Iterable[Resource] = ()) -> None:
        self._resources: tuple[Resource, ...] = tuple(resources)

    @classmethod
    def from_string(cls, text: str) -> Manifest:
        """Parse a (multi-document) YAML string."""
        return cls(doc for doc in yaml.safe_load_all(text) if doc)

    @classmethod
    def from_paths(cls, *paths: Path | str) -> Manifest:
        """Load (multi-document) YAML files, in order."""
        manifest = cls()
        for path in paths:
            manifest = manifest.append(
                cls.from_string(Path(path).read_text())
            )
        return manifest

    def resources(self) -> list[Resource]:
        return list(self._resources)

    def __iter__(self) -> Iterator[Resource]:
        return iter(self._resources)

    def __len__(self) -> int:
        return len(self._resources)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Manifest):
            return NotImplemented
        return self._resources == other._resources

    def __repr__(self) -> str:
        names = ", ".join(
            f"{_kind(r)}/{_name(r)}" for r in self._resources
        )
        return f"Manifest([{names}])"

    def append(self, *manifests: Manifest) -> Manifest:
        resources = list(self._resources)
        for manifest in manifests:
            resources.extend(manifest._resources)
        return Manifest(resources)

    def filter(self, *predicates: Predicate) -> Manifest:
        """Keep the resources matching all ``predicates``."""
        return Manifest(
            r for r in self._resources if all(p(r) for p in predicates)
        )

    def transform(self, *transformers: Transformer | None) -> Manifest:
        """Run ``transformers``, in order, on a copy of every resource.

        `None` entries are skipped.
        """
        resources = []
        for resource in self._resources:
            patched = copy.deepcopy(resource)
            for transformer in transformers:
                if transformer is not None:
                    transformer(patched)
            resources.append(patched)
        return Manifest(resources)

    def sort(self, less: LessFunc) -> Manifest:
        """Return the resources stably sorted by ``less``."""

        def compare(a: Resource, b: Resource) -> int:
            if less(a, b):
                return -1
            if less(b, a):
                return 1
            return 0

        return Manifest(
            sorted(self._resources, key=functools.cmp_to_key(compare))
        )

    def apply(self, client: ManifestClient) -> None:
        """Apply every resource, in order."""
        for resource in self._resources:
            client.apply(resource)

    def delete(
        self, client: ManifestClient, *, ignore_not_found: bool = True
    ) -> None:
        """Delete every resource, in reverse order."""
        for resource in reversed(self._resources):
            client.delete(resource, ignore_not_found=ignore_not_found)


class ManifestClient:
    """Applies and deletes resource definitions through the dynamic client.

    Resources are applied with server-side apply.

    Parameters
    ----------
    dynamic_client : `kubernetes.dynamic.DynamicClient`
        The client (see `eventmeshoperator.k8s.create_dynamic_client`).
    field_manager : `str`
        The field manager recorded for applied fields.
    logger : optional
        Logger; a structlog logger by default.
    """

    def __init__(
        self,
        dynamic_client: DynamicClient,
        *,
        field_manager: str,
        logger: Any | None = None,
    ) -> None:
        self._client = dynamic_client
        self._field_manager = field_manager
        self._logger = logger or structlog.get_logger(__name__)

    def _resource(self, resource: Resource) -> Any:
        return self._client.resources.get(
            api_version=resource["apiVersion"], kind=resource["kind"]
        )

    def apply(self, resource: Resource) -> None:
        api = self._resource(resource)
        namespace = _namespace(resource) if api.namespaced else None
        self._logger.debug(
            f"Applying {resource['kind']} {namespace or ''}/{_name(resource)}"
        )
        self._client.server_side_apply(
            api,
            body=resource,
            name=_name(resource),
            namespace=namespace,
            field_manager=self._field_manager,
            force_conflicts=True,
        )

    def delete(
        self,
        resource: Resource,
        *,
        ignore_not_found: bool = True,
        ignore_missing_api: bool = True,
    ) -> None:
        """Delete one resource.

        Parameters
        ----------
        resource : `dict`
            The resource definition; only apiVersion, kind, name and
            namespace are used.
        ignore_not_found : `bool`
            Ignore resources that do not exist.
        ignore_missing_api : `bool`
            Ignore resources whose kind is not served by the cluster, for
            example because the CRD defining it is not installed.
        """
        try:
            api = self._resource(resource)
        except ResourceNotFoundError:
            if ignore_missing_api:
                self._logger.debug(
                    f"Skipping delete of {resource['kind']} "
                    f"{_name(resource)}, no matching API"
                )
                return
            raise
        namespace = _namespace(resource) if api.namespaced else None
        self._logger.debug(
            f"Deleting {resource['kind']} {namespace or ''}/{_name(resource)}"
        )
        try:
            self._client.delete(api, name=_name(resource), namespace=namespace)
        except NotFoundError:
            if not ignore_not_found:
                raise
