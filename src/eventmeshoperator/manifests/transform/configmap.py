"""Transformers that set ConfigMap data."""

from __future__ import annotations

__all__ = (
    "config_data",
    "config_map",
    "config_map_multiple_values",
    "config_map_override",
)

from collections.abc import Mapping
from typing import Any

from eventmeshoperator.manifests.manifest import Transformer
from eventmeshoperator.manifests.transform.common import TransformError


def config_data(resource: dict[str, Any]) -> dict[str, Any]:
    data = resource.get("data")
    if data is None:
        data = resource["data"] = {}
    if not isinstance(data, dict):
        name = resource.get("metadata", {}).get("name")
        raise TransformError(f"data of ConfigMap {name} is not a mapping")
    return data


def config_map(name: str, namespace: str, key: str, value: str) -> Transformer:
    """Set one key of the named ConfigMap."""
    return config_map_multiple_values(name, namespace, {key: value})


def config_map_multiple_values(
    name: str, namespace: str, values: Mapping[str, str]
) -> Transformer:
    """Set several keys of the named ConfigMap, leaving other keys alone."""

    def transform(resource: dict[str, Any]) -> None:
        metadata = resource.get("metadata", {})
        if (
            resource.get("kind") != "ConfigMap"
            or metadata.get("name") != name
            or metadata.get("namespace") != namespace
        ):
            return
        config_data(resource).update(values)

    return transform


def config_map_override(
    config: Mapping[str, Mapping[str, str]],
) -> Transformer:
    """Merge user supplied data into ConfigMaps by name.

    Keys of ``config`` are ConfigMap names; the ``config-`` prefix of a
    name may be left out.
    """

    def transform(resource: dict[str, Any]) -> None:
        if resource.get("kind") != "ConfigMap":
            return
        name = resource.get("metadata", {}).get("name", "")
        data = config.get(name)
        if data is None and name.startswith("config-"):
            data = config.get(name[len("config-") :])
        if data is not None:
            config_data(resource).update(data)

    return transform

