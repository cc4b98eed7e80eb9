"""Shared helpers for transformers."""

from __future__ import annotations

__all__ = ("TransformError", "is_config_map", "no_op", "system_namespace")

from typing import Any

from eventmeshoperator import state


class TransformError(ValueError):
    """Raised when a resource does not have the shape a transformer
    expects.
    """


def system_namespace() -> str:
    return state.namespace


def is_config_map(
    resource: dict[str, Any], names: str | tuple[str, ...]
) -> bool:
    """Whether ``resource`` is one of the named ConfigMaps in the system
    namespace.
    """
    if isinstance(names, str):
        names = (names,)
    metadata = resource.get("metadata", {})
    return (
        resource.get("kind") == "ConfigMap"
        and metadata.get("namespace") == system_namespace()
        and metadata.get("name") in names
    )


def no_op(resource: dict[str, Any]) -> None:
    return None
