"""Transformer that makes the EventMesh the owner of installed resources."""

from __future__ import annotations

__all__ = ("inject_owner",)

from typing import Any, cast

import kopf

from eventmeshoperator.manifests.manifest import Transformer


def inject_owner(owner: dict[str, Any]) -> Transformer:
    """Add an owner reference to ``owner`` on every resource except
    Namespaces.

    Parameters
    ----------
    owner : `dict`
        Body of the owning EventMesh (apiVersion, kind and metadata with
        name and uid).
    """

    def transform(resource: dict[str, Any]) -> None:
        if resource.get("kind") == "Namespace":
            return
        kopf.append_owner_reference(resource, owner=cast("kopf.Body", owner))

    return transform
