"""Pipeline steps that load, transform and install manifests."""

from __future__ import annotations

__all__ = ("ManifestStep", "append_from_parser", "install", "transform")

from collections.abc import Callable
from typing import Any

import structlog

from eventmeshoperator.eventmesh import EventMesh
from eventmeshoperator.manifests.manifest import Manifest, ManifestClient
from eventmeshoperator.manifests.manifests import Manifests
from eventmeshoperator.manifests.parser import Parser

ManifestStep = Callable[[Manifests, EventMesh, Any], None]
"""A step taking the manifests of the pass, the EventMesh and a logger."""


def append_from_parser(parser: Parser) -> ManifestStep:
    """Return a step that appends what ``parser`` loads."""

    def step(manifests: Manifests, eventmesh: EventMesh, logger: Any) -> None:
        manifests.append(parser.parse(eventmesh))

    return step


def transform(
    manifests: Manifests, eventmesh: EventMesh, logger: Any = None
) -> None:
    """Run the transformers on the resources to apply and to delete.

    The delete set is transformed too so that it names the resources the
    way they were applied.
    """
    if logger is None:
        logger = structlog.get_logger(__name__)
    logger.debug("Applying patches to manifests")
    manifests.transform_to_apply()
    manifests.transform_to_delete()


def install(
    client: ManifestClient, base: Manifest | None = None
) -> ManifestStep:
    """Return a step that sorts the manifests, deletes the delete set and
    then applies the apply set.

    Parameters
    ----------
    client : `ManifestClient`
        Applies and deletes resources.
    base : `Manifest`, optional
        Resources prepended to both sets.
    """
    base = base if base is not None else Manifest()

    def step(manifests: Manifests, eventmesh: EventMesh, logger: Any) -> None:
        if logger is None:
            logger = structlog.get_logger(__name__)
        manifests.sort()

        logger.debug(
            f"Deleting unneeded manifests ({len(manifests.to_delete)})"
        )
        base.append(manifests.to_delete).delete(client, ignore_not_found=True)

        logger.debug(f"Applying manifests ({len(manifests.to_apply)})")
        base.append(manifests.to_apply).apply(client)

    return step
