"""The interface shared by the component manifest parsers, and the TLS and
post-install rules they have in common.
"""

from __future__ import annotations

__all__ = (
    "CERT_MANAGER_CRD",
    "CrdExists",
    "Parser",
    "post_install_manifests",
    "tls_manifests",
)

from collections.abc import Callable
from pathlib import Path
from typing import Any, Protocol

import structlog

from eventmeshoperator.eventmesh import EventMesh
from eventmeshoperator.manifests.manifest import Manifest
from eventmeshoperator.manifests.manifests import Manifests, load_manifests
from eventmeshoperator.manifests.version import DeploymentLister, is_upgrade

CERT_MANAGER_CRD = "certificates.cert-manager.io"
"""The CRD whose presence means cert-manager is installed."""

CrdExists = Callable[[str], bool]
"""Whether the named CustomResourceDefinition is installed."""


class Parser(Protocol):
    """Loads the manifests of one component and attaches its transformers."""

    def parse(self, eventmesh: EventMesh) -> Manifests: ...


def tls_manifests(
    dirname: str,
    filename: str,
    *,
    eventmesh: EventMesh,
    crd_exists: CrdExists,
    data_path: str | Path | None = None,
) -> Manifests:
    """Apply the TLS networking manifest if transport encryption is enabled
    and cert-manager is installed, delete it otherwise.
    """
    manifests = Manifests()
    tls = load_manifests(dirname, filename, data_path=data_path)
    if (
        not eventmesh.spec.is_disabled_transport_encryption()
        and crd_exists(CERT_MANAGER_CRD)
    ):
        manifests.add_to_apply(tls)
    else:
        manifests.add_to_delete(tls)
    return manifests


def post_install_manifests(
    dirname: str,
    filename: str,
    *,
    installed: Manifest,
    deployment_lister: DeploymentLister,
    data_path: str | Path | None = None,
    logger: Any | None = None,
) -> Manifests | None:
    """Return the post-install manifest to apply when ``installed`` is at
    least a minor version upgrade of what runs in the cluster, else `None`.
    """
    if logger is None:
        logger = structlog.get_logger(__name__)
    if not is_upgrade(installed, deployment_lister):
        logger.debug(
            f"Skipping {filename}, no minor version upgrade is ongoing"
        )
        return None

    logger.debug(f"Adding {filename}, a minor version upgrade is ongoing")
    manifests = Manifests()
    manifests.add_to_apply(
        load_manifests(dirname, filename, data_path=data_path)
    )
    return manifests
