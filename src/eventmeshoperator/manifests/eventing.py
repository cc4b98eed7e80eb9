"""Manifests of Knative Eventing: core, in-memory channel and the
multi-tenant channel based broker.
"""

from __future__ import annotations

__all__ = ("EVENTING_DIR", "EventingParser")

from pathlib import Path
from typing import Any

import structlog

from eventmeshoperator.eventmesh import EventMesh
from eventmeshoperator.manifests import transform
from eventmeshoperator.manifests.manifests import Manifests, load_manifests
from eventmeshoperator.manifests.parser import (
    CrdExists,
    post_install_manifests,
    tls_manifests,
)
from eventmeshoperator.manifests.version import DeploymentLister

EVENTING_DIR = "eventing-latest"


class EventingParser:
    """Parses the Knative Eventing manifests.

    The in-memory channel and MT broker data planes are always installed;
    the scaling stage scales them down when nothing uses them.

    Parameters
    ----------
    crd_exists : callable
        Whether a named CRD is installed; used to detect cert-manager.
    deployment_lister
        Cached read access to the Deployments of the system namespace.
    data_path : `str` or `pathlib.Path`, optional
        Root of the release manifests.
    logger : optional
        Logger; a structlog logger by default.
    """

    def __init__(
        self,
        *,
        crd_exists: CrdExists,
        deployment_lister: DeploymentLister,
        data_path: str | Path | None = None,
        logger: Any | None = None,
    ) -> None:
        self._crd_exists = crd_exists
        self._deployment_lister = deployment_lister
        self._data_path = data_path
        self._logger = logger or structlog.get_logger(__name__)

    def parse(self, eventmesh: EventMesh) -> Manifests:
        manifests = Manifests()

        core = self.core_manifests(eventmesh)
        manifests.append(core)
        manifests.append(self._load("in-memory-channel.yaml"))
        manifests.append(self._load("mt-channel-broker.yaml"))
        manifests.append(
            tls_manifests(
                EVENTING_DIR,
                "eventing-tls-networking.yaml",
                eventmesh=eventmesh,
                crd_exists=self._crd_exists,
                data_path=self._data_path,
            )
        )
        manifests.append(
            post_install_manifests(
                EVENTING_DIR,
                "eventing-post-install.yaml",
                installed=core.to_apply,
                deployment_lister=self._deployment_lister,
                data_path=self._data_path,
                logger=self._logger,
            )
        )
        return manifests

    def core_manifests(self, eventmesh: EventMesh) -> Manifests:
        spec = eventmesh.spec
        manifests = self._load("eventing-crds.yaml", "eventing-core.yaml")
        manifests.add_transformers(
            transform.eventing_core_logging(spec.log_level),
            transform.default_channel_implementation(spec.default_channel),
            transform.default_broker_class(
                spec.default_broker, spec.default_channel
            ),
            transform.eventing_feature_flags(spec.features),
            transform.config_map_override(spec.overrides.config),
            transform.workloads_override(spec.overrides.workloads),
        )
        return manifests

    def _load(self, *filenames: str) -> Manifests:
        manifests = Manifests()
        manifests.add_to_apply(
            load_manifests(EVENTING_DIR, *filenames, data_path=self._data_path)
        )
        return manifests
