"""Detection of minor version upgrades from Deployment version labels."""

from __future__ import annotations

__all__ = (
    "VERSION_LABEL",
    "DeploymentLister",
    "DeploymentNotFoundError",
    "VersionError",
    "get_versions",
    "is_upgrade",
    "parse_version_from_labels",
)

from collections.abc import Mapping
from typing import Any, Protocol

from packaging.version import InvalidVersion, Version

from eventmeshoperator import state
from eventmeshoperator.manifests.manifest import Manifest, by_kind

VERSION_LABEL = "app.kubernetes.io/version"


class VersionError(ValueError):
    """Raised when a version cannot be determined from labels."""


class DeploymentNotFoundError(LookupError):
    """Raised when none of the Deployments of a manifest exist in the
    cluster.
    """


class DeploymentLister(Protocol):
    def get(
        self, name: str, namespace: str | None = None
    ) -> dict[str, Any] | None: ...


def parse_version_from_labels(labels: Mapping[str, str] | None) -> Version:
    if not labels or VERSION_LABEL not in labels:
        raise VersionError(
            "could not get version from deployment labels. Label "
            f"{VERSION_LABEL} not found"
        )
    value = labels[VERSION_LABEL]
    if value[:1] in ("v", "V"):
        raise VersionError(
            f"could not parse version from labels: {value} has a v prefix"
        )
    try:
        return Version(value)
    except InvalidVersion as exc:
        raise VersionError(
            f"could not parse version from labels: {exc}"
        ) from exc


def get_versions(
    manifest: Manifest,
    deployment_lister: DeploymentLister,
    namespace: str | None = None,
) -> tuple[Version, Version]:
    """Return the manifest and installed versions of a component.

    The Deployments of ``manifest`` are tried from the last one to the
    first; a Deployment that does not exist in the cluster yet (for example
    because it is new in this release) is skipped.

    Parameters
    ----------
    manifest : `Manifest`
        The manifest about to be applied.
    deployment_lister
        Cached read access to the Deployments in the cluster.
    namespace : `str`, optional
        Namespace of the Deployments. Defaults to
        `eventmeshoperator.state.namespace`.

    Returns
    -------
    manifest_version : `packaging.version.Version`
        Version label of the Deployment definition.
    installed_version : `packaging.version.Version`
        Version label of the live Deployment.

    Raises
    ------
    VersionError
        Raised if the manifest has no Deployments or a version label is
        missing or invalid.
    DeploymentNotFoundError
        Raised if none of the Deployments exist in the cluster.
    """
    namespace = state.namespace if namespace is None else namespace
    deployments = manifest.filter(by_kind("Deployment")).resources()
    if not deployments:
        raise VersionError("could not find deployments in manifests")

    for deployment in reversed(deployments):
        metadata = deployment.get("metadata", {})
        name = metadata.get("name", "")
        instance = deployment_lister.get(name, namespace)
        if instance is None:
            continue

        try:
            instance_version = parse_version_from_labels(
                instance.get("metadata", {}).get("labels")
            )
        except VersionError as exc:
            raise VersionError(
                f"failed to parse version from deployment {name}: {exc}"
            ) from exc
        try:
            manifest_version = parse_version_from_labels(
                metadata.get("labels")
            )
        except VersionError as exc:
            raise VersionError(
                f"failed to parse version from manifest from {name}: {exc}"
            ) from exc
        return manifest_version, instance_version

    raise DeploymentNotFoundError(
        "none of the deployments in the manifest exist in namespace "
        f"{namespace}"
    )


def _minor(version: Version) -> Version:
    return Version(f"{version.major}.{version.minor}.0")


def is_upgrade(
    manifest: Manifest,
    deployment_lister: DeploymentLister,
    namespace: str | None = None,
) -> bool:
    """Whether applying ``manifest`` is at least a minor version upgrade.

    A first install, where none of the Deployments exist yet, is not an
    upgrade.
    """
    try:
        manifest_version, instance_version = get_versions(
            manifest, deployment_lister, namespace
        )
    except DeploymentNotFoundError:
        return False
    return _minor(instance_version) < _minor(manifest_version)
