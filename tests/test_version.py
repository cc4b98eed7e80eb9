"""Tests for the eventmeshoperator.manifests.version module."""

from __future__ import annotations

from typing import Any

import pytest
from conftest import FakeLister
from packaging.version import Version

from eventmeshoperator.manifests.manifest import Manifest
from eventmeshoperator.manifests.version import (
    DeploymentNotFoundError,
    VersionError,
    get_versions,
    is_upgrade,
)

MANIFEST = """
apiVersion: v1
kind: ConfigMap
metadata:
  name: config-logging
  namespace: knative-eventing
---
apiVersion: apps/v1
kind: Deployment
metadata:
  name: eventing-controller
  namespace: knative-eventing
  labels:
    app.kubernetes.io/version: "1.2.3"
---
apiVersion: apps/v1
kind: Deployment
metadata:
  name: eventing-webhook
  namespace: knative-eventing
  labels:
    app.kubernetes.io/version: "1.2.3"
"""


def live(name: str, version: str | None) -> dict[str, Any]:
    labels = {"app.kubernetes.io/version": version} if version else {}
    return {
        "metadata": {
            "name": name,
            "namespace": "knative-eventing",
            "labels": labels,
        }
    }


def test_get_versions_uses_last_deployment() -> None:
    lister = FakeLister(
        [
            live("eventing-controller", "1.1.0"),
            live("eventing-webhook", "1.2.2"),
        ]
    )
    manifest_version, installed_version = get_versions(
        Manifest.from_string(MANIFEST), lister
    )
    assert manifest_version == Version("1.2.3")
    assert installed_version == Version("1.2.2")


def test_get_versions_falls_back_to_previous_deployment() -> None:
    lister = FakeLister([live("eventing-controller", "1.1.0")])
    _, installed_version = get_versions(Manifest.from_string(MANIFEST), lister)
    assert installed_version == Version("1.1.0")


def test_get_versions_none_installed() -> None:
    with pytest.raises(DeploymentNotFoundError):
        get_versions(Manifest.from_string(MANIFEST), FakeLister())


def test_get_versions_without_deployments() -> None:
    manifest = Manifest.from_string(MANIFEST).filter(
        lambda r: r["kind"] != "Deployment"
    )
    with pytest.raises(VersionError):
        get_versions(manifest, FakeLister())


def test_get_versions_missing_label() -> None:
    lister = FakeLister([live("eventing-webhook", None)])
    with pytest.raises(VersionError, match="eventing-webhook"):
        get_versions(Manifest.from_string(MANIFEST), lister)


@pytest.mark.parametrize(
    "installed, expected",
    [
        ("1.1.9", True),
        ("1.2.2", False),
        ("1.2.3", False),
        ("1.2.7", False),
        ("1.3.0", False),
        ("0.9.0", True),
    ],
)
def test_is_upgrade(installed: str, expected: bool) -> None:
    lister = FakeLister([live("eventing-webhook", installed)])
    assert is_upgrade(Manifest.from_string(MANIFEST), lister) is expected


def test_first_install_is_not_an_upgrade() -> None:
    assert not is_upgrade(Manifest.from_string(MANIFEST), FakeLister())


@pytest.mark.parametrize("label", ["v1.2.3", "not-a-version"])
def test_invalid_version_label(label: str) -> None:
    lister = FakeLister([live("eventing-webhook", label)])
    with pytest.raises(VersionError):
        get_versions(Manifest.from_string(MANIFEST), lister)
