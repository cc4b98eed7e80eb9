"""Tests for the eventmeshoperator.manifests.manifest and
eventmeshoperator.manifests.manifests modules.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import pytest
from conftest import FakeManifestClient

from eventmeshoperator.manifests.manifest import (
    KIND_PRIORITY_ORDER,
    Manifest,
    all_of,
    by_kind,
    by_kind_priority,
    by_name,
    not_,
)
from eventmeshoperator.manifests.manifests import (
    ManifestLoadError,
    Manifests,
    load_manifests,
)
from eventmeshoperator.manifests.transform import TransformError

MIXED = """
apiVersion: admissionregistration.k8s.io/v1
kind: ValidatingWebhookConfiguration
metadata:
  name: validation.webhook.eventing.knative.dev
---
apiVersion: apps/v1
kind: Deployment
metadata:
  name: eventing-controller
  namespace: knative-eventing
---
apiVersion: sources.knative.dev/v1
kind: PingSource
metadata:
  name: ping
  namespace: default
---
apiVersion: v1
kind: Namespace
metadata:
  name: knative-eventing
---
apiVersion: v1
kind: ConfigMap
metadata:
  name: config-logging
  namespace: knative-eventing
---
apiVersion: eventing.knative.dev/v1
kind: Broker
metadata:
  name: default
  namespace: default
---
apiVersion: v1
kind: ServiceAccount
metadata:
  name: eventing-controller
  namespace: knative-eventing
"""


def kinds(manifest: Manifest) -> list[str]:
    return [r["kind"] for r in manifest]


def test_from_string_skips_empty_documents() -> None:
    manifest = Manifest.from_string("---\n" + MIXED + "\n---\n")
    assert len(manifest) == 7


def test_sort_by_kind_priority() -> None:
    manifest = Manifest.from_string(MIXED).sort(by_kind_priority())
    assert kinds(manifest) == [
        "Namespace",
        "ServiceAccount",
        "ConfigMap",
        "Deployment",
        "ValidatingWebhookConfiguration",
        "Broker",
        "PingSource",
    ]


def test_sort_is_stable() -> None:
    manifest = Manifest.from_string(
        """
kind: ConfigMap
metadata:
  name: b
---
kind: ConfigMap
metadata:
  name: a
"""
    ).sort(by_kind_priority())
    assert [r["metadata"]["name"] for r in manifest] == ["b", "a"]


def test_kind_priority_table_is_strict() -> None:
    less = by_kind_priority()
    resources = [{"kind": kind} for kind in KIND_PRIORITY_ORDER]
    for earlier, later in zip(resources, resources[1:]):
        assert less(earlier, later)
        assert not less(later, earlier)


def test_delete_is_reverse_of_apply() -> None:
    manifest = Manifest.from_string(MIXED).sort(by_kind_priority())
    client = FakeManifestClient()
    manifest.apply(client)  # type: ignore[arg-type]
    manifest.delete(client)  # type: ignore[arg-type]
    assert client.deleted == list(reversed(client.applied))


def test_predicates() -> None:
    manifest = Manifest.from_string(MIXED)
    assert kinds(manifest.filter(by_kind("Deployment"))) == ["Deployment"]
    assert len(manifest.filter(by_name("eventing-controller"))) == 2
    assert kinds(
        manifest.filter(
            all_of(by_kind("ServiceAccount"), by_name("eventing-controller"))
        )
    ) == ["ServiceAccount"]
    assert len(manifest.filter(not_(by_kind("Deployment")))) == 6


def set_label(resource: dict[str, Any]) -> None:
    resource.setdefault("metadata", {}).setdefault("labels", {})[
        "app.kubernetes.io/part-of"
    ] = "knative-eventing"


def test_transform_copies_resources() -> None:
    manifest = Manifest.from_string(MIXED)
    transformed = manifest.transform(set_label, None)
    assert all(
        r["metadata"]["labels"]["app.kubernetes.io/part-of"]
        == "knative-eventing"
        for r in transformed
    )
    assert all("labels" not in r["metadata"] for r in manifest)


def test_transform_is_idempotent() -> None:
    manifest = Manifest.from_string(MIXED)
    once = manifest.transform(set_label)
    assert once.transform(set_label) == once


def test_move_to_delete() -> None:
    manifests = Manifests()
    manifests.add_to_apply(Manifest.from_string(MIXED))
    moved = manifests.move_to_delete(by_kind("Deployment"))
    assert kinds(moved) == ["Deployment"]
    assert "Deployment" not in kinds(manifests.to_apply)
    assert kinds(manifests.to_delete) == ["Deployment"]


def test_manifests_append_and_transform() -> None:
    other = Manifests()
    other.add_to_apply(Manifest.from_string(MIXED))
    other.add_to_delete(Manifest.from_string(MIXED).filter(by_kind("Broker")))
    other.add_transformers(set_label, None)

    manifests = Manifests()
    manifests.append(other)
    manifests.append(None)
    assert len(manifests.transformers) == 1

    manifests.transform_to_apply()
    manifests.transform_to_delete()
    assert all("labels" in r["metadata"] for r in manifests.to_apply)
    assert all("labels" in r["metadata"] for r in manifests.to_delete)


def test_transform_error_is_wrapped() -> None:
    def broken(resource: dict[str, Any]) -> None:
        raise TransformError("bad shape")

    manifests = Manifests()
    manifests.add_to_apply(Manifest.from_string(MIXED))
    manifests.add_transformers(broken)
    with pytest.raises(TransformError, match="to apply: bad shape"):
        manifests.transform_to_apply()


def test_load_manifests(tmp_path: Path) -> None:
    (tmp_path / "eventing-latest").mkdir()
    (tmp_path / "eventing-latest" / "a.yaml").write_text(MIXED)
    (tmp_path / "eventing-latest" / "b.yaml").write_text(
        "kind: ConfigMap\nmetadata:\n  name: extra\n"
    )
    manifest = load_manifests(
        "eventing-latest", "a.yaml", "b.yaml", data_path=tmp_path
    )
    assert len(manifest) == 8
    assert manifest.resources()[-1]["metadata"]["name"] == "extra"


def test_load_manifests_missing_file(tmp_path: Path) -> None:
    with pytest.raises(ManifestLoadError, match="eventing-latest/missing"):
        load_manifests("eventing-latest", "missing.yaml", data_path=tmp_path)
