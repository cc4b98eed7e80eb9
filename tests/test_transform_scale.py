"""Tests for the eventmeshoperator.manifests.transform.scale module."""

from __future__ import annotations

import pytest
import yaml

from eventmeshoperator.manifests.transform import (
    TransformError,
    hpa_replicas,
    scale,
)

DEPLOYMENT = """
apiVersion: apps/v1
kind: Deployment
metadata:
  name: imc-dispatcher
  namespace: knative-eventing
spec:
  replicas: 1
"""

HPA = """
apiVersion: autoscaling/v2
kind: HorizontalPodAutoscaler
metadata:
  name: broker-ingress-hpa
  namespace: knative-eventing
spec:
  minReplicas: 1
  maxReplicas: 10
"""


def test_scale_sets_replicas() -> None:
    deployment = yaml.safe_load(DEPLOYMENT)
    scale("apps/v1", "Deployment", "imc-dispatcher", "knative-eventing", 0)(
        deployment
    )
    assert deployment["spec"]["replicas"] == 0


@pytest.mark.parametrize(
    "name, namespace",
    [("imc-controller", "knative-eventing"), ("imc-dispatcher", "default")],
)
def test_scale_ignores_other_workloads(name: str, namespace: str) -> None:
    deployment = yaml.safe_load(DEPLOYMENT)
    scale("apps/v1", "Deployment", name, namespace, 0)(deployment)
    assert deployment["spec"]["replicas"] == 1


def test_scale_ignores_other_kinds() -> None:
    deployment = yaml.safe_load(DEPLOYMENT)
    scale("apps/v1", "StatefulSet", "imc-dispatcher", "knative-eventing", 0)(
        deployment
    )
    assert deployment["spec"]["replicas"] == 1

    config_map = {"apiVersion": "v1", "kind": "ConfigMap", "metadata": {}}
    scale("apps/v1", "Deployment", "imc-dispatcher", "knative-eventing", 0)(
        config_map
    )
    assert "spec" not in config_map


def test_scale_rejects_unscalable_target() -> None:
    deployment = yaml.safe_load(DEPLOYMENT)
    transformer = scale(
        "v1", "ConfigMap", "imc-dispatcher", "knative-eventing", 0
    )
    with pytest.raises(TransformError, match="not scalable"):
        transformer(deployment)


def test_hpa_replicas_shifts_range() -> None:
    hpa = yaml.safe_load(HPA)
    hpa_replicas("broker-ingress-hpa", "knative-eventing", 3)(hpa)
    assert hpa["spec"] == {"minReplicas": 3, "maxReplicas": 12}


def test_hpa_replicas_without_max() -> None:
    hpa = yaml.safe_load(HPA)
    del hpa["spec"]["maxReplicas"]
    hpa_replicas("broker-ingress-hpa", "knative-eventing", 2)(hpa)
    assert hpa["spec"] == {"minReplicas": 2}


def test_hpa_replicas_ignores_other_hpa() -> None:
    hpa = yaml.safe_load(HPA)
    hpa_replicas("broker-filter-hpa", "knative-eventing", 3)(hpa)
    assert hpa["spec"] == {"minReplicas": 1, "maxReplicas": 10}
