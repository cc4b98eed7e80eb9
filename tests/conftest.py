"""Fakes and fixtures shared by the tests."""

from __future__ import annotations

import queue
import threading
import time
from collections.abc import Callable, Iterator
from pathlib import Path
from typing import Any

import pytest
import yaml

from eventmeshoperator import state

EVENTING_CORE = """
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
data:
  loglevel.controller: info
  loglevel.webhook: info
  zap-logger-config: |
    {"level": "info", "development": false}
---
apiVersion: v1
kind: ConfigMap
metadata:
  name: config-features
  namespace: knative-eventing
data:
  transport-encryption: disabled
---
apiVersion: v1
kind: ConfigMap
metadata:
  name: default-ch-webhook
  namespace: knative-eventing
data:
  default-ch-config: ""
---
apiVersion: v1
kind: ConfigMap
metadata:
  name: config-br-defaults
  namespace: knative-eventing
data:
  default-br-config: ""
---
apiVersion: apps/v1
kind: Deployment
metadata:
  name: eventing-controller
  namespace: knative-eventing
  labels:
    app.kubernetes.io/version: "1.14.2"
spec:
  template:
    spec:
      containers:
      - name: eventing-controller
        image: controller
---
apiVersion: apps/v1
kind: Deployment
metadata:
  name: eventing-webhook
  namespace: knative-eventing
  labels:
    app.kubernetes.io/version: "1.14.2"
spec:
  template:
    spec:
      containers:
      - name: eventing-webhook
        image: webhook
"""

EVENTING_CRDS = """
apiVersion: apiextensions.k8s.io/v1
kind: CustomResourceDefinition
metadata:
  name: brokers.eventing.knative.dev
"""

IN_MEMORY_CHANNEL = """
apiVersion: apps/v1
kind: Deployment
metadata:
  name: imc-controller
  namespace: knative-eventing
  labels:
    app.kubernetes.io/version: "1.14.2"
spec:
  replicas: 1
  template:
    spec:
      containers:
      - name: controller
        image: imc-controller
---
apiVersion: apps/v1
kind: Deployment
metadata:
  name: imc-dispatcher
  namespace: knative-eventing
  labels:
    app.kubernetes.io/version: "1.14.2"
spec:
  replicas: 1
  template:
    spec:
      containers:
      - name: dispatcher
        image: imc-dispatcher
"""

MT_CHANNEL_BROKER = """
apiVersion: apps/v1
kind: Deployment
metadata:
  name: mt-broker-controller
  namespace: knative-eventing
  labels:
    app.kubernetes.io/version: "1.14.2"
spec:
  replicas: 1
  template:
    spec:
      containers:
      - name: mt-broker-controller
        image: mt-broker-controller
---
apiVersion: apps/v1
kind: Deployment
metadata:
  name: mt-broker-ingress
  namespace: knative-eventing
  labels:
    app.kubernetes.io/version: "1.14.2"
spec:
  template:
    spec:
      containers:
      - name: ingress
        image: mt-broker-ingress
---
apiVersion: apps/v1
kind: Deployment
metadata:
  name: mt-broker-filter
  namespace: knative-eventing
  labels:
    app.kubernetes.io/version: "1.14.2"
spec:
  template:
    spec:
      containers:
      - name: filter
        image: mt-broker-filter
---
apiVersion: autoscaling/v2
kind: HorizontalPodAutoscaler
metadata:
  name: broker-ingress-hpa
  namespace: knative-eventing
spec:
  minReplicas: 1
  maxReplicas: 10
---
apiVersion: autoscaling/v2
kind: HorizontalPodAutoscaler
metadata:
  name: broker-filter-hpa
  namespace: knative-eventing
spec:
  minReplicas: 1
  maxReplicas: 10
"""

EVENTING_TLS = """
apiVersion: cert-manager.io/v1
kind: Certificate
metadata:
  name: imc-dispatcher-server-tls
  namespace: knative-eventing
"""

EVENTING_POST_INSTALL = """
apiVersion: batch/v1
kind: Job
metadata:
  generateName: storage-version-migration-eventing-
  namespace: knative-eventing
"""

KAFKA_CONTROLLER = """
apiVersion: v1
kind: ConfigMap
metadata:
  name: kafka-config-logging
  namespace: knative-eventing
data:
  config.xml: |
    <configuration>
      <root level="INFO">
        <appender-ref ref="jsonConsoleAppender"/>
      </root>
    </configuration>
---
apiVersion: v1
kind: ConfigMap
metadata:
  name: config-kafka-features
  namespace: knative-eventing
data:
  dispatcher.rate-limiter: disabled
---
apiVersion: apps/v1
kind: Deployment
metadata:
  name: kafka-controller
  namespace: knative-eventing
  labels:
    app.kubernetes.io/version: "1.14.5"
spec:
  template:
    spec:
      containers:
      - name: controller
        image: kafka-controller
"""

KAFKA_BROKER = """
apiVersion: v1
kind: ConfigMap
metadata:
  name: kafka-broker-config
  namespace: knative-eventing
data:
  bootstrap.servers: ""
  default.topic.partitions: "10"
  default.topic.replication.factor: "3"
"""

KAFKA_CHANNEL = """
apiVersion: v1
kind: ConfigMap
metadata:
  name: kafka-channel-config
  namespace: knative-eventing
data:
  bootstrap.servers: ""
"""

KAFKA_SINK = """
apiVersion: v1
kind: ConfigMap
metadata:
  name: config-kafka-sink-data-plane
  namespace: knative-eventing
"""

KAFKA_SOURCE = """
apiVersion: v1
kind: ConfigMap
metadata:
  name: config-kafka-source-data-plane
  namespace: knative-eventing
"""

KAFKA_TLS = """
apiVersion: cert-manager.io/v1
kind: Certificate
metadata:
  name: kafka-broker-ingress-server-tls
  namespace: knative-eventing
"""

KAFKA_POST_INSTALL = """
apiVersion: batch/v1
kind: Job
metadata:
  generateName: knative-kafka-storage-version-migrator-
  namespace: knative-eventing
"""

RELEASE_FILES = {
    "eventing-latest": {
        "eventing-crds.yaml": EVENTING_CRDS,
        "eventing-core.yaml": EVENTING_CORE,
        "in-memory-channel.yaml": IN_MEMORY_CHANNEL,
        "mt-channel-broker.yaml": MT_CHANNEL_BROKER,
        "eventing-tls-networking.yaml": EVENTING_TLS,
        "eventing-post-install.yaml": EVENTING_POST_INSTALL,
    },
    "eventing-kafka-broker-latest": {
        "eventing-kafka-controller.yaml": KAFKA_CONTROLLER,
        "eventing-kafka-broker.yaml": KAFKA_BROKER,
        "eventing-kafka-channel.yaml": KAFKA_CHANNEL,
        "eventing-kafka-sink.yaml": KAFKA_SINK,
        "eventing-kafka-source.yaml": KAFKA_SOURCE,
        "eventing-kafka-tls-networking.yaml": KAFKA_TLS,
        "eventing-kafka-post-install.yaml": KAFKA_POST_INSTALL,
    },
}


@pytest.fixture(autouse=True)
def system_namespace(monkeypatch: pytest.MonkeyPatch) -> str:
    monkeypatch.setattr(state, "namespace", "knative-eventing")
    return "knative-eventing"


@pytest.fixture
def data_path(tmp_path: Path) -> Path:
    """A release manifest tree like the one shipped in KO_DATA_PATH."""
    for dirname, files in RELEASE_FILES.items():
        directory = tmp_path / dirname
        directory.mkdir()
        for filename, content in files.items():
            (directory / filename).write_text(content)
    return tmp_path


def wait_for(condition: Callable[[], bool], timeout: float = 5.0) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if condition():
            return True
        time.sleep(0.01)
    return condition()


def make_object(
    kind: str,
    name: str,
    namespace: str | None = "default",
    *,
    resource_version: str = "1",
    annotations: dict[str, str] | None = None,
) -> dict[str, Any]:
    metadata: dict[str, Any] = {
        "name": name,
        "resourceVersion": resource_version,
    }
    if namespace:
        metadata["namespace"] = namespace
    if annotations:
        metadata["annotations"] = annotations
    return {"apiVersion": "v1", "kind": kind, "metadata": metadata}


class FakeListWatcher:
    """A `ListWatcher` fed by the test.

    ``list`` returns ``items``; events put with `send` are yielded by the
    current watch.
    """

    def __init__(self, items: list[dict[str, Any]] | None = None) -> None:
        self.items = list(items or [])
        self.list_calls = 0
        self.closed = False
        self.events: queue.Queue[tuple[str, dict[str, Any]]] = queue.Queue()

    def list(self) -> tuple[list[dict[str, Any]], str]:
        self.list_calls += 1
        return [dict(item) for item in self.items], str(self.list_calls)

    def watch(
        self, resource_version: str, stop: threading.Event
    ) -> Iterator[tuple[str, dict[str, Any]]]:
        while not stop.is_set():
            try:
                event = self.events.get(timeout=0.01)
            except queue.Empty:
                continue
            if isinstance(event, Exception):
                raise event
            yield event

    def close(self) -> None:
        self.closed = True

    def send(self, event_type: str, obj: dict[str, Any]) -> None:
        self.events.put((event_type, obj))

    def fail(self, exc: Exception) -> None:
        self.events.put(exc)  # type: ignore[arg-type]


class FakeLister:
    """A lister over a fixed set of objects."""

    def __init__(self, objs: list[dict[str, Any]] | None = None) -> None:
        self.objs = list(objs or [])

    def list(
        self, selector: dict[str, str] | None = None
    ) -> list[dict[str, Any]]:
        return list(self.objs)

    def get(
        self, name: str, namespace: str | None = None
    ) -> dict[str, Any] | None:
        for obj in self.objs:
            metadata = obj.get("metadata", {})
            if metadata.get("name") == name and (
                namespace is None or metadata.get("namespace") == namespace
            ):
                return obj
        return None


class FakeManifestClient:
    """Records applied and deleted resources instead of calling a cluster.
    """

    def __init__(self) -> None:
        self.applied: list[dict[str, Any]] = []
        self.deleted: list[dict[str, Any]] = []

    def apply(self, resource: dict[str, Any]) -> None:
        self.applied.append(resource)

    def delete(
        self,
        resource: dict[str, Any],
        *,
        ignore_not_found: bool = True,
        ignore_missing_api: bool = True,
    ) -> None:
        self.deleted.append(resource)


class FakeScaler:
    def __init__(self, imc: int = 0, mt_broker: int = 0) -> None:
        self.imc = imc
        self.mt_broker = mt_broker

    def imc_scale_target(self) -> int:
        return self.imc

    def mt_broker_scale_target(self) -> int:
        return self.mt_broker


def load(text: str) -> dict[str, Any]:
    return yaml.safe_load(text)
