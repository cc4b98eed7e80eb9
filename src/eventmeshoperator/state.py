"""Operator configuration and constructed state as module-level attributes."""

import json
import os
import threading
from typing import Any

namespace = os.environ.get("SYSTEM_NAMESPACE", "knative-eventing")
"""The namespace where Knative Eventing and the Kafka broker are installed."""

data_path = os.environ.get("KO_DATA_PATH", "/var/run/ko")
"""Root directory of the release manifests shipped with the operator."""

crd_poll_interval = float(os.environ.get("EVENTMESH_CRD_POLL_INTERVAL", "1"))
"""Seconds between checks whether a watched CRD has been installed."""

cache_sync_timeout = float(
    os.environ.get("EVENTMESH_CACHE_SYNC_TIMEOUT", "60")
)
"""Seconds to wait for the initial list of a dynamic watch."""

watch_timeout = int(os.environ.get("EVENTMESH_WATCH_TIMEOUT", "300"))
"""Server-side timeout of a single watch request, in seconds."""

worker_limit = int(os.environ.get("EVENTMESH_WORKER_LIMIT", "1"))
"""Upper bound of concurrent kopf workers per resource kind."""

group = "operator.eventmesh.knative.dev"
version = "v1alpha1"
plural = "eventmeshes"

field_manager = "eventmesh-operator"
"""Field manager name used for server-side apply."""

resync_annotation = f"{group}/resync-at"
"""Annotation patched onto EventMesh objects to request a reconcile."""

hpa_name_overrides: dict[str, str] = {
    "mt-broker-ingress": "broker-ingress-hpa",
    "mt-broker-filter": "broker-filter-hpa",
}
"""HorizontalPodAutoscaler names of workloads whose HPA is not named after
the workload itself.
"""
hpa_name_overrides.update(
    json.loads(os.environ.get("EVENTMESH_HPA_NAME_OVERRIDES", "{}"))
)

autoscaled_workloads: frozenset[str] = frozenset(
    {
        "eventing-webhook",
        "mt-broker-ingress",
        "mt-broker-filter",
        "kafka-broker-dispatcher",
        "kafka-source-dispatcher",
        "kafka-channel-dispatcher",
    }
)
"""Workloads whose replicas are governed by an HPA or a custom autoscaler."""


def hpa_name(workload_name: str) -> str:
    """Return the name of the HPA governing the named workload."""
    return hpa_name_overrides.get(workload_name, workload_name)


stopped = threading.Event()
"""Set when the operator shuts down; cancels watches that are starting."""

scaler: Any | None = None
"""The `eventmeshoperator.scaler.Scaler`, created on start-up."""

deployment_informer: Any | None = None
"""The `eventmeshoperator.informer.Informer` over system Deployments."""

reconciler: Any | None = None
"""The `eventmeshoperator.reconciler.eventmesh.EventMeshReconciler`."""
