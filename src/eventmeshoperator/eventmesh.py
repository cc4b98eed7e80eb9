"""Typed view of the EventMesh custom resource and its status conditions."""

from __future__ import annotations

__all__ = (
    "BROKER_CLASS_KAFKA",
    "BROKER_CLASS_MT_CHANNEL_BASED",
    "CHANNEL_IMPLEMENTATION_IMC",
    "CHANNEL_IMPLEMENTATION_KAFKA",
    "CONDITION_DEPLOYMENTS_AVAILABLE",
    "CONDITION_EVENTING_INSTALLED",
    "CONDITION_READY",
    "LOG_LEVELS",
    "TRANSPORT_ENCRYPTION",
    "EventMesh",
    "EventMeshSpec",
    "EventMeshStatus",
    "KafkaSpec",
    "Overrides",
    "WorkloadOverride",
    "parse_eventmesh",
)

import datetime
from dataclasses import dataclass, field
from typing import Any

LOG_LEVELS = ("trace", "debug", "info", "warn", "error", "fatal")

BROKER_CLASS_KAFKA = "Kafka"
BROKER_CLASS_MT_CHANNEL_BASED = "MTChannelBasedBroker"

CHANNEL_IMPLEMENTATION_KAFKA = "KafkaChannel"
CHANNEL_IMPLEMENTATION_IMC = "InMemoryChannel"

TRANSPORT_ENCRYPTION = "transport-encryption"
"""Feature flag controlling TLS between eventing components."""

CONDITION_READY = "Ready"
CONDITION_EVENTING_INSTALLED = "EventingInstalled"
CONDITION_DEPLOYMENTS_AVAILABLE = "DeploymentsAvailable"


@dataclass
class WorkloadOverride:
    """User overrides for one named Deployment, StatefulSet or Job.

    Fields mirror the ``spec.overrides.workloads[]`` items of the resource.
    Container-scoped overrides (resources, env, probes) are lists of dicts
    with a ``container`` key.
    """

    name: str
    labels: dict[str, str] = field(default_factory=dict)
    annotations: dict[str, str] = field(default_factory=dict)
    replicas: int | None = None
    node_selector: dict[str, str] = field(default_factory=dict)
    topology_spread_constraints: list[dict[str, Any]] = field(
        default_factory=list
    )
    tolerations: list[dict[str, Any]] = field(default_factory=list)
    affinity: dict[str, Any] | None = None
    resources: list[dict[str, Any]] = field(default_factory=list)
    env: list[dict[str, Any]] = field(default_factory=list)
    readiness_probes: list[dict[str, Any]] = field(default_factory=list)
    liveness_probes: list[dict[str, Any]] = field(default_factory=list)
    host_network: bool | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> WorkloadOverride:
        return cls(
            name=data["name"],
            labels=dict(data.get("labels") or {}),
            annotations=dict(data.get("annotations") or {}),
            replicas=data.get("replicas"),
            node_selector=dict(data.get("nodeSelector") or {}),
            topology_spread_constraints=list(
                data.get("topologySpreadConstraints") or []
            ),
            tolerations=list(data.get("tolerations") or []),
            affinity=data.get("affinity"),
            resources=list(data.get("resources") or []),
            env=list(data.get("env") or []),
            readiness_probes=list(data.get("readinessProbes") or []),
            liveness_probes=list(data.get("livenessProbes") or []),
            host_network=data.get("hostNetwork"),
        )


@dataclass
class Overrides:
    config: dict[str, dict[str, str]] = field(default_factory=dict)
    workloads: list[WorkloadOverride] = field(default_factory=list)

    def workload(self, name: str) -> WorkloadOverride | None:
        for override in self.workloads:
            if override.name == name:
                return override
        return None


@dataclass
class KafkaSpec:
    bootstrap_servers: list[str] = field(default_factory=list)
    auth_secret_name: str | None = None
    num_partitions: int = 3
    replication_factor: int = 1
    topic_config_options: dict[str, str] = field(default_factory=dict)


@dataclass
class EventMeshSpec:
    kafka: KafkaSpec = field(default_factory=KafkaSpec)
    log_level: str = "info"
    default_broker: str = ""
    default_channel: str = ""
    features: dict[str, str] = field(default_factory=dict)
    kafka_features: dict[str, str] = field(default_factory=dict)
    overrides: Overrides = field(default_factory=Overrides)

    def is_disabled_transport_encryption(self) -> bool:
        """Whether the transport-encryption feature flag is disabled.

        The flag is disabled unless set to ``permissive`` or ``strict``.
        """
        value = self.features.get(TRANSPORT_ENCRYPTION, "disabled")
        return value.lower() not in ("permissive", "strict")


@dataclass
class EventMesh:
    name: str
    namespace: str
    uid: str
    generation: int
    spec: EventMeshSpec


def parse_eventmesh(body: dict[str, Any]) -> EventMesh:
    """Parse an EventMesh resource body, applying the defaults.

    Parameters
    ----------
    body : `dict`
        The full body of the ``EventMesh`` custom Kubernetes resource.

    Returns
    -------
    eventmesh : `EventMesh`
        The typed configuration.
    """
    metadata = body.get("metadata", {})
    spec = body.get("spec") or {}

    kafka = spec.get("kafka") or {}
    num_partitions = kafka.get("numPartitions") or 0
    replication_factor = kafka.get("replicationFactor") or 0
    auth_secret_ref = kafka.get("authSecretRef") or {}
    kafka_spec = KafkaSpec(
        bootstrap_servers=list(kafka.get("bootstrapServers") or []),
        auth_secret_name=auth_secret_ref.get("name"),
        num_partitions=num_partitions if num_partitions > 0 else 3,
        replication_factor=(
            replication_factor if replication_factor > 0 else 1
        ),
        topic_config_options=dict(kafka.get("topicConfigOptions") or {}),
    )

    overrides = spec.get("overrides") or {}
    log_level = (spec.get("logLevel") or "").lower() or "info"

    return EventMesh(
        name=metadata.get("name", ""),
        namespace=metadata.get("namespace", ""),
        uid=metadata.get("uid", ""),
        generation=metadata.get("generation", 0),
        spec=EventMeshSpec(
            kafka=kafka_spec,
            log_level=log_level,
            default_broker=spec.get("defaultBroker", ""),
            default_channel=spec.get("defaultChannel", ""),
            features=dict(spec.get("features") or {}),
            kafka_features=dict(spec.get("kafkaFeatures") or {}),
            overrides=Overrides(
                config=dict(overrides.get("config") or {}),
                workloads=[
                    WorkloadOverride.from_dict(item)
                    for item in overrides.get("workloads") or []
                ],
            ),
        ),
    )


class EventMeshStatus:
    """Status conditions of an EventMesh.

    ``Ready`` is the top-level condition: it is true only when every
    dependent condition is true, false as soon as one of them is false and
    unknown otherwise.
    """

    dependents = (
        CONDITION_EVENTING_INSTALLED,
        CONDITION_DEPLOYMENTS_AVAILABLE,
    )

    def __init__(self, status: dict[str, Any] | None = None) -> None:
        status = status or {}
        self.observed_generation: int | None = status.get("observedGeneration")
        self._conditions: dict[str, dict[str, Any]] = {
            c["type"]: dict(c) for c in status.get("conditions") or []
        }

    def initialize_conditions(self) -> None:
        """Set all unset conditions to Unknown."""
        for type_ in (CONDITION_READY, *self.dependents):
            if type_ not in self._conditions:
                self._set(type_, "Unknown", "", "")

    def get_condition(self, type_: str) -> dict[str, Any] | None:
        return self._conditions.get(type_)

    def is_ready(self) -> bool:
        condition = self.get_condition(CONDITION_READY)
        return condition is not None and condition["status"] == "True"

    def mark_install_succeeded(self) -> None:
        self._set(CONDITION_EVENTING_INSTALLED, "True", "", "")

    def mark_install_failed(self, reason: str, message: str) -> None:
        self._set(CONDITION_EVENTING_INSTALLED, "False", reason, message)

    def mark_deployments_available(self) -> None:
        self._set(CONDITION_DEPLOYMENTS_AVAILABLE, "True", "", "")

    def mark_deployments_not_ready(self, reason: str, message: str) -> None:
        self._set(CONDITION_DEPLOYMENTS_AVAILABLE, "False", reason, message)

    def to_dict(self) -> dict[str, Any]:
        status: dict[str, Any] = {
            "conditions": [
                self._conditions[type_]
                for type_ in (CONDITION_READY, *self.dependents)
                if type_ in self._conditions
            ]
        }
        if self.observed_generation is not None:
            status["observedGeneration"] = self.observed_generation
        return status

    def _set(self, type_: str, status: str, reason: str, message: str) -> None:
        current = self._conditions.get(type_)
        if (
            current is not None
            and current.get("status") == status
            and current.get("reason", "") == reason
            and current.get("message", "") == message
        ):
            return
        self._conditions[type_] = {
            "type": type_,
            "status": status,
            "reason": reason,
            "message": message,
            "lastTransitionTime": _now(),
        }
        if type_ != CONDITION_READY:
            self._update_ready()

    def _update_ready(self) -> None:
        statuses = [
            self._conditions.get(type_, {}).get("status", "Unknown")
            for type_ in self.dependents
        ]
        for type_ in self.dependents:
            condition = self._conditions.get(type_)
            if condition is not None and condition["status"] == "False":
                self._set(
                    CONDITION_READY,
                    "False",
                    condition["reason"],
                    condition["message"],
                )
                return
        if all(status == "True" for status in statuses):
            self._set(CONDITION_READY, "True", "", "")
        else:
            self._set(CONDITION_READY, "Unknown", "", "")


def _now() -> str:
    return (
        datetime.datetime.now(datetime.timezone.utc)
        .replace(microsecond=0)
        .isoformat()
        .replace("+00:00", "Z")
    )
