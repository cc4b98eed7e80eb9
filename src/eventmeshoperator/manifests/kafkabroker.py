"""Manifests of the Knative Kafka broker, channel, sink and source."""

from __future__ import annotations

__all__ = ("KAFKA_BROKER_DIR", "KafkaBrokerParser", "kafka_channel_template")

from pathlib import Path
from typing import Any

import structlog
import yaml

from eventmeshoperator import state
from eventmeshoperator.eventmesh import EventMesh
from eventmeshoperator.manifests import transform
from eventmeshoperator.manifests.manifest import Manifest
from eventmeshoperator.manifests.manifests import Manifests, load_manifests
from eventmeshoperator.manifests.parser import (
    CrdExists,
    post_install_manifests,
    tls_manifests,
)
from eventmeshoperator.manifests.version import DeploymentLister

KAFKA_BROKER_DIR = "eventing-kafka-broker-latest"

KAFKA_BROKER_FILES = (
    "eventing-kafka-controller.yaml",
    "eventing-kafka-broker.yaml",
    "eventing-kafka-channel.yaml",
    "eventing-kafka-sink.yaml",
    "eventing-kafka-source.yaml",
)

_CHANNEL_TEMPLATE = """\
apiVersion: v1
kind: ConfigMap
metadata:
  name: kafka-channel
  namespace: {namespace}
data:
  channel-template-spec: |
    apiVersion: messaging.knative.dev/v1
    kind: KafkaChannel
    spec:
      numPartitions: {num_partitions}
      replicationFactor: {replication_factor}
"""


def kafka_channel_template(eventmesh: EventMesh) -> Manifest:
    """Return the ``kafka-channel`` ConfigMap used as channel template by
    MT channel based brokers backed by KafkaChannels.
    """
    text = _CHANNEL_TEMPLATE.format(
        namespace=state.namespace,
        num_partitions=eventmesh.spec.kafka.num_partitions,
        replication_factor=eventmesh.spec.kafka.replication_factor,
    )
    try:
        return Manifest.from_string(text)
    except yaml.YAMLError as exc:
        raise RuntimeError(
            f"error parsing manifest for kafka channel template: {exc}"
        ) from exc


class KafkaBrokerParser:
    """Parses the Knative Kafka broker manifests.

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
        manifests.append(
            tls_manifests(
                KAFKA_BROKER_DIR,
                "eventing-kafka-tls-networking.yaml",
                eventmesh=eventmesh,
                crd_exists=self._crd_exists,
                data_path=self._data_path,
            )
        )
        manifests.append(
            post_install_manifests(
                KAFKA_BROKER_DIR,
                "eventing-kafka-post-install.yaml",
                installed=core.to_apply,
                deployment_lister=self._deployment_lister,
                data_path=self._data_path,
                logger=self._logger,
            )
        )
        return manifests

    def core_manifests(self, eventmesh: EventMesh) -> Manifests:
        spec = eventmesh.spec
        manifests = Manifests()
        manifests.add_to_apply(
            load_manifests(
                KAFKA_BROKER_DIR,
                *KAFKA_BROKER_FILES,
                data_path=self._data_path,
            )
        )
        manifests.add_to_apply(kafka_channel_template(eventmesh))
        manifests.add_transformers(
            transform.kafka_logging(spec.log_level),
            transform.bootstrap_servers(spec.kafka.bootstrap_servers),
            transform.number_of_partitions(spec.kafka.num_partitions),
            transform.replication_factor(spec.kafka.replication_factor),
            transform.kafka_topic_options(spec.kafka.topic_config_options),
            transform.eventing_kafka_broker_feature_flags(
                spec.kafka_features
            ),
        )
        return manifests
