"""Transformers for the Kafka broker and channel configuration."""

from __future__ import annotations

__all__ = (
    "bootstrap_servers",
    "kafka_topic_options",
    "number_of_partitions",
    "replication_factor",
)

from collections.abc import Mapping
from typing import Any

from eventmeshoperator.manifests.manifest import Transformer
from eventmeshoperator.manifests.transform.common import (
    is_config_map,
    system_namespace,
)
from eventmeshoperator.manifests.transform.configmap import (
    config_data,
    config_map,
    config_map_multiple_values,
)

KAFKA_BROKER_CONFIG_MAP = "kafka-broker-config"
KAFKA_CHANNEL_CONFIG_MAP = "kafka-channel-config"

TOPIC_CONFIG_PREFIX = "default.topic.config."


def bootstrap_servers(servers: list[str]) -> Transformer:
    """Set ``bootstrap.servers`` of the Kafka broker and channel configs."""

    def transform(resource: dict[str, Any]) -> None:
        if not is_config_map(
            resource, (KAFKA_BROKER_CONFIG_MAP, KAFKA_CHANNEL_CONFIG_MAP)
        ):
            return
        config_data(resource)["bootstrap.servers"] = ",".join(servers)

    return transform


def number_of_partitions(num: int) -> Transformer:
    return config_map(
        KAFKA_BROKER_CONFIG_MAP,
        system_namespace(),
        "default.topic.partitions",
        str(num),
    )


def replication_factor(num: int) -> Transformer:
    return config_map(
        KAFKA_BROKER_CONFIG_MAP,
        system_namespace(),
        "default.topic.replication.factor",
        str(num),
    )


def kafka_topic_options(options: Mapping[str, str]) -> Transformer:
    """Set ``default.topic.config.<option>`` keys of the broker config."""
    return config_map_multiple_values(
        KAFKA_BROKER_CONFIG_MAP,
        system_namespace(),
        {f"{TOPIC_CONFIG_PREFIX}{k}": v for k, v in options.items()},
    )
