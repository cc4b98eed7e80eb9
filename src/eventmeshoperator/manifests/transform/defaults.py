"""Transformers for the cluster-wide default channel and broker class."""

from __future__ import annotations

__all__ = (
    "default_broker_class",
    "default_channel_implementation",
    "eventing_feature_flags",
    "eventing_kafka_broker_feature_flags",
)

from collections.abc import Mapping
from typing import Any

import yaml

from eventmeshoperator.eventmesh import (
    BROKER_CLASS_KAFKA,
    BROKER_CLASS_MT_CHANNEL_BASED,
    CHANNEL_IMPLEMENTATION_IMC,
    CHANNEL_IMPLEMENTATION_KAFKA,
)
from eventmeshoperator.manifests.manifest import Transformer
from eventmeshoperator.manifests.transform.common import (
    is_config_map,
    no_op,
    system_namespace,
)
from eventmeshoperator.manifests.transform.configmap import (
    config_data,
    config_map_multiple_values,
)

CHANNEL_DEFAULTS_CONFIG_MAP = "default-ch-webhook"
CHANNEL_DEFAULTS_KEY = "default-ch-config"

BROKER_DEFAULTS_CONFIG_MAP = "config-br-defaults"
BROKER_DEFAULTS_KEY = "default-br-config"

FEATURES_CONFIG_MAP = "config-features"
KAFKA_FEATURES_CONFIG_MAP = "config-kafka-features"


def default_channel_implementation(channel: str) -> Transformer:
    """Set the cluster default channel kind; KafkaChannel if unset."""
    channel = channel or CHANNEL_IMPLEMENTATION_KAFKA

    def transform(resource: dict[str, Any]) -> None:
        if not is_config_map(resource, CHANNEL_DEFAULTS_CONFIG_MAP):
            return
        config_data(resource)[CHANNEL_DEFAULTS_KEY] = yaml.safe_dump(
            {
                "clusterDefault": {
                    "apiVersion": "messaging.knative.dev/v1",
                    "kind": channel,
                }
            },
            sort_keys=False,
        )

    return transform


def _config_map_for_broker_class(broker_class: str, channel: str) -> str:
    if broker_class == BROKER_CLASS_MT_CHANNEL_BASED:
        if channel == CHANNEL_IMPLEMENTATION_IMC:
            return "config-br-default-channel"
        return "kafka-channel"
    return "kafka-broker-config"


def default_broker_class(broker_class: str, channel: str) -> Transformer:
    """Set the cluster default broker class and the config of the other
    class; Kafka if unset.
    """
    broker_class = broker_class or BROKER_CLASS_KAFKA
    alternative = (
        BROKER_CLASS_MT_CHANNEL_BASED
        if broker_class == BROKER_CLASS_KAFKA
        else BROKER_CLASS_KAFKA
    )

    def transform(resource: dict[str, Any]) -> None:
        if not is_config_map(resource, BROKER_DEFAULTS_CONFIG_MAP):
            return
        namespace = system_namespace()
        defaults = {
            "clusterDefault": {
                "brokerClass": broker_class,
                "apiVersion": "v1",
                "kind": "ConfigMap",
                "name": _config_map_for_broker_class(broker_class, channel),
                "namespace": namespace,
                "brokerClasses": {
                    alternative: {
                        "apiVersion": "v1",
                        "kind": "ConfigMap",
                        "name": _config_map_for_broker_class(
                            alternative, channel
                        ),
                        "namespace": namespace,
                    }
                },
            }
        }
        config_data(resource)[BROKER_DEFAULTS_KEY] = yaml.safe_dump(
            defaults, sort_keys=False
        )

    return transform


def eventing_feature_flags(features: Mapping[str, str]) -> Transformer:
    if not features:
        return no_op
    return config_map_multiple_values(
        FEATURES_CONFIG_MAP, system_namespace(), features
    )


def eventing_kafka_broker_feature_flags(
    features: Mapping[str, str],
) -> Transformer:
    if not features:
        return no_op
    return config_map_multiple_values(
        KAFKA_FEATURES_CONFIG_MAP, system_namespace(), features
    )
