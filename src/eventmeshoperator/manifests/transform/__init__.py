"""Transformers: functions that edit a resource definition in place before
it is applied.
"""

from eventmeshoperator.manifests.transform.common import (
    TransformError,
    is_config_map,
    no_op,
    system_namespace,
)
from eventmeshoperator.manifests.transform.configmap import (
    config_map,
    config_map_multiple_values,
    config_map_override,
)
from eventmeshoperator.manifests.transform.defaults import (
    default_broker_class,
    default_channel_implementation,
    eventing_feature_flags,
    eventing_kafka_broker_feature_flags,
)
from eventmeshoperator.manifests.transform.kafka import (
    bootstrap_servers,
    kafka_topic_options,
    number_of_partitions,
    replication_factor,
)
from eventmeshoperator.manifests.transform.logging import (
    eventing_core_logging,
    kafka_logging,
)
from eventmeshoperator.manifests.transform.ownerreference import inject_owner
from eventmeshoperator.manifests.transform.scale import hpa_replicas, scale
from eventmeshoperator.manifests.transform.workloadoverride import (
    workloads_override,
)

__all__ = (
    "TransformError",
    "bootstrap_servers",
    "config_map",
    "config_map_multiple_values",
    "config_map_override",
    "default_broker_class",
    "default_channel_implementation",
    "eventing_core_logging",
    "eventing_feature_flags",
    "eventing_kafka_broker_feature_flags",
    "hpa_replicas",
    "inject_owner",
    "is_config_map",
    "kafka_logging",
    "kafka_topic_options",
    "no_op",
    "number_of_partitions",
    "replication_factor",
    "scale",
    "system_namespace",
    "workloads_override",
)
