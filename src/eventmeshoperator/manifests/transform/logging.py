"""Transformers that set the log level of the eventing components."""

from __future__ import annotations

__all__ = (
    "convert_to_logback_log_level",
    "convert_to_zap_log_level",
    "eventing_core_logging",
    "kafka_logging",
)

import json
import re
from typing import Any

from eventmeshoperator.eventmesh import LOG_LEVELS
from eventmeshoperator.manifests.manifest import Transformer
from eventmeshoperator.manifests.transform.common import (
    TransformError,
    is_config_map,
)
from eventmeshoperator.manifests.transform.configmap import config_data

EVENTING_LOGGING_CONFIG_MAP = "config-logging"
KAFKA_LOGGING_CONFIG_MAP = "kafka-config-logging"

_ZAP_LEVELS = {
    "trace": "debug",
    "debug": "debug",
    "info": "info",
    "warn": "warn",
    "error": "error",
    "fatal": "fatal",
}

# zap's production configuration, used when config-logging has none.
_ZAP_PRODUCTION_CONFIG: dict[str, Any] = {
    "level": "info",
    "development": False,
    "sampling": {"initial": 100, "thereafter": 100},
    "encoding": "json",
    "outputPaths": ["stdout"],
    "errorOutputPaths": ["stderr"],
    "encoderConfig": {
        "timeKey": "ts",
        "levelKey": "level",
        "nameKey": "logger",
        "callerKey": "caller",
        "messageKey": "msg",
        "stacktraceKey": "stacktrace",
    },
}

_ROOT_LEVEL = re.compile(r'(<root\s+level=")[^"]+(")')


def convert_to_zap_log_level(log_level: str) -> str:
    try:
        return _ZAP_LEVELS[log_level.lower()]
    except KeyError:
        raise TransformError(f"unknown log level {log_level}") from None


def convert_to_logback_log_level(log_level: str) -> str:
    if log_level.lower() in LOG_LEVELS:
        return log_level.upper()
    raise TransformError(f"unknown log level {log_level}")


def eventing_core_logging(log_level: str) -> Transformer:
    """Set the component log levels and the zap level in the eventing
    ``config-logging`` ConfigMap.
    """

    def transform(resource: dict[str, Any]) -> None:
        if not is_config_map(resource, EVENTING_LOGGING_CONFIG_MAP):
            return

        level = convert_to_zap_log_level(log_level)
        data = config_data(resource)

        for key in data:
            if key.startswith("loglevel."):
                data[key] = level

        zap_config = dict(_ZAP_PRODUCTION_CONFIG)
        if data.get("zap-logger-config"):
            try:
                zap_config.update(json.loads(data["zap-logger-config"]))
            except json.JSONDecodeError as exc:
                raise TransformError(
                    f"error parsing zap logging config: {exc}"
                ) from exc
        zap_config["level"] = level
        data["zap-logger-config"] = json.dumps(zap_config, indent=2)

    return transform


def kafka_logging(log_level: str) -> Transformer:
    """Set the root logger level in the logback configuration of the Kafka
    data plane.
    """

    def transform(resource: dict[str, Any]) -> None:
        if not is_config_map(resource, KAFKA_LOGGING_CONFIG_MAP):
            return

        data = config_data(resource)
        config_xml = data.get("config.xml")
        if config_xml is None:
            raise TransformError(
                f"config.xml not found in {KAFKA_LOGGING_CONFIG_MAP} configmap"
            )

        level = convert_to_logback_log_level(log_level)
        if not _ROOT_LEVEL.search(config_xml):
            raise TransformError(
                'could not find <root level="..."> pattern in logging '
                "configuration"
            )
        data["config.xml"] = _ROOT_LEVEL.sub(
            lambda m: f"{m.group(1)}{level}{m.group(2)}", config_xml
        )

    return transform
