"""Code intended to run on start-up, before running any handlers."""

__all__ = ("configure_logging", "start_operator", "stop_operator")

import logging
from functools import partial
from typing import Any

import structlog

from eventmeshoperator import state
from eventmeshoperator.informer import Informer
from eventmeshoperator.k8s import (
    DynamicListWatcher,
    create_dynamic_client,
    create_k8sclient,
    crd_exists,
)
from eventmeshoperator.manifests.manifest import ManifestClient
from eventmeshoperator.reconciler.eventmesh import EventMeshReconciler
from eventmeshoperator.resync import global_resync
from eventmeshoperator.scaler import BROKER_CRD_NAME, IMC_CRD_NAME, Scaler
from eventmeshoperator.version import get_version

WATCHED_KINDS = {
    IMC_CRD_NAME: ("messaging.knative.dev/v1", "InMemoryChannel"),
    BROKER_CRD_NAME: ("eventing.knative.dev/v1", "Broker"),
}
"""apiVersion and kind of the resources gated by each CRD."""


def configure_logging(level: int = logging.INFO) -> None:
    """Route structlog through the standard library logging that kopf
    configures.
    """
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.KeyValueRenderer(
                key_order=["timestamp", "level", "logger", "event"]
            ),
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )
    logging.getLogger("eventmeshoperator").setLevel(level)


def start_operator(logger: Any = None) -> None:
    """Create the clients, watches and the reconciler, and store them in
    `eventmeshoperator.state`.
    """
    if logger is None:
        logger = structlog.getLogger(__name__)

    k8s_client = create_k8sclient()
    dynamic_client = create_dynamic_client(k8s_client)
    exists = partial(_crd_exists, k8s_client=k8s_client)

    deployment_informer = Informer(
        DynamicListWatcher(
            dynamic_client,
            api_version="apps/v1",
            kind="Deployment",
            namespace=state.namespace,
        ),
        name="deployments",
    )
    deployment_informer.start()
    if not deployment_informer.wait_for_cache_sync(
        timeout=state.cache_sync_timeout, cancel=state.stopped.is_set
    ):
        logger.warning("Deployment cache has not synced yet")

    def informer_factory(crd_name: str) -> Informer:
        api_version, kind = WATCHED_KINDS[crd_name]
        return Informer(
            DynamicListWatcher(
                dynamic_client, api_version=api_version, kind=kind
            ),
            name=kind.lower(),
        )

    scaler = Scaler(
        informer_factory=informer_factory,
        crd_exists=exists,
        global_resync=partial(global_resync, k8s_client=k8s_client),
        stopped=state.stopped,
    )
    scaler.start_installed()

    state.deployment_informer = deployment_informer
    state.scaler = scaler
    state.reconciler = EventMeshReconciler(
        scaler=scaler,
        crd_exists=exists,
        deployment_lister=deployment_informer.lister(),
        client=ManifestClient(
            dynamic_client, field_manager=state.field_manager
        ),
        data_path=state.data_path,
    )
    logger.info(
        f"Operator {get_version()} started, system namespace "
        f"{state.namespace}"
    )


def stop_operator(logger: Any = None) -> None:
    """Stop the watches started by `start_operator`."""
    if logger is None:
        logger = structlog.getLogger(__name__)

    state.stopped.set()
    if state.scaler is not None:
        state.scaler.stop()
    if state.deployment_informer is not None:
        state.deployment_informer.stop()
    logger.info("Operator stopped")


def _crd_exists(name: str, *, k8s_client: Any) -> bool:
    return crd_exists(name=name, k8s_client=k8s_client)
