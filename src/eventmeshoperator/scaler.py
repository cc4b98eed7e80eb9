"""Replica targets for the data planes that are only needed while resources
of a kind exist in the cluster.
"""

from __future__ import annotations

__all__ = (
    "BROKER_CLASS_ANNOTATION",
    "BROKER_CRD_NAME",
    "IMC_CRD_NAME",
    "MT_CHANNEL_BROKER_CLASS",
    "Scaler",
    "broker_class_filter",
    "handle_only_on_scale_to_zero_or_one_items",
)

import threading
from collections.abc import Callable
from typing import Any

import structlog

from eventmeshoperator.dynamicinformer import (
    DynamicInformer,
    EventHandlerFunc,
    InformerStartError,
)
from eventmeshoperator.informer import Informer, ResourceEventHandler

BROKER_CRD_NAME = "brokers.eventing.knative.dev"
IMC_CRD_NAME = "inmemorychannels.messaging.knative.dev"

BROKER_CLASS_ANNOTATION = "eventing.knative.dev/broker.class"
MT_CHANNEL_BROKER_CLASS = "MTChannelBasedBroker"

FilterFunc = Callable[[dict[str, Any], dict[str, Any]], bool]
ResyncFunc = Callable[[Any], None]


def _broker_class(broker: dict[str, Any]) -> str | None:
    annotations = broker.get("metadata", {}).get("annotations") or {}
    return annotations.get(BROKER_CLASS_ANNOTATION)


def broker_class_filter() -> FilterFunc:
    """Return a filter that lets only brokers of the changed broker's class
    pass.

    A broker without a class annotation belongs to its own "unclassed"
    group: it matches every other broker without the annotation and no
    broker that has one.
    """

    def filter_func(
        changed_broker: dict[str, Any], found_broker: dict[str, Any]
    ) -> bool:
        return _broker_class(changed_broker) == _broker_class(found_broker)

    return filter_func


def handle_only_on_scale_to_zero_or_one_items(
    resync: ResyncFunc, filter_func: FilterFunc | None = None
) -> EventHandlerFunc:
    """Build an event handler that calls ``resync`` only when the first
    matching object appears or the last one disappears.

    Reconciling the whole EventMesh is expensive and its outcome only
    depends on whether there are any objects of a kind, so adding the
    second channel or deleting one of three brokers is not worth a
    reconcile. ``filter_func(changed, candidate)`` narrows the population
    that is counted, for example to brokers of the same class.
    """

    def event_handler_fn(informer: Informer) -> ResourceEventHandler:
        logger = structlog.get_logger(__name__).bind(informer=informer.name)

        def count(changed: dict[str, Any]) -> tuple[int, int] | None:
            try:
                objs = informer.lister().list()
            except Exception as exc:
                logger.warning(f"Failed to list informer resources: {exc}")
                return None
            if filter_func is None:
                return len(objs), len(objs)
            filtered = [obj for obj in objs if filter_func(changed, obj)]
            return len(filtered), len(objs)

        def on_add(new_obj: dict[str, Any]) -> None:
            if not informer.has_synced():
                return
            counts = count(new_obj)
            if counts is None:
                return
            logger.debug(
                f"OnAdd with {counts[0]} objects existing now "
                f"({counts[1]} in total before filtering)"
            )
            if counts[0] == 1:
                resync(new_obj)
            else:
                logger.debug(
                    "Skipping triggering a reconcile, as no meaningful "
                    "change in number of occurrences"
                )

        def on_delete(deleted_obj: dict[str, Any]) -> None:
            counts = count(deleted_obj)
            if counts is None:
                return
            logger.debug(
                f"OnDelete with {counts[0]} objects existing now "
                f"({counts[1]} in total before filtering)"
            )
            if counts[0] == 0:
                resync(deleted_obj)
            else:
                logger.debug(
                    "Skipping triggering a reconcile, as no meaningful "
                    "change in number of occurrences"
                )

        return ResourceEventHandler(on_add=on_add, on_delete=on_delete)

    return event_handler_fn


def _population_target(objs: list[dict[str, Any]]) -> int:
    return 0 if not objs else 1


class Scaler:
    """Computes replica targets from the InMemoryChannels and Brokers that
    exist in the cluster.

    Parameters
    ----------
    informer_factory : callable
        ``informer_factory(crd_name)`` returns a new, unstarted `Informer`
        over the kind defined by that CRD.
    crd_exists : callable
        Returns whether the named CRD is installed.
    global_resync : callable
        Requests a reconcile of every EventMesh. Called with the object
        whose change triggered the request.
    stopped : `threading.Event`
        Set when the operator shuts down.
    """

    def __init__(
        self,
        *,
        informer_factory: Callable[[str], Informer],
        crd_exists: Callable[[str], bool],
        global_resync: ResyncFunc,
        stopped: threading.Event,
        **informer_options: Any,
    ) -> None:
        self._logger = structlog.get_logger(__name__).bind(component="scaler")
        self._stopped = stopped
        self._crd_exists = crd_exists
        self._global_resync = global_resync
        self.imc_informer = DynamicInformer(
            IMC_CRD_NAME,
            lambda: informer_factory(IMC_CRD_NAME),
            crd_exists,
            **informer_options,
        )
        self.broker_informer = DynamicInformer(
            BROKER_CRD_NAME,
            lambda: informer_factory(BROKER_CRD_NAME),
            crd_exists,
            **informer_options,
        )
        self._event_handlers: dict[str, EventHandlerFunc] = {
            IMC_CRD_NAME: handle_only_on_scale_to_zero_or_one_items(
                global_resync
            ),
            BROKER_CRD_NAME: handle_only_on_scale_to_zero_or_one_items(
                global_resync, broker_class_filter()
            ),
        }
        self._informers: dict[str, DynamicInformer] = {
            IMC_CRD_NAME: self.imc_informer,
            BROKER_CRD_NAME: self.broker_informer,
        }
        self._scale_targets: dict[str, Callable[[], int]] = {
            IMC_CRD_NAME: self.imc_scale_target,
            BROKER_CRD_NAME: self.mt_broker_scale_target,
        }

    def imc_scale_target(self) -> int:
        """Return the replica target of the in-memory channel data plane."""
        lister = self.imc_informer.lister()
        if lister is None:
            # No lister published yet, most likely the IMC CRD is not
            # installed.
            return 0

        imcs = lister.list()
        self._logger.debug(f"Found {len(imcs)} in-memory channels")
        return _population_target(imcs)

    def mt_broker_scale_target(self) -> int:
        """Return the replica target of the MT channel-based broker."""
        lister = self.broker_informer.lister()
        if lister is None:
            return 0

        brokers = lister.list()
        mt_brokers = [
            broker
            for broker in brokers
            if _broker_class(broker) == MT_CHANNEL_BROKER_CLASS
        ]
        self._logger.debug(
            f"Found {len(mt_brokers)} mt brokers "
            f"({len(brokers)} brokers in total)"
        )
        return _population_target(mt_brokers)

    def crd_event_handler(self) -> ResourceEventHandler:
        """Return a handler for CustomResourceDefinition events that starts
        and stops the watch of the matching kind.
        """

        def on_add(crd: dict[str, Any]) -> None:
            self.start_informer(crd.get("metadata", {}).get("name", ""))

        def on_delete(crd: dict[str, Any]) -> None:
            self.stop_informer(crd.get("metadata", {}).get("name", ""))

        return ResourceEventHandler(on_add=on_add, on_delete=on_delete)

    def start_informer(self, crd_name: str) -> None:
        """Start the watch gated by ``crd_name``, if it is one of ours.

        Start failures are logged; the next event for the CRD retries.
        """
        informer = self._informers.get(crd_name)
        if informer is None:
            return
        was_started = informer.started
        try:
            informer.start(self._stopped, self._event_handlers[crd_name])
        except InformerStartError as exc:
            self._logger.error(
                f"Failed to register dynamic informer for CRD: {exc}",
                crd=crd_name,
            )
            return
        # Objects listed before the cache synced did not wake anyone up.
        if not was_started and self._scale_targets[crd_name]() > 0:
            self._logger.info(
                "Found existing resources on watch start, requesting resync",
                crd=crd_name,
            )
            self._global_resync(None)

    def start_installed(self) -> None:
        """Start the watches whose CRDs are already installed."""
        for crd_name, informer in self._informers.items():
            if not informer.started and self._crd_exists(crd_name):
                self.start_informer(crd_name)

    def stop_informer(self, crd_name: str) -> None:
        informer = self._informers.get(crd_name)
        if informer is None:
            return
        self._logger.debug("CRD is removed, stopping informer", crd=crd_name)
        informer.stop()

    def stop(self) -> None:
        """Stop all watches."""
        for informer in self._informers.values():
            informer.stop()
