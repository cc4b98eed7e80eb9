"""Watches over resource kinds whose CRD may not be installed yet."""

from __future__ import annotations

__all__ = (
    "DynamicInformer",
    "EventHandlerFunc",
    "InformerStartError",
    "PollOutcome",
    "poll_until",
)

import enum
import threading
import time
from collections.abc import Callable
from typing import Any

import structlog

from eventmeshoperator import state
from eventmeshoperator.informer import (
    AtomicReference,
    Informer,
    Lister,
    ResourceEventHandler,
)

EventHandlerFunc = Callable[[Informer], ResourceEventHandler]
"""Builds the event handler attached to a freshly created informer."""

InformerFactory = Callable[[], Informer]


class InformerStartError(RuntimeError):
    """Raised when a dynamic informer could not be started."""


class PollOutcome(enum.Enum):
    """How a `poll_until` loop ended."""

    SUCCEEDED = "succeeded"
    TIMED_OUT = "timed out"
    CANCELLED = "cancelled"


def poll_until(
    condition: Callable[[], bool],
    *,
    interval: float,
    cancel: Callable[[], bool],
    timeout: float | None = None,
    logger: Any | None = None,
) -> PollOutcome:
    """Call ``condition`` every ``interval`` seconds until it returns `True`.

    A ``condition`` that raises counts as not yet satisfied.
    """
    if logger is None:
        logger = structlog.get_logger(__name__)
    deadline = None if timeout is None else time.monotonic() + timeout
    while True:
        if cancel():
            return PollOutcome.CANCELLED
        try:
            if condition():
                return PollOutcome.SUCCEEDED
        except Exception as exc:
            logger.debug(f"Poll condition failed: {exc}")
        if deadline is not None and time.monotonic() >= deadline:
            return PollOutcome.TIMED_OUT
        _sleep(interval, cancel)


def _sleep(seconds: float, cancel: Callable[[], bool]) -> None:
    # Sleep in short slices so that cancellation is noticed promptly.
    end = time.monotonic() + seconds
    while not cancel():
        remaining = end - time.monotonic()
        if remaining <= 0:
            return
        time.sleep(min(remaining, 0.05))


class DynamicInformer:
    """An informer that only runs while its CRD is installed.

    `start` and `stop` are serialized by a lifecycle lock. The published
    lister lives in its own `AtomicReference` so that `lister` never waits
    on a start or stop in progress.

    Parameters
    ----------
    crd_name : `str`
        Name of the gating CustomResourceDefinition, for example
        ``brokers.eventing.knative.dev``.
    factory : callable
        Creates a new, unstarted `Informer` for the watched kind.
    crd_exists : callable
        Returns whether the named CRD is installed.
    poll_interval : `float`, optional
        Seconds between CRD checks. Defaults to
        `eventmeshoperator.state.crd_poll_interval`.
    poll_timeout : `float`, optional
        Give up waiting for the CRD after this many seconds. Waits until
        cancelled by default.
    sync_timeout : `float`, optional
        Seconds to wait for the initial cache fill.
    """

    def __init__(
        self,
        crd_name: str,
        factory: InformerFactory,
        crd_exists: Callable[[str], bool],
        *,
        poll_interval: float | None = None,
        poll_timeout: float | None = None,
        sync_timeout: float | None = None,
    ) -> None:
        self.crd_name = crd_name
        self._factory = factory
        self._crd_exists = crd_exists
        self._poll_interval = (
            state.crd_poll_interval if poll_interval is None else poll_interval
        )
        self._poll_timeout = poll_timeout
        self._sync_timeout = (
            state.cache_sync_timeout if sync_timeout is None else sync_timeout
        )
        self._cancel: AtomicReference[threading.Event] = AtomicReference()
        self._starting: AtomicReference[threading.Event] = AtomicReference()
        self._informer: AtomicReference[Informer] = AtomicReference()
        self._lister: AtomicReference[Lister] = AtomicReference()
        self._lock = threading.Lock()
        self._logger = structlog.get_logger(__name__).bind(
            component="DynamicInformer", resource=crd_name
        )

    def start(
        self, stopped: threading.Event, event_handler_fn: EventHandlerFunc
    ) -> None:
        """Wait for the CRD, start watching and publish the lister.

        Parameters
        ----------
        stopped : `threading.Event`
            Set when the operator shuts down.
        event_handler_fn : callable
            Builds the event handler attached to the new informer.

        Raises
        ------
        InformerStartError
            If the wait for the CRD or the cache sync is cancelled, times out,
            or fails. Nothing is published in that case.
        """
        with self._lock:
            if self._cancel.get() is not None:
                self._logger.debug("Informer already started, skipping start")
                return

            cancel = threading.Event()

            def cancelled() -> bool:
                return cancel.is_set() or stopped.is_set()

            informer = self._factory()
            informer.add_event_handler(event_handler_fn(informer))

            # A stop arriving while we wait cancels the pending start.
            self._starting.set(cancel)
            try:
                self._logger.debug(
                    f"Waiting for {self.crd_name} CRD to be installed"
                )
                outcome = poll_until(
                    lambda: self._crd_exists(self.crd_name),
                    interval=self._poll_interval,
                    cancel=cancelled,
                    timeout=self._poll_timeout,
                    logger=self._logger,
                )
                if outcome is not PollOutcome.SUCCEEDED:
                    cancel.set()
                    raise InformerStartError(
                        f"could not check if {self.crd_name} CRD is "
                        f"installed: {outcome.value}"
                    )

                informer.start()
                if not informer.wait_for_cache_sync(
                    timeout=self._sync_timeout, cancel=cancelled
                ):
                    informer.stop()
                    cancel.set()
                    self._logger.error("Failed to sync dynamic informer cache")
                    raise InformerStartError(
                        f"failed to sync dynamic informer for {self.crd_name}"
                    )
            finally:
                self._starting.set(None)

            self._informer.set(informer)
            self._lister.set(informer.lister())
            # The cancel event is published last since it guards start/stop.
            self._cancel.set(cancel)
            self._logger.info("Started dynamic informer")

    def stop(self) -> None:
        """Stop watching and clear the published lister."""
        pending = self._starting.get()
        if pending is not None:
            pending.set()
        with self._lock:
            cancel = self._cancel.get()
            if cancel is None:
                self._logger.debug(
                    "Dynamic informer has not been started, nothing to stop"
                )
                return

            cancel.set()
            informer = self._informer.get()
            if informer is not None:
                informer.stop()
            self._informer.set(None)
            self._lister.set(None)
            self._cancel.set(None)
            self._logger.info("Stopped dynamic informer")

    @property
    def started(self) -> bool:
        return self._cancel.get() is not None

    def lister(self) -> Lister | None:
        """Return the published lister, or `None` while not started."""
        return self._lister.get()
