"""A list-then-watch cache over a single Kubernetes resource kind.

An `Informer` keeps an in-memory store of every object of one kind, kept up
to date by a background thread that lists the objects once and then follows
a watch. Event handlers are called on that background thread after the store
has been updated, so a handler that lists the store always sees the change
that triggered it.
"""

from __future__ import annotations

__all__ = (
    "AtomicReference",
    "Informer",
    "Lister",
    "ListWatcher",
    "ResourceEventHandler",
    "object_key",
)

import copy
import threading
from collections.abc import Callable, Iterator, Mapping
from dataclasses import dataclass
from typing import Any, Generic, Protocol, TypeVar

import structlog
from kubernetes.client.exceptions import ApiException

T = TypeVar("T")


class ListWatcher(Protocol):
    """The cluster access an `Informer` needs for one resource kind."""

    def list(self) -> tuple[list[dict[str, Any]], str]:
        """Return all objects and the collection's resourceVersion."""

    def watch(
        self, resource_version: str, stop: threading.Event
    ) -> Iterator[tuple[str, dict[str, Any]]]:
        """Yield ``(event_type, object)`` pairs after ``resource_version``.

        The iterator ends when the server closes the watch or ``stop`` is
        set. Event types are ``ADDED``, ``MODIFIED`` and ``DELETED``.
        """

    def close(self) -> None:
        """Interrupt a watch that is waiting for events."""


@dataclass
class ResourceEventHandler:
    """Callbacks for changes observed by an `Informer`.

    Any of the callbacks may be left unset.
    """

    on_add: Callable[[dict[str, Any]], None] | None = None
    on_update: Callable[[dict[str, Any], dict[str, Any]], None] | None = None
    on_delete: Callable[[dict[str, Any]], None] | None = None


class AtomicReference(Generic[T]):
    """A reference that is swapped as a whole and read without waiting on
    anything but the swap itself.
    """

    def __init__(self, value: T | None = None) -> None:
        self._value = value
        self._lock = threading.Lock()

    def get(self) -> T | None:
        with self._lock:
            return self._value

    def set(self, value: T | None) -> None:
        with self._lock:
            self._value = value


def object_key(obj: Mapping[str, Any]) -> str:
    """Return the ``namespace/name`` (or ``name``) store key of an object."""
    metadata = obj.get("metadata", {})
    namespace = metadata.get("namespace")
    name = metadata.get("name", "")
    return f"{namespace}/{name}" if namespace else name


class Lister:
    """Read-only view of an informer's store.

    Returned objects are the cached ones and must not be mutated.
    """

    def __init__(self, informer: Informer) -> None:
        self._informer = informer

    def list(
        self, selector: Mapping[str, str] | None = None
    ) -> list[dict[str, Any]]:
        """List cached objects, optionally restricted to those carrying all
        labels in ``selector``.
        """
        objs = self._informer._snapshot()
        if not selector:
            return objs
        return [
            obj
            for obj in objs
            if all(
                obj.get("metadata", {}).get("labels", {}).get(k) == v
                for k, v in selector.items()
            )
        ]

    def get(
        self, name: str, namespace: str | None = None
    ) -> dict[str, Any] | None:
        """Return the cached object with the given name, or `None`."""
        key = f"{namespace}/{name}" if namespace else name
        return self._informer._lookup(key)


class Informer:
    """A cache of one resource kind kept current by a background watch.

    Parameters
    ----------
    list_watcher : `ListWatcher`
        Cluster access for the watched kind.
    name : `str`
        Name used in logs and for the background thread.
    backoff : `float`
        Seconds to wait before listing again after a failed list or watch.
    """

    def __init__(
        self,
        list_watcher: ListWatcher,
        *,
        name: str,
        backoff: float = 5.0,
    ) -> None:
        self.name = name
        self._list_watcher = list_watcher
        self._backoff = backoff
        self._store: dict[str, dict[str, Any]] = {}
        self._store_lock = threading.Lock()
        self._handlers: list[ResourceEventHandler] = []
        self._synced = threading.Event()
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None
        self._logger = structlog.get_logger(__name__).bind(informer=name)

    def add_event_handler(self, handler: ResourceEventHandler) -> None:
        """Register a handler. Handlers must be added before `start`."""
        self._handlers.append(handler)

    def lister(self) -> Lister:
        return Lister(self)

    def has_synced(self) -> bool:
        """Whether the initial list has been stored and dispatched."""
        return self._synced.is_set()

    def start(self) -> None:
        if self._thread is not None:
            return
        self._thread = threading.Thread(
            target=self._run, name=f"informer-{self.name}", daemon=True
        )
        self._thread.start()

    def stop(self, timeout: float = 5.0) -> None:
        """Stop the watch and wait up to ``timeout`` seconds for the
        background thread to exit.
        """
        self._stop.set()
        self._list_watcher.close()
        thread = self._thread
        if thread is None or thread is threading.current_thread():
            return
        thread.join(timeout)
        if thread.is_alive():
            self._logger.warning(
                f"Informer thread did not exit within {timeout}s"
            )

    @property
    def stopped(self) -> bool:
        return self._stop.is_set()

    def wait_for_cache_sync(
        self,
        *,
        timeout: float | None = None,
        cancel: Callable[[], bool] | None = None,
        interval: float = 0.1,
    ) -> bool:
        """Block until the cache has synced.

        Returns `False` if the informer is stopped, ``cancel`` returns
        `True`, or ``timeout`` seconds elapse first.
        """
        waited = 0.0
        while not self._synced.wait(interval):
            if self._stop.is_set() or (cancel is not None and cancel()):
                return False
            waited += interval
            if timeout is not None and waited >= timeout:
                return False
        return True

    def _snapshot(self) -> list[dict[str, Any]]:
        with self._store_lock:
            return list(self._store.values())

    def _lookup(self, key: str) -> dict[str, Any] | None:
        with self._store_lock:
            return self._store.get(key)

    def _run(self) -> None:
        while not self._stop.is_set():
            try:
                resource_version = self._relist()
                self._synced.set()
                self._follow(resource_version)
            except ApiException as exc:
                if self._stop.is_set():
                    break
                if exc.status == 410:
                    self._logger.debug("Watch expired, listing again")
                    continue
                self._logger.warning(
                    f"Watch of {self.name} failed: {exc.status} {exc.reason}"
                )
                self._stop.wait(self._backoff)
            except Exception:
                if self._stop.is_set():
                    # Closing the stream on stop interrupts a blocked read.
                    break
                self._logger.exception(f"Watch of {self.name} failed")
                self._stop.wait(self._backoff)
        self._logger.debug("Informer stopped")

    def _relist(self) -> str:
        """List again and replay the difference to the store one object at a
        time, so handlers that count the store see every step.
        """
        items, resource_version = self._list_watcher.list()
        fresh = {object_key(obj): obj for obj in items}
        for key, obj in fresh.items():
            with self._store_lock:
                old = self._store.get(key)
                self._store[key] = obj
            if old is None:
                self._notify_add(obj)
            elif _resource_version(old) != _resource_version(obj):
                self._notify_update(old, obj)

        with self._store_lock:
            gone = [key for key in self._store if key not in fresh]
        for key in gone:
            with self._store_lock:
                old = self._store.pop(key, None)
            if old is not None:
                self._notify_delete(old)
        return resource_version

    def _follow(self, resource_version: str) -> None:
        for event_type, obj in self._list_watcher.watch(
            resource_version, self._stop
        ):
            if self._stop.is_set():
                return
            key = object_key(obj)
            if event_type in ("ADDED", "MODIFIED"):
                with self._store_lock:
                    old = self._store.get(key)
                    self._store[key] = obj
                if old is None:
                    self._notify_add(obj)
                else:
                    self._notify_update(old, obj)
            elif event_type == "DELETED":
                with self._store_lock:
                    old = self._store.pop(key, None)
                self._notify_delete(old if old is not None else obj)

    def _notify_add(self, obj: dict[str, Any]) -> None:
        for handler in self._handlers:
            if handler.on_add is not None:
                self._call(handler.on_add, copy.deepcopy(obj))

    def _notify_update(
        self, old: dict[str, Any], new: dict[str, Any]
    ) -> None:
        for handler in self._handlers:
            if handler.on_update is not None:
                self._call(
                    handler.on_update, copy.deepcopy(old), copy.deepcopy(new)
                )

    def _notify_delete(self, obj: dict[str, Any]) -> None:
        for handler in self._handlers:
            if handler.on_delete is not None:
                self._call(handler.on_delete, copy.deepcopy(obj))

    def _call(self, func: Callable[..., None], *args: Any) -> None:
        try:
            func(*args)
        except Exception:
            self._logger.exception("Event handler failed")


def _resource_version(obj: Mapping[str, Any]) -> str | None:
    return obj.get("metadata", {}).get("resourceVersion")
