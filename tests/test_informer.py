"""Tests for the eventmeshoperator.informer module."""

from __future__ import annotations

import threading
from typing import Any, Iterator

from conftest import FakeListWatcher, make_object, wait_for
from kubernetes.client.exceptions import ApiException

from eventmeshoperator.informer import (
    AtomicReference,
    Informer,
    ResourceEventHandler,
    object_key,
)


class Recorder:
    def __init__(self) -> None:
        self.events: list[tuple[str, Any]] = []

    def handler(self) -> ResourceEventHandler:
        return ResourceEventHandler(
            on_add=lambda obj: self.events.append(
                ("add", obj["metadata"]["name"])
            ),
            on_update=lambda old, new: self.events.append(
                ("update", new["metadata"]["name"])
            ),
            on_delete=lambda obj: self.events.append(
                ("delete", obj["metadata"]["name"])
            ),
        )


def test_object_key() -> None:
    assert object_key(make_object("Broker", "b", "ns")) == "ns/b"
    assert object_key(make_object("Namespace", "ns", None)) == "ns"


def test_atomic_reference() -> None:
    ref: AtomicReference[str] = AtomicReference()
    assert ref.get() is None
    ref.set("lister")
    assert ref.get() == "lister"
    ref.set(None)
    assert ref.get() is None


def test_initial_list_is_synced_and_dispatched() -> None:
    list_watcher = FakeListWatcher(
        [make_object("Broker", "a"), make_object("Broker", "b")]
    )
    recorder = Recorder()
    informer = Informer(list_watcher, name="brokers")
    informer.add_event_handler(recorder.handler())
    informer.start()
    try:
        assert informer.wait_for_cache_sync(timeout=5)
        assert informer.has_synced()
        assert sorted(recorder.events) == [("add", "a"), ("add", "b")]
        names = sorted(o["metadata"]["name"] for o in informer.lister().list())
        assert names == ["a", "b"]
        assert informer.lister().get("a", "default") is not None
        assert informer.lister().get("missing", "default") is None
    finally:
        informer.stop()


def test_store_is_updated_before_handlers_run() -> None:
    list_watcher = FakeListWatcher()
    informer = Informer(list_watcher, name="channels")
    seen: list[int] = []
    informer.add_event_handler(
        ResourceEventHandler(
            on_add=lambda obj: seen.append(len(informer.lister().list())),
            on_delete=lambda obj: seen.append(len(informer.lister().list())),
        )
    )
    informer.start()
    try:
        assert informer.wait_for_cache_sync(timeout=5)
        list_watcher.send("ADDED", make_object("InMemoryChannel", "c1"))
        assert wait_for(lambda: len(seen) == 1)
        list_watcher.send("DELETED", make_object("InMemoryChannel", "c1"))
        assert wait_for(lambda: len(seen) == 2)
        assert seen == [1, 0]
    finally:
        informer.stop()


def test_watch_events() -> None:
    list_watcher = FakeListWatcher()
    recorder = Recorder()
    informer = Informer(list_watcher, name="brokers")
    informer.add_event_handler(recorder.handler())
    informer.start()
    try:
        assert informer.wait_for_cache_sync(timeout=5)
        list_watcher.send("ADDED", make_object("Broker", "a"))
        list_watcher.send(
            "MODIFIED", make_object("Broker", "a", resource_version="2")
        )
        list_watcher.send("DELETED", make_object("Broker", "a"))
        assert wait_for(lambda: len(recorder.events) == 3)
        assert recorder.events == [
            ("add", "a"),
            ("update", "a"),
            ("delete", "a"),
        ]
        assert informer.lister().list() == []
    finally:
        informer.stop()


def test_gone_watch_relists_and_diffs() -> None:
    list_watcher = FakeListWatcher(
        [make_object("Broker", "kept"), make_object("Broker", "removed")]
    )
    recorder = Recorder()
    informer = Informer(list_watcher, name="brokers")
    informer.add_event_handler(recorder.handler())
    informer.start()
    try:
        assert informer.wait_for_cache_sync(timeout=5)
        list_watcher.items = [
            make_object("Broker", "kept", resource_version="5"),
            make_object("Broker", "new"),
        ]
        list_watcher.fail(ApiException(status=410, reason="Gone"))
        assert wait_for(lambda: len(recorder.events) == 5)
        assert sorted(recorder.events[2:]) == [
            ("add", "new"),
            ("delete", "removed"),
            ("update", "kept"),
        ]
        assert list_watcher.list_calls == 2
    finally:
        informer.stop()


def test_failing_handler_does_not_stop_informer() -> None:
    list_watcher = FakeListWatcher()
    recorder = Recorder()
    informer = Informer(list_watcher, name="brokers")

    def fail(obj: dict[str, Any]) -> None:
        raise RuntimeError("boom")

    informer.add_event_handler(ResourceEventHandler(on_add=fail))
    informer.add_event_handler(recorder.handler())
    informer.start()
    try:
        assert informer.wait_for_cache_sync(timeout=5)
        list_watcher.send("ADDED", make_object("Broker", "a"))
        assert wait_for(lambda: recorder.events == [("add", "a")])
    finally:
        informer.stop()


def test_wait_for_cache_sync_cancelled() -> None:
    informer = Informer(FakeListWatcher(), name="never-started")
    assert not informer.wait_for_cache_sync(cancel=lambda: True)
    assert not informer.wait_for_cache_sync(timeout=0.05)


class IdleListWatcher:
    """A watch that sees no events and returns only once closed."""

    def __init__(self) -> None:
        self.closed = threading.Event()

    def list(self) -> tuple[list[dict[str, Any]], str]:
        return [], "1"

    def watch(
        self, resource_version: str, stop: threading.Event
    ) -> Iterator[tuple[str, dict[str, Any]]]:
        self.closed.wait()
        yield from ()

    def close(self) -> None:
        self.closed.set()


def informer_threads() -> list[str]:
    return [
        thread.name
        for thread in threading.enumerate()
        if thread.name.startswith("informer-")
    ]


def test_stop_interrupts_idle_watch() -> None:
    list_watcher = IdleListWatcher()
    informer = Informer(list_watcher, name="idle")
    informer.start()
    assert informer.wait_for_cache_sync(timeout=5)
    assert "informer-idle" in informer_threads()

    informer.stop(timeout=5)
    assert list_watcher.closed.is_set()
    assert "informer-idle" not in informer_threads()


def test_stop_before_start_closes_list_watcher() -> None:
    list_watcher = FakeListWatcher()
    Informer(list_watcher, name="unused").stop()
    assert list_watcher.closed
