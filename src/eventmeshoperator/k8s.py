"""Helpers for interacting with Kubernetes APIs."""

__all__ = (
    "DynamicListWatcher",
    "create_dynamic_client",
    "create_k8sclient",
    "crd_exists",
    "list_eventmeshes",
    "patch_eventmesh_annotations",
)

import threading
from collections.abc import Iterator
from typing import Any

import kubernetes
from kubernetes.client.rest import ApiException
from kubernetes.dynamic import DynamicClient

from eventmeshoperator import state
from eventmeshoperator.informer import AtomicReference


def create_k8sclient() -> kubernetes.client:
    """Get a Kubernetes client configured with available cluster
    authentication.

    If in-cluster authentication is available, that is used. Otherwise
    this function falls-back to using a kubectl config file, which is
    appropriate for development.
    """
    try:
        kubernetes.config.load_incluster_config()
    except Exception:
        kubernetes.config.load_kube_config()
    kubernetes.client.configuration.assert_hostname = False
    return kubernetes.client


def create_dynamic_client(k8s_client: Any) -> DynamicClient:
    """Create a `DynamicClient` for resources addressed by apiVersion and
    kind.
    """
    return DynamicClient(k8s_client.ApiClient())


def crd_exists(*, name: str, k8s_client: Any) -> bool:
    """Check whether a CustomResourceDefinition is installed.

    Parameters
    ----------
    name : `str`
        Name of the CRD, for example ``certificates.cert-manager.io``.
    k8s_client
        A Kubernetes client (see `create_k8sclient`).

    Returns
    -------
    exists : `bool`
        `True` if the CRD exists. Errors other than not-found are raised.
    """
    api = k8s_client.ApiextensionsV1Api()
    try:
        api.read_custom_resource_definition(name=name)
    except ApiException as exc:
        if exc.status == 404:
            return False
        raise
    return True


def list_eventmeshes(*, k8s_client: Any) -> list[dict[str, Any]]:
    """List the EventMesh resources in all namespaces."""
    api = k8s_client.CustomObjectsApi()
    response = api.list_cluster_custom_object(
        group=state.group,
        version=state.version,
        plural=state.plural,
    )
    return response["items"]


def patch_eventmesh_annotations(
    *,
    name: str,
    namespace: str,
    annotations: dict[str, str],
    k8s_client: Any,
) -> None:
    """Merge ``annotations`` into an EventMesh's metadata."""
    api = k8s_client.CustomObjectsApi()
    api.patch_namespaced_custom_object(
        group=state.group,
        version=state.version,
        namespace=namespace,
        plural=state.plural,
        name=name,
        body={"metadata": {"annotations": annotations}},
    )


class DynamicListWatcher:
    """Lists and watches one kind through the dynamic client.

    Parameters
    ----------
    dynamic_client : `kubernetes.dynamic.DynamicClient`
        The client (see `create_dynamic_client`).
    api_version : `str`
        The apiVersion of the kind, for example ``eventing.knative.dev/v1``.
    kind : `str`
        The kind, for example ``Broker``.
    namespace : `str`, optional
        Restrict the watch to one namespace. All namespaces by default.
    timeout_seconds : `int`, optional
        Server-side timeout of a single watch request.
    """

    def __init__(
        self,
        dynamic_client: DynamicClient,
        *,
        api_version: str,
        kind: str,
        namespace: str | None = None,
        timeout_seconds: int | None = None,
    ) -> None:
        self._client = dynamic_client
        self._api_version = api_version
        self._kind = kind
        self._namespace = namespace
        self._timeout_seconds = (
            state.watch_timeout if timeout_seconds is None else timeout_seconds
        )
        self._watcher: AtomicReference[kubernetes.watch.Watch] = (
            AtomicReference()
        )
        self._response: AtomicReference[Any] = AtomicReference()

    def _resource(self) -> Any:
        return self._client.resources.get(
            api_version=self._api_version, kind=self._kind
        )

    def list(self) -> tuple[list[dict[str, Any]], str]:
        response = self._client.get(
            self._resource(), namespace=self._namespace
        ).to_dict()
        items = response.get("items") or []
        for item in items:
            # List items omit apiVersion and kind.
            item.setdefault("apiVersion", self._api_version)
            item.setdefault("kind", self._kind)
        return items, response["metadata"]["resourceVersion"]

    def watch(
        self, resource_version: str, stop: threading.Event
    ) -> Iterator[tuple[str, dict[str, Any]]]:
        resource = self._resource()
        watcher = kubernetes.watch.Watch()

        # Keeps the response so that close() can shut it down.
        def get(**kwargs):
            response = self._client.get(resource, **kwargs)
            self._response.set(response)
            if stop.is_set():
                # Stopped while the request was in flight.
                response.shutdown()
            return response

        self._watcher.set(watcher)
        try:
            for event in watcher.stream(
                get,
                namespace=self._namespace,
                resource_version=resource_version,
                serialize=False,
                timeout_seconds=self._timeout_seconds,
            ):
                if stop.is_set():
                    return
                if event is None:
                    continue
                yield event["type"], event["raw_object"]
        finally:
            self._watcher.set(None)
            self._response.set(None)
            watcher.stop()

    def close(self) -> None:
        """Stop the current watch and shut down its connection so that a
        read waiting for the next event returns.
        """
        watcher = self._watcher.get()
        if watcher is not None:
            watcher.stop()
        response = self._response.get()
        if response is None:
            return
        try:
            response.shutdown()
        except (OSError, RuntimeError, ValueError):
            # The connection was already shut down or released.
            pass
