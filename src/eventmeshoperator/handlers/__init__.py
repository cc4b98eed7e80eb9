"""Kopf handlers for the eventmesh-operator."""

__all__ = (
    "configure",
    "handle_crd_event",
    "handle_deployment_event",
    "reconcile_eventmesh",
    "shutdown",
)

from eventmeshoperator.handlers.crdwatcher import handle_crd_event
from eventmeshoperator.handlers.deploymentwatcher import handle_deployment_event
from eventmeshoperator.handlers.eventmesh import reconcile_eventmesh
from eventmeshoperator.handlers.lifecycle import configure, shutdown
