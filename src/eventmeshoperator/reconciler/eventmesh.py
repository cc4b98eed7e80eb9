"""The reconcile pass of an EventMesh: install Knative Eventing and the
Kafka broker, scaled to what the cluster uses.
"""

from __future__ import annotations

__all__ = (
    "EVENTING_CONTROLLER",
    "SCALABLE_WORKLOADS",
    "EventMeshReconciler",
    "ScalableWorkload",
    "ScaleTargets",
)

from collections.abc import Callable, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Protocol

from eventmeshoperator import state
from eventmeshoperator.eventmesh import (
    TRANSPORT_ENCRYPTION,
    EventMesh,
    EventMeshStatus,
)
from eventmeshoperator.manifests import stages as manifest_stages
from eventmeshoperator.manifests import transform
from eventmeshoperator.manifests.eventing import EventingParser
from eventmeshoperator.manifests.kafkabroker import KafkaBrokerParser
from eventmeshoperator.manifests.manifest import (
    ManifestClient,
    all_of,
    by_kind,
    by_name,
)
from eventmeshoperator.manifests.manifests import ManifestLoadError
from eventmeshoperator.manifests.parser import CERT_MANAGER_CRD, CrdExists
from eventmeshoperator.manifests.version import DeploymentLister, VersionError
from eventmeshoperator.reconciler.errors import (
    DeploymentsNotReadyError,
    NonRecoverableError,
)
from eventmeshoperator.reconciler.stages import (
    ReconcileContext,
    ReconcileResult,
    StageOutcome,
    Stages,
)

EVENTING_CONTROLLER = "eventing-controller"
"""The Deployment used to detect an existing eventing installation."""


class ScaleTargets(Protocol):
    """Replica targets of the data planes that scale to zero."""

    def imc_scale_target(self) -> int: ...

    def mt_broker_scale_target(self) -> int: ...


@dataclass(frozen=True)
class ScalableWorkload:
    """A Deployment whose replicas follow a scale target.

    ``autoscaled`` workloads are governed by a HorizontalPodAutoscaler
    named by `eventmeshoperator.state.hpa_name`.
    """

    name: str
    target: Callable[[ScaleTargets], int]
    autoscaled: bool = False


SCALABLE_WORKLOADS: tuple[ScalableWorkload, ...] = (
    ScalableWorkload("imc-controller", lambda s: s.imc_scale_target()),
    ScalableWorkload("imc-dispatcher", lambda s: s.imc_scale_target()),
    ScalableWorkload(
        "mt-broker-controller", lambda s: s.mt_broker_scale_target()
    ),
    ScalableWorkload(
        "mt-broker-ingress",
        lambda s: s.mt_broker_scale_target(),
        autoscaled=True,
    ),
    ScalableWorkload(
        "mt-broker-filter",
        lambda s: s.mt_broker_scale_target(),
        autoscaled=True,
    ),
)


class EventMeshReconciler:
    """Runs the reconcile stages for one EventMesh at a time.

    Parameters
    ----------
    scaler
        Source of the scale targets, usually a
        `eventmeshoperator.scaler.Scaler`.
    crd_exists : callable
        Whether a named CRD is installed.
    deployment_lister
        Cached read access to the Deployments of the system namespace.
    client : `eventmeshoperator.manifests.manifest.ManifestClient`
        Applies and deletes resources.
    data_path : `str` or `pathlib.Path`, optional
        Root of the release manifests.
    workloads : sequence of `ScalableWorkload`, optional
        The workloads to scale; `SCALABLE_WORKLOADS` by default.
    """

    def __init__(
        self,
        *,
        scaler: ScaleTargets,
        crd_exists: CrdExists,
        deployment_lister: DeploymentLister,
        client: ManifestClient,
        data_path: str | Path | None = None,
        workloads: Sequence[ScalableWorkload] = SCALABLE_WORKLOADS,
    ) -> None:
        self.scaler = scaler
        self.crd_exists = crd_exists
        self.deployment_lister = deployment_lister
        self.client = client
        self.workloads = tuple(workloads)
        self.parsers = (
            EventingParser(
                crd_exists=crd_exists,
                deployment_lister=deployment_lister,
                data_path=data_path,
            ),
            KafkaBrokerParser(
                crd_exists=crd_exists,
                deployment_lister=deployment_lister,
                data_path=data_path,
            ),
        )
        self.stages = Stages(
            [
                ("check_preconditions", self.check_preconditions),
                ("load_manifests", self.load_manifests),
                ("apply_scaling", self.apply_scaling),
                ("attach_owner", self.attach_owner),
                ("transform", self.transform_manifests),
                ("install", self.install),
                ("verify_deployments", self.verify_deployments),
            ]
        )

    def reconcile(
        self,
        eventmesh: EventMesh,
        body: dict[str, Any],
        status: EventMeshStatus,
        logger: Any = None,
    ) -> ReconcileResult:
        """Run one pass, recording the outcome in ``status``.

        Parameters
        ----------
        eventmesh : `eventmeshoperator.eventmesh.EventMesh`
            The parsed EventMesh.
        body : `dict`
            The raw EventMesh; owner of every installed resource.
        status : `eventmeshoperator.eventmesh.EventMeshStatus`
            Status conditions, updated in place.
        logger : optional
            Logger, typically the one of the kopf handler.

        Returns
        -------
        result : `eventmeshoperator.reconciler.stages.ReconcileResult`
            How the pass ended. Exceptions other than the stage markers
            propagate.
        """
        status.initialize_conditions()
        context = ReconcileContext(
            eventmesh=eventmesh, body=body, status=status, logger=logger
        )
        result = self.stages.execute(context)
        if result.outcome is StageOutcome.CONTINUE:
            status.mark_install_succeeded()
            status.mark_deployments_available()
        elif result.outcome is StageOutcome.TERMINAL:
            status.mark_install_failed("ReconcileFailed", str(result.error))
        return result

    def check_preconditions(self, context: ReconcileContext) -> StageOutcome:
        eventmesh = context.eventmesh
        controller = self.deployment_lister.get(
            EVENTING_CONTROLLER, state.namespace
        )
        if controller is not None and not _is_owned_by(
            controller, eventmesh.uid
        ):
            context.status.mark_install_failed(
                "EventingAlreadyInstalled",
                f"Deployment {state.namespace}/{EVENTING_CONTROLLER} exists "
                "and is not owned by this EventMesh",
            )
            return StageOutcome.SOFT_STOP

        if (
            not eventmesh.spec.is_disabled_transport_encryption()
            and not self.crd_exists(CERT_MANAGER_CRD)
        ):
            value = eventmesh.spec.features[TRANSPORT_ENCRYPTION]
            context.status.mark_install_failed(
                "CertManagerNotInstalled",
                f"{TRANSPORT_ENCRYPTION} is set to {value}, but cert-manager "
                "is not installed",
            )
            return StageOutcome.SOFT_STOP

        return StageOutcome.CONTINUE

    def load_manifests(self, context: ReconcileContext) -> None:
        for parser in self.parsers:
            step = manifest_stages.append_from_parser(parser)
            try:
                step(context.manifests, context.eventmesh, context.logger)
            except (ManifestLoadError, VersionError) as exc:
                raise NonRecoverableError(
                    f"failed to load manifests: {exc}"
                ) from exc

    def apply_scaling(self, context: ReconcileContext) -> None:
        manifests = context.manifests
        overrides = context.eventmesh.spec.overrides
        namespace = state.namespace
        for workload in self.workloads:
            override = overrides.workload(workload.name)
            if override is not None and override.replicas is not None:
                context.logger.debug(
                    f"Not scaling {workload.name}, replicas are overridden"
                )
                continue

            target = workload.target(self.scaler)
            context.logger.debug(f"Scale target of {workload.name}: {target}")
            if not workload.autoscaled:
                manifests.add_transformers(
                    transform.scale(
                        "apps/v1", "Deployment", workload.name, namespace, target
                    )
                )
                continue

            hpa = state.hpa_name(workload.name)
            if target == 0:
                # An HPA cannot scale to zero, so it is removed and the
                # Deployment is scaled directly.
                manifests.move_to_delete(
                    all_of(by_kind("HorizontalPodAutoscaler"), by_name(hpa))
                )
                manifests.add_transformers(
                    transform.scale(
                        "apps/v1", "Deployment", workload.name, namespace, 0
                    )
                )
            else:
                manifests.add_transformers(
                    transform.hpa_replicas(hpa, namespace, target)
                )

    def attach_owner(self, context: ReconcileContext) -> None:
        context.manifests.add_transformers(transform.inject_owner(context.body))

    def transform_manifests(self, context: ReconcileContext) -> None:
        try:
            manifest_stages.transform(
                context.manifests, context.eventmesh, context.logger
            )
        except transform.TransformError as exc:
            raise NonRecoverableError(str(exc)) from exc

    def install(self, context: ReconcileContext) -> None:
        step = manifest_stages.install(self.client)
        try:
            step(context.manifests, context.eventmesh, context.logger)
        except Exception as exc:
            context.status.mark_install_failed("InstallFailed", str(exc))
            raise

    def verify_deployments(self, context: ReconcileContext) -> StageOutcome:
        not_ready = []
        deployments = context.manifests.to_apply.filter(by_kind("Deployment"))
        for deployment in deployments:
            metadata = deployment.get("metadata", {})
            name = metadata.get("name", "")
            namespace = metadata.get("namespace", state.namespace)
            live = self.deployment_lister.get(name, namespace)
            if live is None:
                context.status.mark_deployments_not_ready(
                    "DeploymentNotFound",
                    f"Deployment {namespace}/{name} not found",
                )
                return StageOutcome.SOFT_STOP
            if not _is_available(live):
                not_ready.append(name)

        if not_ready:
            context.status.mark_deployments_not_ready(
                "DeploymentsNotReady",
                f"Deployments not ready: {', '.join(not_ready)}",
            )
            raise DeploymentsNotReadyError(not_ready)
        return StageOutcome.CONTINUE


def _is_owned_by(obj: dict[str, Any], uid: str) -> bool:
    owner_references = obj.get("metadata", {}).get("ownerReferences") or []
    return any(ref.get("uid") == uid for ref in owner_references)


def _is_available(deployment: dict[str, Any]) -> bool:
    conditions = (deployment.get("status") or {}).get("conditions") or []
    return any(
        c.get("type") == "Available" and c.get("status") == "True"
        for c in conditions
    )
