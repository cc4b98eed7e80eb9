"""Ordered, named reconcile stages over a shared context."""

from __future__ import annotations

__all__ = (
    "ReconcileContext",
    "ReconcileResult",
    "Stage",
    "StageOutcome",
    "Stages",
)

import enum
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from typing import Any

import structlog

from eventmeshoperator.eventmesh import EventMesh, EventMeshStatus
from eventmeshoperator.manifests.manifests import Manifests
from eventmeshoperator.reconciler.errors import (
    DeploymentsNotReadyError,
    NonRecoverableError,
)


class StageOutcome(enum.Enum):
    """How a stage, or a whole pass, ended."""

    CONTINUE = "continue"
    """Run the next stage."""

    SOFT_STOP = "soft-stop"
    """Stop the pass without an error."""

    TERMINAL = "terminal"
    """Stop the pass; retrying it cannot help."""


@dataclass
class ReconcileContext:
    """The state shared by the stages of one pass."""

    eventmesh: EventMesh
    body: dict[str, Any]
    status: EventMeshStatus
    manifests: Manifests = field(default_factory=Manifests)
    logger: Any = None

    def __post_init__(self) -> None:
        if self.logger is None:
            self.logger = structlog.get_logger(__name__).bind(
                eventmesh=f"{self.eventmesh.namespace}/{self.eventmesh.name}"
            )


Stage = Callable[[ReconcileContext], "StageOutcome | None"]
"""A stage returns `None` (or ``CONTINUE``) to let the pass go on."""


@dataclass
class ReconcileResult:
    outcome: StageOutcome
    stage: str | None = None
    error: Exception | None = None


class Stages:
    """Runs named stages in order, stopping at the first one that does not
    continue.

    `DeploymentsNotReadyError` raised by a stage becomes a soft stop and
    `NonRecoverableError` a terminal outcome. Any other exception
    propagates so that the pass is retried.
    """

    def __init__(self, stages: Sequence[tuple[str, Stage]]) -> None:
        self.stages = list(stages)

    def names(self) -> list[str]:
        return [name for name, _ in self.stages]

    def execute(self, context: ReconcileContext) -> ReconcileResult:
        logger = context.logger
        for name, stage in self.stages:
            logger.debug(f"Running stage {name}")
            try:
                outcome = stage(context)
            except DeploymentsNotReadyError as exc:
                logger.info(f"Stopping at stage {name}: {exc}")
                return ReconcileResult(StageOutcome.SOFT_STOP, name, exc)
            except NonRecoverableError as exc:
                logger.error(f"Stage {name} failed: {exc}")
                return ReconcileResult(StageOutcome.TERMINAL, name, exc)

            if outcome is None or outcome is StageOutcome.CONTINUE:
                continue
            logger.info(f"Stage {name} stopped the pass ({outcome.value})")
            return ReconcileResult(outcome, name)
        return ReconcileResult(StageOutcome.CONTINUE)
