"""Kopf handlers for operator start-up and shutdown."""

__all__ = ("configure", "shutdown")

from typing import Any

import kopf

from eventmeshoperator import state
from eventmeshoperator.startup import (
    configure_logging,
    start_operator,
    stop_operator,
)


@kopf.on.startup()
def configure(
    *, settings: kopf.OperatorSettings, logger: Any, **kwargs: Any
) -> None:
    """Configure kopf and logging, then start the watches.

    Parameters
    ----------
    settings : `kopf.OperatorSettings`
        The operator settings.
    logger : `Any`
        The kopf logger.
    **kwargs : `Any`
        Additional keyword arguments provided by kopf.
    """
    configure_logging()
    settings.batching.worker_limit = state.worker_limit
    settings.posting.enabled = True
    start_operator(logger=logger)


@kopf.on.cleanup()
def shutdown(*, logger: Any, **kwargs: Any) -> None:
    stop_operator(logger=logger)
