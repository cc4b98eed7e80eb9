"""Exceptions that tell the stage engine how a pass ended."""

from __future__ import annotations

__all__ = ("DeploymentsNotReadyError", "NonRecoverableError")


class NonRecoverableError(Exception):
    """Raised by a stage when retrying the same pass cannot succeed."""


class DeploymentsNotReadyError(Exception):
    """Raised when installed Deployments are not available yet.

    The pass stops without an error; the Deployments' own status changes
    start the next one.

    Parameters
    ----------
    names : `list` of `str`
        Names of the Deployments that are not available.
    """

    def __init__(self, names: list[str]) -> None:
        self.names = names
        super().__init__(f"deployments not ready: {', '.join(names)}")
