"""
Diagnostic error taxonomy.

Request validation is handled by pydantic before a record exists; everything
below is raised once a run is underway (or while the process is starting).
"""
from typing import Iterable, List


class DiagnosticError(Exception):
    """Base class for all diagnostic failures."""


class ConfigurationError(DiagnosticError):
    """Required collaborator credentials are missing at startup."""

    def __init__(self, missing: Iterable[str]):
        self.missing: List[str] = list(missing)
        super().__init__(
            f"Missing required environment variables: {', '.join(self.missing)}. "
            "Check that your .env file is configured."
        )


class StageError(DiagnosticError):
    """One pipeline stage failed. Recorded per stage, never aborts the run."""

    def __init__(self, stage: str, message: str):
        self.stage = stage
        self.message = message
        super().__init__(message)


class RateLimitError(StageError):
    """Upstream quota exceeded. Retried with backoff before it counts as a StageError."""

    status_code = 429


class PrerequisiteMissingError(DiagnosticError):
    """Insight generation cannot run because its required inputs are absent."""

    def __init__(self, missing: Iterable[str]):
        self.missing: List[str] = list(missing)
        super().__init__(
            f"Insight generation skipped: missing {' and '.join(self.missing)} data."
        )


class FatalOrchestratorError(DiagnosticError):
    """Unexpected fault outside any stage boundary."""

    public_message = "Unexpected error while processing the analysis."


class InvalidStatusTransition(DiagnosticError):
    """A record in a terminal state was asked to move again."""
