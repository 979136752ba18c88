"""
Error taxonomy for the generation pipeline.

Every error names the entity ids it implicates and carries the CLI exit
code. Nothing here is recovered silently: callers surface the error to
the operator, who fixes the upstream input and re-runs.
"""

from taskplan.lib.constants import (
    EXIT_ABANDONED,
    EXIT_COLLABORATOR,
    EXIT_CONCURRENT_RUN,
    EXIT_MISSING_INPUT,
    EXIT_VALIDATION,
)


class PipelineError(Exception):
    """Base class for failures surfaced to the operator."""
    exit_code = EXIT_VALIDATION

    def __init__(self, message: str, ids: list[str] | None = None):
        self.ids = list(ids or [])
        super().__init__(message)


class MissingRequiredDocument(PipelineError):
    """A mandatory input (PRD or architecture) was not found."""
    exit_code = EXIT_MISSING_INPUT

    def __init__(self, kind: str, expected: str):
        self.kind = kind
        self.expected = expected
        super().__init__(f"Missing required {kind} document: expected {expected}", [expected])


class EmptyRequirementSet(PipelineError):
    """The extractor produced no requirements."""

    def __init__(self, feature: str):
        super().__init__(f"No requirements extracted for feature '{feature}'")


class GroupingError(PipelineError):
    """A proposed grouping omits, invents or duplicates requirements."""


class InvalidOrdinal(PipelineError):
    """Ordinals are duplicated, out of order or point at a missing parent."""


class BatchValidationError(PipelineError):
    """A structural batch invariant (other than coverage) does not hold."""


class IncompleteTestCoverage(PipelineError):
    """One or more subtasks carry no testing requirement."""

    def __init__(self, ordinals: list[str]):
        super().__init__(
            f"Subtasks without testing requirements: {', '.join(ordinals)}",
            ordinals,
        )


class OrphanedRequirement(PipelineError):
    """One or more requirements are not referenced by any subtask."""

    def __init__(self, requirement_ids: list[str]):
        super().__init__(
            f"Requirements not covered by any subtask: {', '.join(requirement_ids)}",
            requirement_ids,
        )


class ConcurrentRunDetected(PipelineError):
    """Another run holds the feature lock."""
    exit_code = EXIT_CONCURRENT_RUN

    def __init__(self, feature: str, holder: str | None = None):
        message = f"Another run for feature '{feature}' is in progress"
        if holder:
            message += f" (pid {holder})"
        super().__init__(message, [feature])


class RunAbandoned(PipelineError):
    """The operator cancelled at the approval checkpoint."""
    exit_code = EXIT_ABANDONED

    def __init__(self, attempts: int):
        self.attempts = attempts
        super().__init__(f"Run abandoned by operator after {attempts} proposal(s)")


class CollaboratorError(PipelineError):
    """An extractor/grouper/expander produced unusable output or failed to run."""
    exit_code = EXIT_COLLABORATOR
