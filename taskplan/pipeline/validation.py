"""
Structural validation of a generated batch.

Checks run in a fixed order and the first failing check raises. Each
error lists every offending id, not just the first.
"""

import logging

from taskplan.lib.errors import (
    BatchValidationError,
    IncompleteTestCoverage,
    InvalidOrdinal,
    OrphanedRequirement,
)
from taskplan.pipeline.expander import duplicated_sentences, split_sentences
from taskplan.pipeline.models import Batch, parse_ordinal

logger = logging.getLogger(__name__)


def retired_indices(batch: Batch) -> dict[int, set[int]]:
    """Map group ordinal -> retired subtask indices."""
    result: dict[int, set[int]] = {}
    for ordinal in batch.retired:
        group, index = parse_ordinal(ordinal)
        result.setdefault(group, set()).add(index)
    return result


def check_ordinals(batch: Batch) -> None:
    """Group ordinals run 1..n; subtask indices are unique and increasing.

    A gap in subtask indices is allowed only where the missing ordinal is
    recorded as retired.
    """
    group_ordinals = [g.ordinal for g in batch.groups]
    if group_ordinals != list(range(1, len(group_ordinals) + 1)):
        labels = [f"{o}.0" for o in group_ordinals]
        raise InvalidOrdinal(f"Task group ordinals must run 1.0..{len(labels)}.0 in order, got: {', '.join(labels)}", labels)

    known = set(group_ordinals)
    orphans = [s.ordinal for s in batch.subtasks if s.group_ordinal not in known]
    if orphans:
        raise InvalidOrdinal(f"Subtasks reference a missing task group: {', '.join(orphans)}", orphans)

    retired = retired_indices(batch)
    for ordinal in group_ordinals:
        indices = [s.index for s in batch.subtasks_for(ordinal)]
        label = f"{ordinal}.0"

        bad = [f"{ordinal}.{i}" for i, prev in zip(indices, [0] + indices) if i <= prev]
        if bad:
            raise InvalidOrdinal(f"Subtask ordinals under {label} must be unique and increasing: {', '.join(bad)}", bad)

        reused = sorted(retired.get(ordinal, set()) & set(indices))
        if reused:
            ids = [f"{ordinal}.{i}" for i in reused]
            raise InvalidOrdinal(f"Retired ordinals reused: {', '.join(ids)}", ids)

        expected = set(range(1, max(indices, default=0) + 1))
        gaps = sorted(expected - set(indices) - retired.get(ordinal, set()))
        if gaps:
            ids = [f"{ordinal}.{i}" for i in gaps]
            raise InvalidOrdinal(f"Undocumented gap in subtask ordinals: {', '.join(ids)}", ids)


def check_structure(batch: Batch) -> None:
    """Subtasks reference only their parent's requirements; no repeated rationale."""
    known = {r.id for r in batch.requirements}
    problems = []
    ids = []

    for subtask in batch.subtasks:
        parent = batch.group(subtask.group_ordinal)
        unknown = [r for r in subtask.requirement_ids if r not in known]
        outside = [r for r in subtask.requirement_ids if r in known and r not in parent.requirement_ids]
        if unknown:
            problems.append(f"{subtask.ordinal} references unknown requirement(s) {', '.join(unknown)}")
            ids.append(subtask.ordinal)
        if outside:
            problems.append(f"{subtask.ordinal} references {', '.join(outside)} outside task group {parent.label}")
            ids.append(subtask.ordinal)

    for group in batch.groups:
        siblings = batch.subtasks_for(group.ordinal)
        repeated = duplicated_sentences([s.specific_context for s in siblings])
        if repeated:
            offenders = [s.ordinal for s in siblings if set(repeated) & set(split_sentences(s.specific_context))]
            problems.append(
                f"context repeated across subtasks {', '.join(offenders)} "
                f"(belongs in {group.label} shared context): {repeated[0]!r}"
            )
            ids.extend(offenders)

    if problems:
        raise BatchValidationError("Invalid batch: " + "; ".join(problems), list(dict.fromkeys(ids)))


def check_test_coverage(batch: Batch) -> None:
    missing = [s.ordinal for s in batch.subtasks if not s.testing_requirements]
    if missing:
        raise IncompleteTestCoverage(missing)


def orphaned_requirements(batch: Batch) -> list[str]:
    """Requirement ids not referenced by any subtask, in requirement order."""
    covered = {r for s in batch.subtasks for r in s.requirement_ids}
    return [r.id for r in batch.requirements if r.id not in covered]


def check_completeness(batch: Batch) -> None:
    orphans = orphaned_requirements(batch)
    if orphans:
        raise OrphanedRequirement(orphans)


def validate_batch(batch: Batch) -> None:
    """Run every batch check.

    Raises:
        InvalidOrdinal, BatchValidationError, IncompleteTestCoverage,
        OrphanedRequirement
    """
    check_ordinals(batch)
    check_structure(batch)
    check_test_coverage(batch)
    check_completeness(batch)
    logger.debug(
        f"Batch {batch.batch_id} valid: {len(batch.groups)} group(s), "
        f"{len(batch.subtasks)} subtask(s), {len(batch.requirements)} requirement(s)"
    )
