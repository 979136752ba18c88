"""
Traceability matrix: one row per (requirement, subtask) pairing.

The matrix is derived from the batch and regenerated whenever the task
list changes; it is never edited by hand.
"""

import re
from typing import Iterable

from taskplan.pipeline.models import Batch, SubtaskStatus, TraceabilityRow, parse_ordinal

ROW_RE = re.compile(
    r'^\|\s*(REQ-[A-Za-z0-9_.-]+)\s*\|\s*(\d+\.0)\s*\|\s*(\d+\.\d+)\s*\|\s*([A-Za-z]+)\s*\|\s*$'
)

COLUMNS = ("Requirement", "TaskGroup", "Subtask", "ImplementationStatus")


def matrix_filename(feature: str) -> str:
    return f"tracmat-{feature}.md"


def build_matrix(batch: Batch) -> list[TraceabilityRow]:
    """Rows in requirement order, then subtask ordinal order."""
    subtasks = sorted(batch.subtasks, key=lambda s: (s.group_ordinal, s.index))
    rows = []
    for req in batch.requirements:
        for subtask in subtasks:
            if req.id in subtask.requirement_ids:
                rows.append(TraceabilityRow(
                    requirement_id=req.id,
                    group_ordinal=f"{subtask.group_ordinal}.0",
                    subtask_ordinal=subtask.ordinal,
                    implementation_status=subtask.status,
                ))
    return rows


def render_matrix(batch: Batch, rows: list[TraceabilityRow] | None = None) -> str:
    if rows is None:
        rows = build_matrix(batch)
    lines = [
        f"# Traceability Matrix: {batch.feature}",
        "",
        f"Batch: `{batch.batch_id}`",
        "",
        "| " + " | ".join(COLUMNS) + " |",
        "|" + "---|" * len(COLUMNS),
    ]
    for row in rows:
        lines.append(
            f"| {row.requirement_id} | {row.group_ordinal} | {row.subtask_ordinal} "
            f"| {row.implementation_status.value} |"
        )
    return "\n".join(lines) + "\n"


def parse_matrix(text: str) -> list[TraceabilityRow]:
    """Read rows back from a rendered matrix. Header and malformed lines are skipped."""
    rows = []
    for line in text.splitlines():
        match = ROW_RE.match(line)
        if not match:
            continue
        try:
            status = SubtaskStatus.parse(match.group(4))
        except ValueError:
            continue
        rows.append(TraceabilityRow(match.group(1), match.group(2), match.group(3), status))
    return rows


def check_round_trip(
    rows: Iterable[TraceabilityRow],
    emitted: Iterable[tuple[str, str]],
) -> list[TraceabilityRow]:
    """Rows whose (TaskGroup, Subtask) pair is not an emitted subtask.

    emitted holds (group label, subtask ordinal) pairs such as ("1.0", "1.2").
    A row also fails if its subtask ordinal does not belong to its group.
    """
    known = set(emitted)
    unresolved = []
    for row in rows:
        group, _ = parse_ordinal(row.subtask_ordinal)
        if f"{group}.0" != row.group_ordinal or (row.group_ordinal, row.subtask_ordinal) not in known:
            unresolved.append(row)
    return unresolved


def uncovered_requirements(requirement_ids: Iterable[str], rows: Iterable[TraceabilityRow]) -> list[str]:
    """Requirement ids with no matrix row."""
    covered = {r.requirement_id for r in rows}
    return [r for r in requirement_ids if r not in covered]
