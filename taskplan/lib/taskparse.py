"""
Task document parser.

Reads tasks-<feature>-<n>.md files back into groups and subtasks.
"""

import re
from dataclasses import dataclass, field
from pathlib import Path

from taskplan.pipeline.models import IN_PROGRESS_MARKER, SubtaskStatus

GROUP_RE = re.compile(r'^###\s+(\d+)\.0\s+(.+?)\s*$')
SUBTASK_RE = re.compile(r'^- \[([ xX~])\]\s+(\d+\.\d+)\s+(.+?)(\s+' + re.escape(IN_PROGRESS_MARKER) + r')?\s*$')
RETIRED_RE = re.compile(r'^- ~~(\d+\.\d+)~~')
GROUP_REQS_RE = re.compile(r'^\*\*Requirements:\*\*\s*(.*?)\s*$')
SUBTASK_REQS_RE = re.compile(r'^\s{2}- Requirements:\s*(.*?)\s*$')
TESTING_RE = re.compile(r'^\s{2}- Testing:\s*$')
TESTING_ITEM_RE = re.compile(r'^\s{4}- ([A-Za-z0-9]+):\s*(.*?)\s*$')


@dataclass
class ParsedSubtask:
    ordinal: str
    name: str
    status: SubtaskStatus
    line_number: int
    requirement_ids: list[str] = field(default_factory=list)
    testing: list[tuple[str, str]] = field(default_factory=list)


@dataclass
class ParsedGroup:
    label: str
    name: str
    line_number: int
    requirement_ids: list[str] = field(default_factory=list)
    subtasks: list[ParsedSubtask] = field(default_factory=list)
    retired: list[str] = field(default_factory=list)


def _split_ids(text: str) -> list[str]:
    return [p.strip() for p in text.split(",") if p.strip()]


def parse_task_text(text: str) -> list[ParsedGroup]:
    """Parse one task document."""
    groups: list[ParsedGroup] = []
    current_group = None
    current_subtask = None
    in_testing = False

    for lineno, line in enumerate(text.splitlines(), 1):
        group_match = GROUP_RE.match(line)
        if group_match:
            current_group = ParsedGroup(
                label=f"{group_match.group(1)}.0",
                name=group_match.group(2),
                line_number=lineno,
            )
            groups.append(current_group)
            current_subtask = None
            in_testing = False
            continue

        if current_group is None:
            continue

        subtask_match = SUBTASK_RE.match(line)
        if subtask_match:
            current_subtask = ParsedSubtask(
                ordinal=subtask_match.group(2),
                name=subtask_match.group(3),
                status=SubtaskStatus.from_checkbox(subtask_match.group(1), bool(subtask_match.group(4))),
                line_number=lineno,
            )
            current_group.subtasks.append(current_subtask)
            in_testing = False
            continue

        retired_match = RETIRED_RE.match(line)
        if retired_match:
            current_group.retired.append(retired_match.group(1))
            current_subtask = None
            in_testing = False
            continue

        reqs_match = GROUP_REQS_RE.match(line)
        if reqs_match and current_subtask is None:
            current_group.requirement_ids = _split_ids(reqs_match.group(1))
            continue

        if current_subtask is None:
            continue

        sub_reqs = SUBTASK_REQS_RE.match(line)
        if sub_reqs:
            current_subtask.requirement_ids = _split_ids(sub_reqs.group(1))
            in_testing = False
        elif TESTING_RE.match(line):
            in_testing = True
        elif in_testing:
            item = TESTING_ITEM_RE.match(line)
            if item:
                current_subtask.testing.append((item.group(1), item.group(2)))
            else:
                in_testing = False

    return groups


def parse_task_files(paths: list[Path]) -> list[ParsedGroup]:
    """Parse a chunked task list, in part order."""
    groups = []
    for path in paths:
        if not path.exists():
            raise FileNotFoundError(f"Task document not found: {path}")
        groups.extend(parse_task_text(path.read_text(encoding="utf-8")))
    return groups


def emitted_pairs(groups: list[ParsedGroup]) -> list[tuple[str, str]]:
    """(group label, subtask ordinal) for every live subtask."""
    return [(g.label, s.ordinal) for g in groups for s in g.subtasks]
