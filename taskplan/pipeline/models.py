"""
Data models for the task-list pipeline.

All records for one generation run belong to a single Batch. Requirements,
groups and subtask structure are fixed once created; the only field that
changes afterwards is Subtask.status.
"""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Optional


class DocumentKind(Enum):
    PRD = "prd"
    ARCHITECTURE = "architecture"
    TECHREQ = "techreq"
    CONTEXT = "context"

    @property
    def mandatory(self) -> bool:
        return self in (DocumentKind.PRD, DocumentKind.ARCHITECTURE)

    def filename(self, feature: str) -> str:
        return f"{self.value}-{feature}.md"


class CoverageKind(Enum):
    UNIT = "Unit"
    INTEGRATION = "Integration"
    E2E = "E2E"
    PERFORMANCE = "Performance"
    SECURITY = "Security"
    ERROR_HANDLING = "ErrorHandling"


class SubtaskStatus(Enum):
    PENDING = "Pending"
    IN_PROGRESS = "InProgress"
    DONE = "Done"

    @property
    def checkbox(self) -> str:
        """GitHub task-list mark; InProgress stays unchecked and carries IN_PROGRESS_MARKER."""
        return "x" if self is SubtaskStatus.DONE else " "

    @property
    def suffix(self) -> str:
        return f" {IN_PROGRESS_MARKER}" if self is SubtaskStatus.IN_PROGRESS else ""

    @classmethod
    def from_checkbox(cls, mark: str, in_progress: bool = False) -> "SubtaskStatus":
        """Status from a checkbox mark and whether IN_PROGRESS_MARKER follows the name.

        "~" is read as InProgress for documents written before the marker.
        """
        if mark.lower() == "x":
            return cls.DONE
        if mark == "~" or (mark == " " and in_progress):
            return cls.IN_PROGRESS
        if mark == " ":
            return cls.PENDING
        raise ValueError(f"Unknown checkbox mark: {mark!r}")

    @classmethod
    def parse(cls, value: str) -> "SubtaskStatus":
        """Accept 'Done', 'done', 'in_progress', 'in-progress', 'InProgress'."""
        key = value.replace("_", "").replace("-", "").lower()
        for status in cls:
            if status.value.lower() == key:
                return status
        raise ValueError(f"Unknown status: {value!r}")


IN_PROGRESS_MARKER = "(in progress)"


@dataclass(frozen=True)
class SourceDocument:
    """One loaded input document. path is None for a missing optional document."""
    kind: DocumentKind
    path: Optional[Path]
    raw_text: str

    @property
    def present(self) -> bool:
        return self.path is not None


@dataclass
class Requirement:
    id: str                                    # REQ-001 or REQ-<content hash>
    text: str
    source_document: str                       # DocumentKind value
    source_location: Optional[str] = None      # "Checkout Flow, line 12"
    cross_cutting: bool = False
    depends_on: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "text": self.text,
            "source_document": self.source_document,
            "source_location": self.source_location,
            "cross_cutting": self.cross_cutting,
            "depends_on": list(self.depends_on),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Requirement":
        return cls(
            id=data["id"],
            text=data["text"],
            source_document=data["source_document"],
            source_location=data.get("source_location"),
            cross_cutting=data.get("cross_cutting", False),
            depends_on=list(data.get("depends_on", [])),
        )


@dataclass(frozen=True)
class TaskGroup:
    """A top-level unit of work. Replaced wholesale, never edited in place."""
    ordinal: int
    name: str
    requirement_ids: tuple[str, ...]
    shared_context: str = ""

    @property
    def label(self) -> str:
        return f"{self.ordinal}.0"

    def to_dict(self) -> dict:
        return {
            "ordinal": self.ordinal,
            "name": self.name,
            "requirement_ids": list(self.requirement_ids),
            "shared_context": self.shared_context,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "TaskGroup":
        return cls(
            ordinal=data["ordinal"],
            name=data["name"],
            requirement_ids=tuple(data["requirement_ids"]),
            shared_context=data.get("shared_context", ""),
        )


@dataclass(frozen=True)
class TestingRequirement:
    __test__ = False  # not a pytest class

    type: CoverageKind
    description: str

    def to_dict(self) -> dict:
        return {"type": self.type.value, "description": self.description}

    @classmethod
    def from_dict(cls, data: dict) -> "TestingRequirement":
        return cls(type=CoverageKind(data["type"]), description=data["description"])


@dataclass
class Subtask:
    group_ordinal: int
    index: int
    name: str
    specific_context: str
    requirement_ids: list[str]
    testing_requirements: list[TestingRequirement] = field(default_factory=list)
    status: SubtaskStatus = SubtaskStatus.PENDING

    @property
    def ordinal(self) -> str:
        return format_ordinal(self.group_ordinal, self.index)

    def to_dict(self) -> dict:
        return {
            "group_ordinal": self.group_ordinal,
            "index": self.index,
            "name": self.name,
            "specific_context": self.specific_context,
            "requirement_ids": list(self.requirement_ids),
            "testing_requirements": [t.to_dict() for t in self.testing_requirements],
            "status": self.status.value,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Subtask":
        return cls(
            group_ordinal=data["group_ordinal"],
            index=data["index"],
            name=data["name"],
            specific_context=data.get("specific_context", ""),
            requirement_ids=list(data["requirement_ids"]),
            testing_requirements=[TestingRequirement.from_dict(t) for t in data.get("testing_requirements", [])],
            status=SubtaskStatus(data.get("status", SubtaskStatus.PENDING.value)),
        )


@dataclass(frozen=True)
class TraceabilityRow:
    requirement_id: str
    group_ordinal: str        # "1.0"
    subtask_ordinal: str      # "1.2"
    implementation_status: SubtaskStatus


@dataclass
class Batch:
    """Everything produced by one generation run for one feature."""
    batch_id: str
    feature: str
    created: str                               # ISO timestamp
    requirements: list[Requirement]
    groups: list[TaskGroup]
    subtasks: list[Subtask]
    retired: list[str] = field(default_factory=list)   # ordinals of deleted subtasks
    warnings: list[str] = field(default_factory=list)

    def group(self, ordinal: int) -> Optional[TaskGroup]:
        for g in self.groups:
            if g.ordinal == ordinal:
                return g
        return None

    def subtasks_for(self, group_ordinal: int) -> list[Subtask]:
        return [s for s in self.subtasks if s.group_ordinal == group_ordinal]

    def find_subtask(self, ordinal: str) -> Optional[Subtask]:
        for s in self.subtasks:
            if s.ordinal == ordinal:
                return s
        return None

    def to_dict(self) -> dict:
        return {
            "version": 1,
            "batch_id": self.batch_id,
            "feature": self.feature,
            "created": self.created,
            "requirements": [r.to_dict() for r in self.requirements],
            "groups": [g.to_dict() for g in self.groups],
            "subtasks": [s.to_dict() for s in self.subtasks],
            "retired": list(self.retired),
            "warnings": list(self.warnings),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Batch":
        return cls(
            batch_id=data["batch_id"],
            feature=data["feature"],
            created=data["created"],
            requirements=[Requirement.from_dict(r) for r in data["requirements"]],
            groups=[TaskGroup.from_dict(g) for g in data["groups"]],
            subtasks=[Subtask.from_dict(s) for s in data["subtasks"]],
            retired=list(data.get("retired", [])),
            warnings=list(data.get("warnings", [])),
        )


def format_ordinal(group_ordinal: int, index: int) -> str:
    return f"{group_ordinal}.{index}"


def parse_ordinal(ordinal: str) -> tuple[int, int]:
    """Split '2.3' into (2, 3). Raises ValueError on malformed input."""
    head, sep, tail = ordinal.strip().partition(".")
    if not sep or not head.isdigit() or not tail.isdigit():
        raise ValueError(f"Malformed ordinal: {ordinal!r}")
    return int(head), int(tail)
