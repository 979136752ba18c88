"""
Task-list generation pipeline for taskplan.

Loads a feature's PRD and architecture documents, extracts requirements,
groups them behind a human approval checkpoint, expands groups into
subtasks and serializes the task list and traceability matrix.
"""

from taskplan.pipeline.models import (
    Batch,
    CoverageKind,
    DocumentKind,
    Requirement,
    SourceDocument,
    Subtask,
    SubtaskStatus,
    TaskGroup,
    TestingRequirement,
    TraceabilityRow,
)
from taskplan.pipeline.loader import load_documents
from taskplan.pipeline.extractor import RuleBasedExtractor, AgentExtractor, normalize_requirements
from taskplan.pipeline.grouper import RuleBasedGrouper, AgentGrouper, run_grouping
from taskplan.pipeline.gate import ApprovalDecision, AutoApproveGate, CallbackGate, ConsoleGate
from taskplan.pipeline.expander import RuleBasedExpander, AgentExpander, expand_groups
from taskplan.pipeline.validation import validate_batch
from taskplan.pipeline.emitter import render_task_documents
from taskplan.pipeline.traceability import build_matrix, render_matrix, parse_matrix

__all__ = [
    "Batch",
    "CoverageKind",
    "DocumentKind",
    "Requirement",
    "SourceDocument",
    "Subtask",
    "SubtaskStatus",
    "TaskGroup",
    "TestingRequirement",
    "TraceabilityRow",
    "load_documents",
    "RuleBasedExtractor",
    "AgentExtractor",
    "normalize_requirements",
    "RuleBasedGrouper",
    "AgentGrouper",
    "run_grouping",
    "ApprovalDecision",
    "AutoApproveGate",
    "CallbackGate",
    "ConsoleGate",
    "RuleBasedExpander",
    "AgentExpander",
    "expand_groups",
    "validate_batch",
    "render_task_documents",
    "build_matrix",
    "render_matrix",
    "parse_matrix",
]
