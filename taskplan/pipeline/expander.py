"""
Subtask expansion.

Each approved task group is decomposed into subtasks that a less
experienced implementer can complete without first understanding their
siblings. Context that applies to two or more subtasks is hoisted to the
group's shared_context so no rationale is repeated.
"""

import logging
import re
from dataclasses import dataclass, field, replace
from typing import Protocol

from taskplan.lib.agents_config import AgentsConfig
from taskplan.lib.prompts import build_section, render_prompt
from taskplan.pipeline.agent_utils import call_agent_json
from taskplan.pipeline.grouper import section_of, summarize
from taskplan.pipeline.models import (
    CoverageKind,
    Requirement,
    Subtask,
    TaskGroup,
    TestingRequirement,
)

logger = logging.getLogger(__name__)

SENTENCE_SPLIT_RE = re.compile(r'(?<=[.!?])\s+|\n+')

# Keyword triggers for inferred testing obligations. Unit tests are always required.
COVERAGE_KEYWORDS = [
    (CoverageKind.INTEGRATION, ("api", "endpoint", "route", "service", "database", "db", "webhook", "server", "integration", "queue")),
    (CoverageKind.E2E, ("ui", "page", "screen", "form", "button", "view", "navigate", "display", "user flow", "component")),
    (CoverageKind.PERFORMANCE, ("latency", "throughput", "performance", "load time", "ms", "concurrent", "scale", "cache")),
    (CoverageKind.SECURITY, ("auth", "authentication", "authorization", "login", "sign in", "password", "permission", "role", "token", "encrypt", "secure", "pii")),
    (CoverageKind.ERROR_HANDLING, ("error", "errors", "fail", "fails", "failure", "invalid", "retry", "timeout", "validation", "validate", "reject")),
]

COVERAGE_TEMPLATES = {
    CoverageKind.UNIT: "Unit tests for {name}",
    CoverageKind.INTEGRATION: "Integration test across the API/service boundary for {name}",
    CoverageKind.E2E: "End-to-end test of the user-facing flow for {name}",
    CoverageKind.PERFORMANCE: "Performance test asserting the stated limits for {name}",
    CoverageKind.SECURITY: "Security test covering access control for {name}",
    CoverageKind.ERROR_HANDLING: "Error-path tests for invalid input and failures in {name}",
}


@dataclass
class SubtaskDraft:
    """An unnumbered subtask as returned by an expander."""
    name: str
    specific_context: str
    requirement_ids: list[str]
    testing_requirements: list[TestingRequirement] = field(default_factory=list)


@dataclass
class Expansion:
    group: TaskGroup
    drafts: list[SubtaskDraft]


class Expander(Protocol):
    def expand(self, group: TaskGroup, requirements: dict[str, Requirement]) -> Expansion:
        ...


def infer_testing(name: str, text: str) -> list[TestingRequirement]:
    """Derive testing obligations from requirement wording."""
    lowered = text.lower()
    kinds = [CoverageKind.UNIT]
    for kind, keywords in COVERAGE_KEYWORDS:
        if any(re.search(r'\b' + re.escape(k) + r'\b', lowered) for k in keywords):
            kinds.append(kind)
    return [TestingRequirement(kind, COVERAGE_TEMPLATES[kind].format(name=name)) for kind in kinds]


class RuleBasedExpander:
    """One subtask per requirement of the group, in group order."""

    def expand(self, group: TaskGroup, requirements: dict[str, Requirement]) -> Expansion:
        drafts = []
        for req_id in group.requirement_ids:
            req = requirements[req_id]
            name = summarize(req.text)
            context = [req.text if req.text.endswith((".", "!", "?")) else req.text + "."]
            section = section_of(req)
            if section:
                context.append(f"Source: {req.source_document} document, section \"{section}\".")
            if req.depends_on:
                context.append(f"Builds on {', '.join(req.depends_on)}.")
            drafts.append(SubtaskDraft(
                name=name,
                specific_context="\n".join(context),
                requirement_ids=[req_id],
                testing_requirements=infer_testing(name, req.text),
            ))
        return Expansion(group=group, drafts=drafts)


class AgentExpander:
    """Expander backed by the agent CLI configured for the 'expand' stage."""

    def __init__(self, agents: AgentsConfig, timeout: int = 300, architecture_text: str = ""):
        self.agents = agents
        self.timeout = timeout
        self.architecture_text = architecture_text

    def build_prompt(self, group: TaskGroup, requirements: dict[str, Requirement]) -> str:
        req_lines = [f"- {r}: {requirements[r].text}" for r in group.requirement_ids]
        return render_prompt(
            "expand_subtasks",
            group_label=group.label,
            group_name=group.name,
            requirements_section="\n".join(req_lines),
            shared_context_section=build_section(group.shared_context, "## Shared Context"),
            architecture_section=build_section(self.architecture_text, "## Architecture"),
            test_types=", ".join(k.value for k in CoverageKind),
        )

    def expand(self, group: TaskGroup, requirements: dict[str, Requirement]) -> Expansion:
        data = call_agent_json(
            self.agents, "expand", self.build_prompt(group, requirements), "expansion", self.timeout,
        )
        drafts = [
            SubtaskDraft(
                name=s["name"],
                specific_context=s.get("specific_context", ""),
                requirement_ids=list(dict.fromkeys(s["requirement_ids"])),
                testing_requirements=[TestingRequirement.from_dict(t) for t in s["testing_requirements"]],
            )
            for s in data["subtasks"]
        ]
        shared = data.get("shared_context", "")
        if shared:
            group = replace(group, shared_context="\n".join(c for c in (group.shared_context, shared) if c))
        return Expansion(group=group, drafts=drafts)


def split_sentences(text: str) -> list[str]:
    return [" ".join(s.split()) for s in SENTENCE_SPLIT_RE.split(text) if s.strip()]


def duplicated_sentences(contexts: list[str]) -> list[str]:
    """Sentences that occur in two or more of the given contexts, in first-seen order."""
    counts: dict[str, int] = {}
    for context in contexts:
        for sentence in dict.fromkeys(split_sentences(context)):
            counts[sentence] = counts.get(sentence, 0) + 1
    return [s for s, n in counts.items() if n > 1]


def hoist_shared_context(expansion: Expansion) -> Expansion:
    """Move sentences repeated across subtasks into the group's shared_context."""
    repeated = duplicated_sentences([d.specific_context for d in expansion.drafts])
    if not repeated:
        return expansion

    repeated_set = set(repeated)
    drafts = [
        replace(d, specific_context="\n".join(
            s for s in split_sentences(d.specific_context) if s not in repeated_set
        ))
        for d in expansion.drafts
    ]

    existing = set(split_sentences(expansion.group.shared_context))
    additions = [s for s in repeated if s not in existing]
    shared = "\n".join(p for p in [expansion.group.shared_context.strip(), *additions] if p)
    logger.debug(f"Hoisted {len(repeated)} shared sentence(s) into group {expansion.group.label}")
    return Expansion(group=replace(expansion.group, shared_context=shared), drafts=drafts)


def number_subtasks(group: TaskGroup, drafts: list[SubtaskDraft]) -> list[Subtask]:
    """Number drafts <group>.1, <group>.2, ... with no gaps."""
    return [
        Subtask(
            group_ordinal=group.ordinal,
            index=i,
            name=d.name,
            specific_context=d.specific_context,
            requirement_ids=list(d.requirement_ids),
            testing_requirements=list(d.testing_requirements),
        )
        for i, d in enumerate(drafts, 1)
    ]


def expand_groups(
    groups: list[TaskGroup],
    requirements: list[Requirement],
    expander: Expander,
) -> tuple[list[TaskGroup], list[Subtask]]:
    """Expand every approved group. Returns (groups with shared context, subtasks)."""
    by_id = {r.id: r for r in requirements}
    expanded_groups = []
    subtasks = []
    for group in groups:
        expansion = hoist_shared_context(expander.expand(group, by_id))
        expanded_groups.append(expansion.group)
        subtasks.extend(number_subtasks(expansion.group, expansion.drafts))
        logger.debug(f"Group {group.label}: {len(expansion.drafts)} subtask(s)")
    return expanded_groups, subtasks
