"""
Task grouping and the approval loop.

Requirements are clustered into top-level task groups by interdependency:
two requirements belong together when implementing one without the other
leaves a non-functional intermediate state. Proposals are shown to the
operator and nothing proceeds until they answer "Go".

Operator feedback is kept for the whole run. The rule-based grouper
replays the directives it understands on every regeneration; the agent
grouper receives all of it as extra constraints.
"""

import logging
import re
from dataclasses import dataclass, field
from typing import Protocol

from taskplan.lib.agents_config import AgentsConfig
from taskplan.lib.errors import GroupingError, RunAbandoned
from taskplan.lib.prompts import build_section, render_prompt
from taskplan.pipeline.agent_utils import call_agent_json
from taskplan.pipeline.gate import ApprovalDecision, ApprovalGate
from taskplan.pipeline.models import Requirement, TaskGroup
from taskplan.runner.context import RunContext
from taskplan.workflow.fsm import GroupingFSM

logger = logging.getLogger(__name__)

MAX_NAME_WORDS = 8

_GROUP_NUM = r'(\d+)(?:\.0)?'
MERGE_RE = re.compile(r'\bmerge\s+(?:groups?\s+)?((?:\d+(?:\.0)?)(?:\s*(?:,|and|&|\+)\s*(?:groups?\s+)?\d+(?:\.0)?)+)', re.IGNORECASE)
SPLIT_RE = re.compile(r'\bsplit\s+group\s+' + _GROUP_NUM, re.IGNORECASE)
MOVE_RE = re.compile(r'\bmove\s+(REQ-[A-Za-z0-9_.-]+?)\s+(?:to|into)\s+group\s+' + _GROUP_NUM, re.IGNORECASE)
RENAME_RE = re.compile(r'\brename\s+group\s+' + _GROUP_NUM + r'\s+(?:to|as)\s+["\']?(.+?)["\']?\s*$', re.IGNORECASE)


@dataclass
class GroupProposal:
    """An unnumbered group as returned by a grouper."""
    name: str
    requirement_ids: list[str]
    shared_context: str = ""


class Grouper(Protocol):
    def group(self, requirements: list[Requirement], feedback: list[str]) -> list[GroupProposal]:
        ...


def summarize(text: str, max_words: int = MAX_NAME_WORDS) -> str:
    """Short title from requirement text: first clause, at most max_words words."""
    first = re.split(r'(?<=[.;:!?])\s|\s[-–—]\s', text.strip(), maxsplit=1)[0]
    first = first.rstrip(".;:!? ")
    words = first.split()
    if len(words) > max_words:
        return " ".join(words[:max_words]) + "..."
    return first


def section_of(req: Requirement) -> str | None:
    if not req.source_location:
        return None
    heading, sep, _ = req.source_location.rpartition(", line ")
    if sep:
        return heading or None
    return None if req.source_location.startswith("line ") else req.source_location


class _UnionFind:
    def __init__(self, items):
        self.parent = {i: i for i in items}

    def find(self, item):
        while self.parent[item] != item:
            self.parent[item] = self.parent[self.parent[item]]
            item = self.parent[item]
        return item

    def union(self, a, b):
        ra, rb = self.find(a), self.find(b)
        if ra != rb:
            # Keep the earlier requirement as root so group order is stable
            if ra > rb:
                ra, rb = rb, ra
            self.parent[rb] = ra


class RuleBasedGrouper:
    """Deterministic grouper: dependency references and shared sections."""

    def group(self, requirements: list[Requirement], feedback: list[str]) -> list[GroupProposal]:
        proposals = self.cluster(requirements)
        by_id = {r.id: r for r in requirements}
        for item in feedback:
            proposals = apply_feedback(proposals, item, by_id)
        return proposals

    def cluster(self, requirements: list[Requirement]) -> list[GroupProposal]:
        position = {r.id: i for i, r in enumerate(requirements)}
        core = [r for r in requirements if not r.cross_cutting]
        cross = [r for r in requirements if r.cross_cutting]

        uf = _UnionFind(position[r.id] for r in core)
        core_ids = {r.id for r in core}

        section_first: dict[tuple, int] = {}
        for req in core:
            for dep in req.depends_on:
                if dep in core_ids:
                    uf.union(position[req.id], position[dep])
            section = section_of(req)
            if section is not None:
                key = (req.source_document, section)
                if key in section_first:
                    uf.union(section_first[key], position[req.id])
                else:
                    section_first[key] = position[req.id]

        clusters: dict[int, list[Requirement]] = {}
        for req in core:
            clusters.setdefault(uf.find(position[req.id]), []).append(req)

        ordered = [clusters[root] for root in sorted(clusters)]
        members = [[r.id for r in cluster] for cluster in ordered]

        unattached = []
        for req in cross:
            attached = False
            for i, cluster in enumerate(ordered):
                if any(req.id in r.depends_on or r.id in req.depends_on for r in cluster):
                    members[i].append(req.id)
                    attached = True
            if not attached:
                unattached.append(req)

        proposals = [
            GroupProposal(name=self._name_for(cluster), requirement_ids=ids)
            for cluster, ids in zip(ordered, members)
        ]
        if unattached:
            proposals.append(GroupProposal(
                name="Cross-cutting concerns",
                requirement_ids=[r.id for r in unattached],
            ))
        return proposals

    def _name_for(self, cluster: list[Requirement]) -> str:
        sections = {section_of(r) for r in cluster}
        if len(sections) == 1 and None not in sections:
            return sections.pop()
        return summarize(cluster[0].text)


def _group_numbers(text: str) -> list[int]:
    return [int(n) for n in re.findall(r'\d+', re.sub(r'\.0\b', '', text))]


def apply_feedback(
    proposals: list[GroupProposal],
    feedback: str,
    requirements: dict[str, Requirement],
) -> list[GroupProposal]:
    """Apply operator directives to a proposal list. Group numbers are 1-based.

    Understood directives (one per clause, clauses split on ';' or newlines):
        merge groups 1 and 2 [and 3]
        split group 2
        move REQ-4 to group 1
        rename group 1 to Checkout API
    """
    result = [GroupProposal(p.name, list(p.requirement_ids), p.shared_context) for p in proposals]

    for clause in re.split(r'[;\n]+', feedback):
        clause = clause.strip()
        if not clause:
            continue

        merge = MERGE_RE.search(clause)
        split = SPLIT_RE.search(clause)
        move = MOVE_RE.search(clause)
        rename = RENAME_RE.search(clause)

        if rename:
            idx = int(rename.group(1)) - 1
            if 0 <= idx < len(result):
                result[idx].name = rename.group(2).strip()
            else:
                logger.warning(f"Feedback refers to unknown group {rename.group(1)}: {clause!r}")
        elif merge:
            numbers = sorted(set(_group_numbers(merge.group(1))))
            bad = [n for n in numbers if not 1 <= n <= len(result)]
            if bad or len(numbers) < 2:
                logger.warning(f"Cannot merge groups {numbers} (have {len(result)}): {clause!r}")
                continue
            target = result[numbers[0] - 1]
            for n in numbers[1:]:
                other = result[n - 1]
                target.requirement_ids.extend(r for r in other.requirement_ids if r not in target.requirement_ids)
                if other.shared_context:
                    target.shared_context = "\n\n".join(c for c in (target.shared_context, other.shared_context) if c)
            drop = {n - 1 for n in numbers[1:]}
            result = [p for i, p in enumerate(result) if i not in drop]
        elif split:
            idx = int(split.group(1)) - 1
            if not 0 <= idx < len(result):
                logger.warning(f"Feedback refers to unknown group {split.group(1)}: {clause!r}")
                continue
            pieces = [
                GroupProposal(
                    name=summarize(requirements[r].text) if r in requirements else r,
                    requirement_ids=[r],
                )
                for r in result[idx].requirement_ids
            ]
            result = result[:idx] + pieces + result[idx + 1:]
        elif move:
            req_id, idx = move.group(1), int(move.group(2)) - 1
            if req_id not in requirements or not 0 <= idx < len(result):
                logger.warning(f"Cannot move {req_id} to group {idx + 1}: {clause!r}")
                continue
            target = result[idx]
            for p in result:
                if p is not target and req_id in p.requirement_ids:
                    p.requirement_ids.remove(req_id)
            if req_id not in target.requirement_ids:
                target.requirement_ids.append(req_id)
            result = [p for p in result if p.requirement_ids]
        else:
            logger.warning(f"Unrecognized grouping feedback ignored: {clause!r}")

    return result


class AgentGrouper:
    """Grouper backed by the agent CLI configured for the 'group' stage."""

    def __init__(self, agents: AgentsConfig, timeout: int = 300):
        self.agents = agents
        self.timeout = timeout

    def build_prompt(self, requirements: list[Requirement], feedback: list[str]) -> str:
        req_lines = []
        for r in requirements:
            marker = " (cross-cutting)" if r.cross_cutting else ""
            req_lines.append(f"- {r.id}{marker}: {r.text}")
        feedback_section = build_section(
            "\n".join(f"{i}. {f}" for i, f in enumerate(feedback, 1)),
            "## Operator Feedback On Previous Proposals (must be honored)",
        )
        return render_prompt(
            "group_requirements",
            requirements_section="\n".join(req_lines),
            feedback_section=feedback_section,
        )

    def group(self, requirements: list[Requirement], feedback: list[str]) -> list[GroupProposal]:
        data = call_agent_json(
            self.agents, "group", self.build_prompt(requirements, feedback), "grouping", self.timeout,
        )
        return [
            GroupProposal(
                name=g["name"],
                requirement_ids=list(dict.fromkeys(g["requirement_ids"])),
                shared_context=g.get("shared_context", ""),
            )
            for g in data["groups"]
        ]


def validate_grouping(requirements: list[Requirement], proposals: list[GroupProposal]) -> None:
    """Check a proposal covers every requirement exactly once.

    Requirements marked cross-cutting may appear under several groups.

    Raises:
        GroupingError: naming the offending ids
    """
    if not proposals:
        raise GroupingError("Grouper returned no groups")

    by_id = {r.id: r for r in requirements}
    problems = []
    ids = []

    empty = [str(i) for i, p in enumerate(proposals, 1) if not p.requirement_ids]
    if empty:
        problems.append(f"empty group(s): {', '.join(empty)}")

    unknown = sorted({r for p in proposals for r in p.requirement_ids if r not in by_id})
    if unknown:
        problems.append(f"unknown requirement(s): {', '.join(unknown)}")
        ids.extend(unknown)

    seen: dict[str, int] = {}
    for p in proposals:
        for r in set(p.requirement_ids):
            seen[r] = seen.get(r, 0) + 1
    duplicated = [r.id for r in requirements if seen.get(r.id, 0) > 1 and not r.cross_cutting]
    if duplicated:
        problems.append(f"non-cross-cutting requirement(s) in several groups: {', '.join(duplicated)}")
        ids.extend(duplicated)

    missing = [r.id for r in requirements if r.id not in seen]
    if missing:
        problems.append(f"requirement(s) not in any group: {', '.join(missing)}")
        ids.extend(missing)

    if problems:
        raise GroupingError("Invalid grouping: " + "; ".join(problems), ids)


def assign_ordinals(proposals: list[GroupProposal]) -> list[TaskGroup]:
    """Number groups 1.0, 2.0, ... in proposal order."""
    return [
        TaskGroup(
            ordinal=i,
            name=p.name,
            requirement_ids=tuple(dict.fromkeys(p.requirement_ids)),
            shared_context=p.shared_context,
        )
        for i, p in enumerate(proposals, 1)
    ]


@dataclass
class GroupingOutcome:
    groups: list[TaskGroup]
    attempts: int
    feedback: list[str] = field(default_factory=list)


def run_grouping(
    requirements: list[Requirement],
    grouper: Grouper,
    gate: ApprovalGate,
    ctx: RunContext,
) -> GroupingOutcome:
    """Propose groups until the operator approves or abandons.

    No retry limit. Every proposal and rejection is written to the run log.

    Raises:
        GroupingError: a proposal violates coverage rules
        RunAbandoned: operator cancelled
    """
    fsm = GroupingFSM(
        ctx.feature,
        on_transition=lambda src, dst, trigger: ctx.log(f"Grouping {src} -> {dst} ({trigger})"),
    )
    feedback: list[str] = []

    while True:
        proposals = grouper.group(requirements, list(feedback))
        validate_grouping(requirements, proposals)
        groups = assign_ordinals(proposals)
        fsm.propose()
        ctx.log(f"Proposal {fsm.proposals}: " + "; ".join(
            f"{g.label} {g.name} [{', '.join(g.requirement_ids)}]" for g in groups
        ))

        decision = gate(groups, fsm.proposals)
        if not isinstance(decision, ApprovalDecision):
            raise TypeError(f"Approval gate returned {type(decision).__name__}, expected ApprovalDecision")

        if decision.action == "approve":
            fsm.approve()
            return GroupingOutcome(groups=groups, attempts=fsm.proposals, feedback=feedback)

        if decision.action == "abandon":
            fsm.abandon()
            raise RunAbandoned(fsm.proposals)

        if decision.action != "reject":
            raise ValueError(f"Unknown approval action: {decision.action!r}")

        fsm.reject()
        feedback.append(decision.feedback)
        ctx.log(f"Proposal {fsm.proposals} rejected (retry {fsm.rejections}): {decision.feedback}")
