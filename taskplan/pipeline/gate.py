"""
Human approval checkpoint for proposed task groups.

A gate is any callable taking (groups, attempt) and returning an
ApprovalDecision. The call blocks until the operator answers; there is no
timeout. Closing stdin (EOF) or Ctrl-C counts as abandoning the run.
"""

import logging
from dataclasses import dataclass
from typing import Callable, Optional

from taskplan.pipeline.models import Requirement, TaskGroup

logger = logging.getLogger(__name__)

APPROVE_WORDS = ("go", "approve")
ABANDON_WORDS = ("abandon", "cancel", "quit")


@dataclass
class ApprovalDecision:
    action: str  # "approve", "reject", "abandon"
    feedback: str = ""

    @classmethod
    def approve(cls) -> "ApprovalDecision":
        return cls("approve")

    @classmethod
    def reject(cls, feedback: str) -> "ApprovalDecision":
        return cls("reject", feedback)

    @classmethod
    def abandon(cls) -> "ApprovalDecision":
        return cls("abandon")


ApprovalGate = Callable[[list[TaskGroup], int], ApprovalDecision]


def format_proposal(groups: list[TaskGroup], requirements: dict[str, Requirement] | None = None) -> str:
    """Render proposed groups for the operator."""
    lines = []
    for group in groups:
        lines.append(f"{group.label} {group.name}")
        for req_id in group.requirement_ids:
            req = (requirements or {}).get(req_id)
            if req is None:
                lines.append(f"    {req_id}")
            else:
                marker = " (cross-cutting)" if req.cross_cutting else ""
                lines.append(f"    {req_id}{marker}  {req.text}")
        lines.append("")
    return "\n".join(lines).rstrip() + "\n"


def parse_answer(answer: str) -> Optional[ApprovalDecision]:
    """Interpret one line of operator input. Returns None for a blank line."""
    text = answer.strip()
    if not text:
        return None
    word = text.lower().rstrip(".!?,;: ")
    if word in APPROVE_WORDS:
        return ApprovalDecision.approve()
    if word in ABANDON_WORDS:
        return ApprovalDecision.abandon()
    return ApprovalDecision.reject(text)


class ConsoleGate:
    """Blocks on stdin until the operator approves, rejects or abandons."""

    def __init__(
        self,
        requirements: list[Requirement] | None = None,
        input_fn: Callable[[str], str] = input,
        output_fn: Callable[[str], None] = print,
    ):
        self.requirements = {r.id: r for r in requirements or []}
        self.input_fn = input_fn
        self.output_fn = output_fn

    def bind_requirements(self, requirements: list[Requirement]):
        """Show requirement text next to ids once extraction has run."""
        self.requirements = {r.id: r for r in requirements}

    def __call__(self, groups: list[TaskGroup], attempt: int) -> ApprovalDecision:
        self.output_fn(f"Proposed task groups (proposal {attempt}):")
        self.output_fn("")
        self.output_fn(format_proposal(groups, self.requirements))
        self.output_fn("Type 'Go' to approve, 'abandon' to cancel, or describe what to change")
        self.output_fn("(e.g. 'merge groups 1 and 2', 'split group 3', 'move REQ-4 to group 1').")

        while True:
            try:
                answer = self.input_fn("> ")
            except (EOFError, KeyboardInterrupt):
                self.output_fn("")
                return ApprovalDecision.abandon()
            decision = parse_answer(answer)
            if decision is not None:
                return decision


class AutoApproveGate:
    """Approves the first proposal. Used for --non-interactive regeneration."""

    def __call__(self, groups: list[TaskGroup], attempt: int) -> ApprovalDecision:
        logger.info(f"Auto-approving {len(groups)} task group(s) (non-interactive)")
        return ApprovalDecision.approve()


class CallbackGate:
    """Adapts a plain function to the gate interface.

    The callback receives the proposed groups and the proposal number and
    may return an ApprovalDecision or a raw answer string as typed by an
    operator (blank answers are not allowed here).
    """

    def __init__(self, callback: Callable[[list[TaskGroup], int], "ApprovalDecision | str"]):
        self.callback = callback

    def __call__(self, groups: list[TaskGroup], attempt: int) -> ApprovalDecision:
        result = self.callback(groups, attempt)
        if isinstance(result, str):
            decision = parse_answer(result)
            if decision is None:
                raise ValueError("Approval callback returned a blank answer")
            return decision
        return result
