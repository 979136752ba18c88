"""Grouping approval state machine using the transitions library.

A proposal moves through:

    drafting -> proposed -> approved
                   |  ^
                   v  |
                 rejected          (any non-terminal) -> abandoned

Usage:
    from taskplan.workflow.fsm import GroupingFSM

    fsm = GroupingFSM("checkout")
    fsm.propose()
    fsm.reject()
    fsm.propose()
    fsm.approve()
"""

import logging
from typing import Callable

from transitions import Machine

logger = logging.getLogger(__name__)

STATES = [
    "drafting",
    "proposed",
    "rejected",
    "approved",
    "abandoned",
]

TERMINAL_STATES = ("approved", "abandoned")

TRANSITIONS = [
    {"trigger": "propose", "source": "drafting", "dest": "proposed"},
    {"trigger": "propose", "source": "rejected", "dest": "proposed"},
    {"trigger": "approve", "source": "proposed", "dest": "approved"},
    {"trigger": "reject", "source": "proposed", "dest": "rejected"},
    {"trigger": "abandon", "source": "drafting", "dest": "abandoned"},
    {"trigger": "abandon", "source": "proposed", "dest": "abandoned"},
    {"trigger": "abandon", "source": "rejected", "dest": "abandoned"},
]


class GroupingFSM:
    """State machine for one feature's grouping checkpoint.

    Counts proposals and rejections so retries can be audited.
    """

    def __init__(self, feature: str, on_transition: Callable[[str, str, str], None] | None = None):
        """
        Args:
            feature: Feature name (used in log lines)
            on_transition: Optional callback(from_state, to_state, trigger) called after transitions
        """
        self.feature = feature
        self.on_transition = on_transition
        self.proposals = 0
        self.rejections = 0

        self.machine = Machine(
            model=self,
            states=STATES,
            transitions=TRANSITIONS,
            initial="drafting",
            auto_transitions=False,
            send_event=True,
            after_state_change="on_state_change",
        )

    def on_state_change(self, event) -> None:
        from_state = event.transition.source
        to_state = event.transition.dest
        trigger = event.event.name

        if to_state == "proposed":
            self.proposals += 1
        elif to_state == "rejected":
            self.rejections += 1

        logger.info(f"[FSM] {self.feature}: {from_state} -> {to_state} ({trigger})")

        if self.on_transition:
            self.on_transition(from_state, to_state, trigger)

    @property
    def is_terminal(self) -> bool:
        return self.state in TERMINAL_STATES

    def can(self, trigger: str) -> bool:
        """Check if a trigger can be executed in current state."""
        return trigger in self.machine.get_triggers(self.state)
