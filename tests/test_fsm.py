"""Tests for taskplan.workflow.fsm module."""

import pytest
from transitions import MachineError

from taskplan.workflow.fsm import GroupingFSM, STATES, TERMINAL_STATES, TRANSITIONS


class TestFSMStates:
    """Tests for FSM state definitions."""

    def test_all_states_defined(self):
        assert set(STATES) == {"drafting", "proposed", "rejected", "approved", "abandoned"}

    def test_terminal_states(self):
        assert set(TERMINAL_STATES) == {"approved", "abandoned"}

    def test_no_transitions_out_of_terminal_states(self):
        sources = {t["source"] for t in TRANSITIONS}
        assert not sources & set(TERMINAL_STATES)


class TestGroupingFSM:

    def test_initial_state(self):
        fsm = GroupingFSM("checkout")
        assert fsm.state == "drafting"
        assert fsm.proposals == 0
        assert not fsm.is_terminal

    def test_propose_approve(self):
        fsm = GroupingFSM("checkout")
        fsm.propose()
        fsm.approve()
        assert fsm.state == "approved"
        assert fsm.is_terminal
        assert fsm.proposals == 1

    def test_reject_cycle_counts(self):
        fsm = GroupingFSM("checkout")
        for _ in range(3):
            fsm.propose()
            fsm.reject()
        fsm.propose()
        fsm.approve()
        assert fsm.proposals == 4
        assert fsm.rejections == 3

    @pytest.mark.parametrize("steps", [[], ["propose"], ["propose", "reject"]])
    def test_abandon_from_any_open_state(self, steps):
        fsm = GroupingFSM("checkout")
        for step in steps:
            getattr(fsm, step)()
        fsm.abandon()
        assert fsm.state == "abandoned"

    def test_cannot_approve_without_proposal(self):
        fsm = GroupingFSM("checkout")
        assert not fsm.can("approve")
        with pytest.raises(MachineError):
            fsm.approve()

    def test_cannot_leave_approved(self):
        fsm = GroupingFSM("checkout")
        fsm.propose()
        fsm.approve()
        assert not fsm.can("reject")
        assert not fsm.can("abandon")

    def test_on_transition_callback(self):
        seen = []
        fsm = GroupingFSM("checkout", on_transition=lambda *args: seen.append(args))
        fsm.propose()
        fsm.reject()
        assert seen == [("drafting", "proposed", "propose"), ("proposed", "rejected", "reject")]
