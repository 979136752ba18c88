"""Tests for taskplan.lib.taskparse module."""

import pytest

from taskplan.lib.taskparse import emitted_pairs, parse_task_files, parse_task_text
from taskplan.pipeline.emitter import render_task_documents
from taskplan.pipeline.models import SubtaskStatus

from conftest import ARCHITECTURE_TEXT, make_batch

SAMPLE = """\
# Task List: checkout

## Tasks

### 1.0 Cart

**Requirements:** REQ-1, REQ-2

Cart is per session.

- [x] 1.1 Cart endpoint
  - Requirements: REQ-1
  - Context: POST /api/cart.
  - Testing:
    - Unit: validates quantity
    - Integration: persists the item
- ~~1.2~~ (retired)
- [ ] 1.3 Cart page (in progress)
  - Requirements: REQ-2
  - Testing:
    - E2E: shows items

### 2.0 Payments

**Requirements:** REQ-3

- [ ] 2.1 Card payment
  - Requirements: REQ-3
  - Testing:
    - ErrorHandling: declined card
"""


class TestParseTaskText:

    def test_groups(self):
        groups = parse_task_text(SAMPLE)
        assert [(g.label, g.name) for g in groups] == [("1.0", "Cart"), ("2.0", "Payments")]
        assert groups[0].requirement_ids == ["REQ-1", "REQ-2"]
        assert groups[0].line_number == 5

    def test_subtasks(self):
        cart = parse_task_text(SAMPLE)[0]
        assert [s.ordinal for s in cart.subtasks] == ["1.1", "1.3"]
        assert cart.subtasks[0].status == SubtaskStatus.DONE
        assert cart.subtasks[1].status == SubtaskStatus.IN_PROGRESS
        assert cart.subtasks[1].name == "Cart page"
        assert cart.subtasks[0].requirement_ids == ["REQ-1"]
        assert cart.subtasks[0].testing == [("Unit", "validates quantity"), ("Integration", "persists the item")]
        assert cart.retired == ["1.2"]

    def test_emitted_pairs(self):
        assert emitted_pairs(parse_task_text(SAMPLE)) == [("1.0", "1.1"), ("1.0", "1.3"), ("2.0", "2.1")]

    def test_tilde_mark_reads_as_in_progress(self):
        group = parse_task_text("### 1.0 Cart\n\n- [~] 1.1 Cart page\n")[0]
        assert group.subtasks[0].status == SubtaskStatus.IN_PROGRESS

    def test_checked_box_wins_over_marker(self):
        group = parse_task_text("### 1.0 Cart\n\n- [x] 1.1 Cart page (in progress)\n")[0]
        assert group.subtasks[0].status == SubtaskStatus.DONE

    def test_ignores_lines_before_first_group(self):
        assert parse_task_text("- [ ] 9.9 Floating\n") == []

    def test_reads_rendered_documents(self):
        batch = make_batch({1: [["REQ-1"], ["REQ-2"]], 2: [["REQ-3"]]})
        text = render_task_documents(batch, ARCHITECTURE_TEXT)[0][1]
        groups = parse_task_text(text)
        assert [(g.label, s.ordinal, s.requirement_ids) for g in groups for s in g.subtasks] == [
            ("1.0", "1.1", ["REQ-1"]), ("1.0", "1.2", ["REQ-2"]), ("2.0", "2.1", ["REQ-3"]),
        ]
        assert all(s.testing == [("Unit", "it works")] for g in groups for s in g.subtasks)


class TestParseTaskFiles:

    def test_concatenates_in_order(self, tmp_path):
        first = tmp_path / "tasks-checkout-1.md"
        second = tmp_path / "tasks-checkout-2.md"
        first.write_text("### 1.0 A\n\n- [ ] 1.1 One\n")
        second.write_text("### 2.0 B\n\n- [ ] 2.1 Two\n")
        groups = parse_task_files([first, second])
        assert [g.label for g in groups] == ["1.0", "2.0"]

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            parse_task_files([tmp_path / "tasks-checkout-1.md"])
