"""Tests for taskplan.pipeline.extractor module."""

import json
from pathlib import Path
from unittest.mock import patch

import pytest

from taskplan.lib.agents_config import AgentsConfig
from taskplan.lib.errors import CollaboratorError, EmptyRequirementSet
from taskplan.pipeline.extractor import (
    AgentExtractor,
    RuleBasedExtractor,
    content_id,
    normalize_requirements,
)
from taskplan.pipeline.models import DocumentKind, Requirement, SourceDocument

from conftest import ARCHITECTURE_TEXT, PRD_TEXT


def doc(kind, text):
    return SourceDocument(kind=kind, path=Path(f"{kind.value}-x.md"), raw_text=text)


class TestRuleBasedExtractorTagged:

    def test_extracts_tagged_items_in_order(self):
        prd = doc(DocumentKind.PRD, "# PRD\n\n## Cart\n\n- REQ-1: Add to cart\n- REQ-2: Show cart\n")
        reqs = RuleBasedExtractor().extract([prd])
        assert [r.id for r in reqs] == ["REQ-1", "REQ-2"]
        assert reqs[0].text == "Add to cart"
        assert reqs[0].source_document == "prd"
        assert reqs[0].source_location == "Cart, line 5"

    def test_tags_across_documents(self):
        prd = doc(DocumentKind.PRD, "- REQ-1: Add to cart\n")
        techreq = doc(DocumentKind.TECHREQ, "## Limits\n\nREQ-T1: Cart API responds within 200 ms\n")
        reqs = RuleBasedExtractor().extract([prd, techreq])
        assert [r.id for r in reqs] == ["REQ-1", "REQ-T1"]
        assert reqs[1].source_document == "techreq"

    def test_bold_and_numbered_tags(self):
        prd = doc(DocumentKind.PRD, "1. **REQ-7** - Export orders as CSV\n")
        reqs = RuleBasedExtractor().extract([prd])
        assert reqs[0].id == "REQ-7"
        assert reqs[0].text == "Export orders as CSV"

    def test_cross_cutting_marker(self):
        prd = doc(DocumentKind.PRD, "- REQ-9: Log every payment attempt (cross-cutting)\n")
        req = RuleBasedExtractor().extract([prd])[0]
        assert req.cross_cutting is True
        assert req.text == "Log every payment attempt"

    def test_references_become_dependencies(self):
        prd = doc(DocumentKind.PRD, "- REQ-1: Cart API\n- REQ-2: Cart page calling REQ-1\n")
        reqs = RuleBasedExtractor().extract([prd])
        assert reqs[1].depends_on == ["REQ-1"]
        assert reqs[0].depends_on == []

    def test_ignores_fenced_code(self):
        prd = doc(DocumentKind.PRD, "```\n- REQ-99: not real\n```\n- REQ-1: real\n")
        reqs = RuleBasedExtractor().extract([prd])
        assert [r.id for r in reqs] == ["REQ-1"]


class TestRuleBasedExtractorFallback:

    def test_list_items_under_requirements_heading(self):
        prd = doc(DocumentKind.PRD, (
            "# PRD\n\n## Background\n\n- not a requirement\n\n"
            "## Functional Requirements\n\n- Users can sign in\n- Users can sign out\n\n"
            "## Open Questions\n\n- Which provider?\n"
        ))
        reqs = RuleBasedExtractor().extract([prd])
        assert [r.text for r in reqs] == ["Users can sign in", "Users can sign out"]
        assert reqs[0].id == content_id("Users can sign in")

    def test_content_ids_are_stable(self):
        prd = doc(DocumentKind.PRD, "## Requirements\n\n- Users can sign in\n")
        first = RuleBasedExtractor().extract([prd])
        second = RuleBasedExtractor().extract([prd])
        assert first[0].id == second[0].id

    def test_architecture_lists_are_not_requirements(self):
        arch = doc(DocumentKind.ARCHITECTURE, "## Requirements\n\n- Postgres 15\n")
        assert RuleBasedExtractor().extract([arch]) == []


class TestRuleBasedExtractorReferences:

    def test_prose_mention_is_a_dependency(self):
        prd = doc(DocumentKind.PRD, PRD_TEXT + "\nREQ-3 must ship after REQ-1.\n")
        reqs = normalize_requirements(RuleBasedExtractor().extract([prd]), "checkout")
        assert [r.id for r in reqs] == ["REQ-1", "REQ-2", "REQ-3"]
        assert reqs[2].text == "A failed payment shows an error message and lets the user retry."
        assert reqs[2].depends_on == ["REQ-1"]

    def test_architecture_traceability_bullet(self):
        prd = doc(DocumentKind.PRD, PRD_TEXT)
        arch = doc(DocumentKind.ARCHITECTURE, ARCHITECTURE_TEXT + "\n## Traceability\n\n- REQ-1: CartService\n")
        reqs = normalize_requirements(RuleBasedExtractor().extract([prd, arch]), "checkout")
        assert [r.id for r in reqs] == ["REQ-1", "REQ-2", "REQ-3"]
        assert reqs[0].text.startswith("Users can add items")
        assert reqs[0].source_document == "prd"

    def test_untagged_prd_beside_tagged_architecture(self):
        prd = doc(DocumentKind.PRD, "## Requirements\n\n- Users can sign in\n- Users can sign out\n")
        arch = doc(DocumentKind.ARCHITECTURE, "## Decisions\n\n- REQ-ADR-1: Use Postgres for carts\n")
        reqs = RuleBasedExtractor().extract([prd, arch])
        assert [r.id for r in reqs] == [
            content_id("Users can sign in"),
            content_id("Users can sign out"),
            "REQ-ADR-1",
        ]

    def test_mention_before_definition(self):
        prd = doc(DocumentKind.PRD, "REQ-2 builds on REQ-1.\n\n## Items\n\n- REQ-1: Cart API\n- REQ-2: Cart page\n")
        reqs = RuleBasedExtractor().extract([prd])
        assert [(r.id, r.text) for r in reqs] == [("REQ-1", "Cart API"), ("REQ-2", "Cart page")]
        assert reqs[1].depends_on == ["REQ-1"]

    def test_repeated_list_item_still_conflicts(self):
        prd = doc(DocumentKind.PRD, "- REQ-1: Add to cart\n- REQ-1: Remove from cart\n")
        with pytest.raises(CollaboratorError):
            normalize_requirements(RuleBasedExtractor().extract([prd]), "checkout")


class TestContentId:

    def test_whitespace_and_case_insensitive(self):
        assert content_id("Users  can Sign in") == content_id("users can sign in")

    def test_format(self):
        req_id = content_id("anything")
        assert req_id.startswith("REQ-")
        assert len(req_id) == 12


class TestNormalizeRequirements:

    def test_empty_raises(self):
        with pytest.raises(EmptyRequirementSet) as exc_info:
            normalize_requirements([], "checkout")
        assert "checkout" in str(exc_info.value)
        assert exc_info.value.exit_code == 2

    def test_identical_duplicates_collapse(self):
        reqs = [
            Requirement("REQ-1", "Add to cart", "prd"),
            Requirement("REQ-1", "Add  to cart", "techreq"),
        ]
        assert len(normalize_requirements(reqs, "checkout")) == 1

    def test_conflicting_duplicates_raise(self):
        reqs = [
            Requirement("REQ-1", "Add to cart", "prd"),
            Requirement("REQ-1", "Remove from cart", "prd"),
        ]
        with pytest.raises(CollaboratorError) as exc_info:
            normalize_requirements(reqs, "checkout")
        assert exc_info.value.ids == ["REQ-1"]

    def test_blank_text_raises(self):
        with pytest.raises(CollaboratorError):
            normalize_requirements([Requirement("REQ-1", "  ", "prd")], "checkout")

    def test_unknown_dependencies_dropped_with_warning(self, caplog):
        reqs = [Requirement("REQ-1", "Cart page", "prd", depends_on=["REQ-404"])]
        result = normalize_requirements(reqs, "checkout")
        assert result[0].depends_on == []
        assert "REQ-404" in caplog.text


class TestAgentExtractor:

    @patch("taskplan.pipeline.extractor.call_agent_json")
    def test_maps_agent_output(self, mock_call):
        mock_call.return_value = {"requirements": [
            {"id": "REQ-1", "text": "Add to cart", "source_document": "prd", "source_location": "Cart, line 3"},
            {"text": "Audit log (cross-cutting)", "depends_on": ["REQ-1"]},
        ]}
        extractor = AgentExtractor(AgentsConfig())
        reqs = extractor.extract([doc(DocumentKind.PRD, "anything")])

        assert reqs[0].id == "REQ-1"
        assert reqs[1].id == content_id("Audit log")
        assert reqs[1].cross_cutting is True
        assert reqs[1].depends_on == ["REQ-1"]
        assert mock_call.call_args[0][1] == "extract"
        assert mock_call.call_args[0][3] == "requirements"

    def test_prompt_includes_present_documents_only(self):
        extractor = AgentExtractor(AgentsConfig())
        prompt = extractor.build_prompt([
            doc(DocumentKind.PRD, "PRD BODY"),
            SourceDocument(DocumentKind.TECHREQ, None, ""),
        ])
        assert "PRD BODY" in prompt
        assert "techreq" not in prompt.split("## Rules")[0]

    @patch("taskplan.pipeline.agent_utils.subprocess.run")
    def test_invalid_agent_json_is_collaborator_error(self, mock_run):
        mock_run.return_value.returncode = 0
        mock_run.return_value.stdout = json.dumps({"result": "I could not find any requirements."})
        mock_run.return_value.stderr = ""
        with pytest.raises(CollaboratorError):
            AgentExtractor(AgentsConfig()).extract([doc(DocumentKind.PRD, "x")])
