"""
Requirement extraction.

Turns the loaded source documents into an ordered list of Requirement
records with stable ids. Two collaborators implement the Extractor
protocol:

- RuleBasedExtractor: deterministic. Uses explicit REQ-<id> tags; a PRD or
  TechReq document without tags contributes the list items under its
  "Requirements" headings, with ids derived from a content hash so
  regeneration never renumbers.
- AgentExtractor: asks the configured agent CLI, then enforces the schema.

Both outputs pass through normalize_requirements().
"""

import hashlib
import logging
import re
from dataclasses import dataclass
from typing import Optional, Protocol

from taskplan.lib.agents_config import AgentsConfig
from taskplan.lib.constants import REQ_ID_PATTERN
from taskplan.lib.errors import CollaboratorError, EmptyRequirementSet
from taskplan.lib.prompts import build_section, render_prompt
from taskplan.pipeline.agent_utils import call_agent_json
from taskplan.pipeline.models import DocumentKind, Requirement, SourceDocument

logger = logging.getLogger(__name__)

_ID = r'REQ-[A-Za-z0-9](?:[A-Za-z0-9_-]|\.(?=[A-Za-z0-9]))*'

HEADING_RE = re.compile(r'^(#{1,6})\s+(.+?)\s*#*\s*$')
TAG_RE = re.compile(
    r'^\s*(?:[-*+]\s+|\d+[.)]\s+)?(?:\[[ xX]\]\s+)?(?:\*\*|__)?\[?(' + _ID + r')\]?(?:\*\*|__)?'
    r'\s*[:.)\-–—]?\s+(\S.*?)\s*$'
)
LIST_ITEM_RE = re.compile(r'^( {0,1})(?:[-*+]|\d+[.)])\s+(?:\[[ xX]\]\s+)?(\S.*?)\s*$')
LIST_MARKER_RE = re.compile(r'^\s*(?:[-*+]|\d+[.)])\s')
REF_RE = re.compile(r'\b' + _ID)
CROSS_CUTTING_RE = re.compile(r'\s*[(\[]cross[- ]cutting[)\]]', re.IGNORECASE)
FENCE_RE = re.compile(r'^\s*(```|~~~)')

# Documents whose list items take precedence as requirement definitions
REQUIREMENT_KINDS = (DocumentKind.PRD, DocumentKind.TECHREQ)


class Extractor(Protocol):
    def extract(self, documents: list[SourceDocument]) -> list[Requirement]:
        ...


def content_id(text: str) -> str:
    """Stable id derived from the requirement text."""
    normalized = " ".join(text.lower().split())
    return "REQ-" + hashlib.sha1(normalized.encode("utf-8")).hexdigest()[:8].upper()


def _clean_text(text: str) -> tuple[str, bool]:
    """Strip the cross-cutting marker; return (text, cross_cutting)."""
    cross_cutting = bool(CROSS_CUTTING_RE.search(text))
    text = CROSS_CUTTING_RE.sub("", text).strip()
    return text, cross_cutting


def _make_requirement(req_id: str, text: str, doc: SourceDocument, location: str) -> Requirement:
    text, cross_cutting = _clean_text(text)
    refs = [r for r in dict.fromkeys(REF_RE.findall(text)) if r != req_id]
    return Requirement(
        id=req_id,
        text=text,
        source_document=doc.kind.value,
        source_location=location,
        cross_cutting=cross_cutting,
        depends_on=refs,
    )


def _iter_lines(doc: SourceDocument):
    """Yield (lineno, line, heading_level, heading, is_heading), skipping fenced code."""
    in_fence = False
    heading = None
    level = 0
    for lineno, line in enumerate(doc.raw_text.splitlines(), 1):
        if FENCE_RE.match(line):
            in_fence = not in_fence
            continue
        if in_fence:
            continue
        match = HEADING_RE.match(line)
        if match:
            level = len(match.group(1))
            heading = match.group(2).strip()
            yield lineno, line, level, heading, True
            continue
        yield lineno, line, level, heading, False


def _location(heading: str | None, lineno: int) -> str:
    return f"{heading}, line {lineno}" if heading else f"line {lineno}"


@dataclass
class _TagLine:
    """A line that starts with a REQ-* tag."""
    doc_index: int
    doc: SourceDocument
    lineno: int
    heading: Optional[str]
    req_id: str
    text: str
    list_item: bool
    paragraph_start: bool

    @property
    def rank(self) -> Optional[int]:
        """Definition priority, lowest first. None for a tag inside running prose."""
        if not (self.list_item or self.paragraph_start):
            return None
        return (0 if self.list_item else 2) + (0 if self.doc.kind in REQUIREMENT_KINDS else 1)


def _scan_tags(doc_index: int, doc: SourceDocument):
    paragraph_start = True
    for lineno, line, _, heading, is_heading in _iter_lines(doc):
        if is_heading or not line.strip():
            paragraph_start = True
            continue
        match = TAG_RE.match(line)
        if match:
            yield _TagLine(
                doc_index=doc_index,
                doc=doc,
                lineno=lineno,
                heading=heading,
                req_id=match.group(1),
                text=match.group(2),
                list_item=bool(LIST_MARKER_RE.match(line)),
                paragraph_start=paragraph_start,
            )
        paragraph_start = False


def _section_items(doc: SourceDocument):
    """Yield (lineno, heading, text) for list items under "requirement" headings."""
    section_level = None
    for lineno, line, level, heading, is_heading in _iter_lines(doc):
        if is_heading:
            if "requirement" in heading.lower():
                section_level = level
            elif section_level is not None and level <= section_level:
                section_level = None
            continue
        if section_level is None:
            continue
        match = LIST_ITEM_RE.match(line)
        if match:
            yield lineno, heading, match.group(2)


class RuleBasedExtractor:
    """Deterministic extractor for tagged or conventionally structured documents.

    A tag defines a requirement the first time its id appears as a list item
    or at the start of a paragraph, list items in the PRD and TechReq winning
    over everything else. Any later appearance is a reference: ids mentioned
    alongside it become dependencies of the referenced requirement. A PRD or
    TechReq document that defines no tags contributes the list items under
    its requirement headings instead.
    """

    def extract(self, documents: list[SourceDocument]) -> list[Requirement]:
        tags = [tag for i, doc in enumerate(documents) for tag in _scan_tags(i, doc)]
        defined: dict[str, Requirement] = {}
        entries = []
        references = [tag for tag in tags if tag.rank is None]

        for tag in sorted((t for t in tags if t.rank is not None), key=lambda t: t.rank):
            # repeated list items in requirement documents go to normalize_requirements
            redefinition = tag.list_item and tag.doc.kind in REQUIREMENT_KINDS
            if tag.req_id in defined and not redefinition:
                references.append(tag)
                continue
            req = _make_requirement(tag.req_id, tag.text, tag.doc, _location(tag.heading, tag.lineno))
            defined.setdefault(tag.req_id, req)
            entries.append((tag.doc_index, tag.lineno, req))

        for tag in references:
            target = defined.get(tag.req_id)
            if target is None:
                continue
            logger.debug(f"{tag.req_id} at {tag.doc.kind.value} line {tag.lineno} is a reference")
            for ref in REF_RE.findall(tag.text):
                if ref != target.id and ref not in target.depends_on:
                    target.depends_on.append(ref)

        defining = {index for index, _, _ in entries}
        for index, doc in enumerate(documents):
            if doc.kind not in REQUIREMENT_KINDS or not doc.present or index in defining:
                continue
            logger.info(f"No REQ-* tags in {doc.kind.value}; using list items under requirement headings")
            for lineno, heading, text in _section_items(doc):
                req = _make_requirement(content_id(_clean_text(text)[0]), text, doc, _location(heading, lineno))
                entries.append((index, lineno, req))

        return [req for _, _, req in sorted(entries, key=lambda e: (e[0], e[1]))]


class AgentExtractor:
    """Extractor backed by the agent CLI configured for the 'extract' stage."""

    def __init__(self, agents: AgentsConfig, timeout: int = 300):
        self.agents = agents
        self.timeout = timeout

    def build_prompt(self, documents: list[SourceDocument]) -> str:
        sections = []
        for doc in documents:
            if doc.present:
                sections.append(build_section(doc.raw_text, f"## {doc.kind.value} ({doc.path.name})"))
        return render_prompt("extract_requirements", documents_section="\n".join(sections))

    def extract(self, documents: list[SourceDocument]) -> list[Requirement]:
        data = call_agent_json(
            self.agents, "extract", self.build_prompt(documents), "requirements", self.timeout,
        )
        requirements = []
        for item in data["requirements"]:
            text, cross_cutting = _clean_text(item["text"])
            req_id = item.get("id") or ""
            if not REQ_ID_PATTERN.match(req_id):
                req_id = content_id(text)
            requirements.append(Requirement(
                id=req_id,
                text=text,
                source_document=item.get("source_document", DocumentKind.PRD.value),
                source_location=item.get("source_location"),
                cross_cutting=cross_cutting or bool(item.get("cross_cutting", False)),
                depends_on=list(item.get("depends_on", [])),
            ))
        return requirements


def normalize_requirements(requirements: list[Requirement], feature: str) -> list[Requirement]:
    """Enforce the extractor output contract.

    - text must be non-empty
    - ids unique; identical duplicates collapse, conflicting ones are an error
    - depends_on restricted to known ids

    Raises:
        EmptyRequirementSet: nothing left to group
        CollaboratorError: conflicting duplicate ids or blank requirement text
    """
    by_id: dict[str, Requirement] = {}
    ordered = []

    for req in requirements:
        if not req.text.strip():
            raise CollaboratorError(f"Requirement {req.id} has no text", [req.id])
        existing = by_id.get(req.id)
        if existing is not None:
            if " ".join(existing.text.split()) != " ".join(req.text.split()):
                raise CollaboratorError(
                    f"Requirement id {req.id} is used for two different requirements "
                    f"({existing.source_location or existing.source_document} and "
                    f"{req.source_location or req.source_document})",
                    [req.id],
                )
            logger.debug(f"Collapsed duplicate requirement {req.id}")
            continue
        by_id[req.id] = req
        ordered.append(req)

    if not ordered:
        raise EmptyRequirementSet(feature)

    for req in ordered:
        unknown = [d for d in req.depends_on if d not in by_id]
        if unknown:
            logger.warning(f"{req.id} references unknown requirement(s): {', '.join(unknown)}")
        req.depends_on = [d for d in req.depends_on if d in by_id and d != req.id]

    return ordered
