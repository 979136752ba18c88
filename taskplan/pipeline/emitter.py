"""
Markdown serialization of a batch.

Task documents are split into tasks-<feature>-<n>.md chunks at task group
boundaries. Every chunk repeats the Architecture Overview and Component
Breakdown so it can be reviewed on its own. Output depends only on the
batch and the architecture text: rendering twice gives identical bytes.
"""

import logging
import re
from dataclasses import dataclass
from pathlib import Path

from taskplan.lib.constants import DEFAULT_TASKS_MAX_LINES
from taskplan.pipeline.models import Batch, TaskGroup, parse_ordinal

logger = logging.getLogger(__name__)

HEADING_RE = re.compile(r'^(#{1,6})\s+(.+?)\s*#*\s*$')
TABLE_ROW_RE = re.compile(r'^\s*\|(.+)\|\s*$')
TABLE_SEP_RE = re.compile(r'^\s*\|?\s*:?-{3,}:?\s*(\|\s*:?-{3,}:?\s*)*\|?\s*$')


@dataclass
class _Section:
    level: int
    title: str
    body: list[str]


def _sections(text: str) -> list[_Section]:
    """Split Markdown into heading sections, ignoring fenced code."""
    sections = [_Section(0, "", [])]
    in_fence = False
    for line in text.splitlines():
        if line.lstrip().startswith("```"):
            in_fence = not in_fence
        match = None if in_fence else HEADING_RE.match(line)
        if match:
            sections.append(_Section(len(match.group(1)), match.group(2), []))
        else:
            sections[-1].body.append(line)
    return sections


def _paragraphs(lines: list[str]) -> str:
    return "\n".join(lines).strip()


def _first_sentence(text: str) -> str:
    flat = " ".join(text.split())
    match = re.match(r'(.+?[.!?])(\s|$)', flat)
    return match.group(1) if match else flat


def _cells(line: str) -> list[str]:
    return [c.strip() for c in TABLE_ROW_RE.match(line).group(1).split("|")]


def extract_overview(architecture_text: str) -> str:
    """Body of the first heading containing 'overview', else the preamble."""
    sections = _sections(architecture_text)
    for i, section in enumerate(sections):
        if "overview" in section.title.lower():
            body = list(section.body)
            # Include nested subsections
            for child in sections[i + 1:]:
                if child.level <= section.level:
                    break
                body.extend(["", f"{'#' * child.level} {child.title}", *child.body])
            return _paragraphs(body)

    preamble = _paragraphs(sections[0].body)
    if preamble:
        return preamble
    if len(sections) > 1:
        return _paragraphs(sections[1].body)
    return ""


def extract_components(architecture_text: str) -> list[tuple[str, str]]:
    """(component, responsibility) pairs from the architecture document.

    Uses the first table under a heading mentioning 'component'; failing
    that, the subheadings of that section with the first sentence of each.
    """
    sections = _sections(architecture_text)
    for i, section in enumerate(sections):
        if "component" not in section.title.lower():
            continue

        rows = [line for line in section.body if TABLE_ROW_RE.match(line)]
        if len(rows) >= 2 and TABLE_SEP_RE.match(rows[1]):
            pairs = []
            for row in rows[2:]:
                cells = _cells(row)
                if cells and cells[0]:
                    pairs.append((cells[0], " / ".join(c for c in cells[1:] if c)))
            if pairs:
                return pairs

        children = []
        for child in sections[i + 1:]:
            if child.level <= section.level:
                break
            if child.level == section.level + 1:
                children.append((child.title, _first_sentence(_paragraphs(child.body))))
        if children:
            return children
    return []


def _escape_cell(text: str) -> str:
    return " ".join(text.split()).replace("|", "\\|")


def render_preamble(batch: Batch, architecture_text: str, part: int, parts: int) -> list[str]:
    lines = [f"# Task List: {batch.feature}", ""]
    if parts > 1:
        lines += [f"Part {part} of {parts}", ""]
    lines += [f"Batch: `{batch.batch_id}`", ""]

    overview = extract_overview(architecture_text)
    lines += ["## Architecture Overview", ""]
    lines += [overview if overview else f"_No overview found in architecture-{batch.feature}.md._", ""]

    lines += ["## Component Breakdown", ""]
    components = extract_components(architecture_text)
    if components:
        lines += ["| Component | Responsibility |", "|---|---|"]
        lines += [f"| {_escape_cell(name)} | {_escape_cell(role)} |" for name, role in components]
    else:
        lines.append(f"_No components listed in architecture-{batch.feature}.md._")
    lines += ["", "## Tasks", ""]
    return lines


def render_group(batch: Batch, group: TaskGroup) -> list[str]:
    """Lines for one task group and its subtasks, retired ordinals included."""
    lines = [f"### {group.label} {group.name}", ""]
    lines += [f"**Requirements:** {', '.join(group.requirement_ids)}", ""]
    if group.shared_context:
        lines += [group.shared_context.strip(), ""]

    entries = [(s.index, s) for s in batch.subtasks_for(group.ordinal)]
    for ordinal in batch.retired:
        g, i = parse_ordinal(ordinal)
        if g == group.ordinal:
            entries.append((i, None))

    for index, subtask in sorted(entries, key=lambda e: e[0]):
        if subtask is None:
            lines.append(f"- ~~{group.ordinal}.{index}~~ (retired)")
            continue
        lines.append(f"- [{subtask.status.checkbox}] {subtask.ordinal} {subtask.name}{subtask.status.suffix}")
        lines.append(f"  - Requirements: {', '.join(subtask.requirement_ids)}")
        if subtask.specific_context:
            lines.append(f"  - Context: {' '.join(subtask.specific_context.split())}")
        lines.append("  - Testing:")
        for t in subtask.testing_requirements:
            lines.append(f"    - {t.type.value}: {' '.join(t.description.split())}")
    lines.append("")
    return lines


def chunk_groups(batch: Batch, preamble_lines: int, max_lines: int) -> list[list[TaskGroup]]:
    """Pack whole groups into chunks of at most max_lines where possible.

    A group that alone exceeds the limit gets a chunk to itself.
    """
    chunks: list[list[TaskGroup]] = []
    current: list[TaskGroup] = []
    size = preamble_lines
    for group in batch.groups:
        group_lines = len(render_group(batch, group))
        if current and size + group_lines > max_lines:
            chunks.append(current)
            current, size = [], preamble_lines
        current.append(group)
        size += group_lines
    if current or not chunks:
        chunks.append(current)
    return chunks


def task_filename(feature: str, part: int) -> str:
    return f"tasks-{feature}-{part}.md"


def render_task_documents(
    batch: Batch,
    architecture_text: str,
    max_lines: int = DEFAULT_TASKS_MAX_LINES,
) -> list[tuple[str, str]]:
    """Render the batch as [(filename, markdown)] chunks."""
    # Preamble length does not depend on part numbers beyond the "Part" line
    preamble_size = len(render_preamble(batch, architecture_text, 1, 2))
    chunks = chunk_groups(batch, preamble_size, max_lines)

    documents = []
    for part, groups in enumerate(chunks, 1):
        lines = render_preamble(batch, architecture_text, part, len(chunks))
        for group in groups:
            lines += render_group(batch, group)
        text = "\n".join(lines).rstrip() + "\n"
        documents.append((task_filename(batch.feature, part), text))
    logger.debug(f"Rendered {len(documents)} task document(s) for {batch.feature}")
    return documents


def task_document_paths(output_dir: Path, feature: str) -> list[Path]:
    """Existing tasks-<feature>-<n>.md files, in part order."""
    pattern = re.compile(r'^tasks-' + re.escape(feature) + r'-(\d+)\.md$')
    found = []
    if output_dir.is_dir():
        for path in output_dir.iterdir():
            match = pattern.match(path.name)
            if match:
                found.append((int(match.group(1)), path))
    return [p for _, p in sorted(found)]


def write_documents(output_dir: Path, feature: str, documents: list[tuple[str, str]]) -> list[Path]:
    """Write rendered documents, removing task chunks left over from a longer batch."""
    output_dir.mkdir(parents=True, exist_ok=True)
    names = {name for name, _ in documents}
    for stale in task_document_paths(output_dir, feature):
        if stale.name not in names:
            logger.info(f"Removing stale task chunk {stale.name}")
            stale.unlink()

    written = []
    for name, text in documents:
        path = output_dir / name
        path.write_text(text, encoding="utf-8")
        written.append(path)
    return written
