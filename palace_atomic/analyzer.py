"""
Content analyzer for the atomic note system.

Parses a note body into an immutable sequence of line records and derives
sections, sub-concepts and code blocks as index ranges over it. Everything
here is pure and never raises on well-formed text: malformed markup degrades
to the most conservative reading (an unterminated fence runs to EOF).
"""

import re
from typing import Any, Sequence

from .config import AtomicConfig, settings
from .models import (
    CodeBlockInfo,
    ContentAnalysis,
    LineRecord,
    PalaceAnnotation,
    SectionInfo,
    SubConcept,
)
from .utils import (
    HEADING_PATTERN,
    MARKDOWN_LINK_PATTERN,
    WIKILINK_DISPLAY_PATTERN,
    WIKILINK_PATTERN,
    WIKILINK_PLAIN_PATTERN,
    heading_level,
    is_fence_marker,
    strip_wiki_links,
)

MIN_SUB_CONCEPT_LINES = 5
ANNOTATION_SCAN_LINES = 4
TEMPLATE_BLOCKQUOTE_RATIO = 0.7
TEMPLATE_MIN_CONTENT_LINES = 3
CODE_HEAVY_RATIO = 0.5

ANNOTATIONS: dict[str, PalaceAnnotation] = {
    "<!-- palace:keep -->": "keep",
    "<!-- palace:split -->": "split",
}
TEMPLATE_TITLE_PATTERN = re.compile(
    r'\b(?:examples?|templates?|samples?|placeholders?|demos?)\b', re.IGNORECASE
)
TEMPLATE_MARKERS = ("<!-- template", "<!-- example")

FENCED_CODE_PATTERN = re.compile(r'(```|~~~)[\s\S]*?\1')
INLINE_CODE_PATTERN = re.compile(r'`[^`]+`')


def merge_limits(config: AtomicConfig | dict[str, Any] | None = None) -> AtomicConfig:
    """Merge caller limits over the configured defaults."""
    if config is None:
        return settings.atomic
    if isinstance(config, AtomicConfig):
        return config
    return settings.atomic.model_copy(update=config)


# ============== Line records ==============

def _trim_blank_lines(lines: list[str]) -> list[str]:
    start, end = 0, len(lines)
    while start < end and not lines[start].strip():
        start += 1
    while end > start and not lines[end - 1].strip():
        end -= 1
    return lines[start:end]


def separate_frontmatter(content: str) -> tuple[list[str], int]:
    """Split off a leading ---...--- block. Returns (body lines, frontmatter line count)."""
    lines = content.split("\n")

    if lines[0].rstrip() != "---":
        return _trim_blank_lines(lines), 0

    for i in range(1, len(lines)):
        if lines[i].rstrip() == "---":
            return _trim_blank_lines(lines[i + 1:]), i + 1

    # Unterminated frontmatter is treated as body
    return _trim_blank_lines(lines), 0


def build_line_records(lines: Sequence[str]) -> tuple[LineRecord, ...]:
    """Tag each line with fence membership. Fence markers count as inside the fence."""
    records: list[LineRecord] = []
    in_code = False

    for line in lines:
        if is_fence_marker(line):
            records.append(LineRecord(line, True))
            in_code = not in_code
            continue
        records.append(LineRecord(line, in_code))

    return tuple(records)


# ============== Predicates ==============

def is_section_heading(record: LineRecord) -> bool:
    """Exact H2 outside code: '## ' but not '### '."""
    return (
        not record.in_code_block
        and record.text.startswith("## ")
        and not record.text.startswith("### ")
    )


def is_sub_concept_heading(record: LineRecord) -> bool:
    return not record.in_code_block and 3 <= heading_level(record.text) <= 6


def is_any_heading(record: LineRecord) -> bool:
    return not record.in_code_block and heading_level(record.text) > 0


def detect_annotation(records: Sequence[LineRecord], header_index: int) -> PalaceAnnotation | None:
    """Look for a palace annotation comment in the lines right after a header."""
    stop = min(header_index + 1 + ANNOTATION_SCAN_LINES, len(records))

    for record in records[header_index + 1:stop]:
        line = record.text.strip()
        if not line:
            continue
        if line in ANNOTATIONS:
            return ANNOTATIONS[line]
        if not line.startswith("<!--"):
            break

    return None


def is_template_section(title: str, records: Sequence[LineRecord], start_line: int, end_line: int) -> bool:
    """Detect example/template content that should stay with its hub."""
    if TEMPLATE_TITLE_PATTERN.search(title):
        return True

    body = records[start_line:end_line + 1]
    if any(marker in record.text for record in body for marker in TEMPLATE_MARKERS):
        return True

    content = [record.text.strip() for record in body[1:] if record.text.strip()]
    if len(content) > TEMPLATE_MIN_CONTENT_LINES:
        quoted = sum(1 for line in content if line.startswith(">"))
        if quoted / len(content) > TEMPLATE_BLOCKQUOTE_RATIO:
            return True

    return False


# ============== Extraction ==============

def _heading_title(text: str) -> str:
    match = HEADING_PATTERN.match(text)
    raw = match.group(2) if match else text.lstrip("#")
    return strip_wiki_links(raw.strip())


def extract_sections(records: Sequence[LineRecord]) -> list[SectionInfo]:
    """Extract H2 sections, ignoring headers inside code blocks."""
    starts = [i for i, record in enumerate(records) if is_section_heading(record)]
    sections: list[SectionInfo] = []

    for n, start in enumerate(starts):
        end = starts[n + 1] - 1 if n + 1 < len(starts) else len(records) - 1
        title = _heading_title(records[start].text)
        sections.append(SectionInfo(
            title=title,
            start_line=start,
            end_line=end,
            line_count=end - start + 1,
            annotation=detect_annotation(records, start),
            is_template_content=is_template_section(title, records, start, end),
        ))

    return sections


def _find_parent_section(sections: Sequence[SectionInfo], start_line: int, end_line: int) -> str | None:
    for section in sections:
        if section.start_line < start_line and section.end_line >= end_line:
            return section.title
    return None


def detect_sub_concepts(
    records: Sequence[LineRecord],
    sections: Sequence[SectionInfo],
    min_lines: int = MIN_SUB_CONCEPT_LINES,
) -> list[SubConcept]:
    """Detect H3-H6 regions with at least min_lines lines.

    A region ends just before the next heading of any level outside code.
    """
    boundaries = [i for i, record in enumerate(records) if is_any_heading(record)]
    sub_concepts: list[SubConcept] = []

    for n, start in enumerate(boundaries):
        if not is_sub_concept_heading(records[start]):
            continue
        end = boundaries[n + 1] - 1 if n + 1 < len(boundaries) else len(records) - 1
        line_count = end - start + 1
        if line_count < min_lines:
            continue
        sub_concepts.append(SubConcept(
            title=_heading_title(records[start].text),
            level=heading_level(records[start].text),
            start_line=start,
            end_line=end,
            line_count=line_count,
            parent_section=_find_parent_section(sections, start, end),
        ))

    return sub_concepts


def extract_code_blocks(records: Sequence[LineRecord]) -> list[CodeBlockInfo]:
    """Extract fenced code blocks; an unterminated block runs to EOF."""
    blocks: list[CodeBlockInfo] = []
    open_at: int | None = None
    language = ""

    for i, record in enumerate(records):
        if not is_fence_marker(record.text):
            continue
        if open_at is None:
            open_at = i
            language = record.text[3:].strip()
        else:
            blocks.append(CodeBlockInfo(
                language=language, start_line=open_at, end_line=i, line_count=i - open_at + 1,
            ))
            open_at = None

    if open_at is not None:
        end = len(records) - 1
        blocks.append(CodeBlockInfo(
            language=language, start_line=open_at, end_line=end, line_count=end - open_at + 1,
        ))

    return blocks


def count_words(body: str) -> int:
    """Count words, excluding code and link syntax but keeping link display text."""
    text = FENCED_CODE_PATTERN.sub('', body)
    text = INLINE_CODE_PATTERN.sub('', text)
    text = WIKILINK_DISPLAY_PATTERN.sub(r'\2', text)
    text = WIKILINK_PLAIN_PATTERN.sub(r'\1', text)
    text = MARKDOWN_LINK_PATTERN.sub(r'\1', text)
    return len(text.split())


# ============== Public API ==============

def analyze_content(content: str, config: AtomicConfig | dict[str, Any] | None = None) -> ContentAnalysis:
    """Analyze markdown content for atomic note metrics."""
    limits = merge_limits(config)

    body_lines, frontmatter_lines = separate_frontmatter(content)
    records = build_line_records(body_lines)

    sections = extract_sections(records)
    sub_concepts = detect_sub_concepts(records, sections, limits.min_section_lines)
    code_blocks = extract_code_blocks(records)
    code_lines = sum(block.line_count for block in code_blocks)

    return ContentAnalysis(
        line_count=len(records),
        section_count=len(sections),
        word_count=count_words("\n".join(body_lines)),
        content_lines=len(records) - code_lines,
        frontmatter_lines=frontmatter_lines,
        sections=sections,
        large_sections=[
            s.title for s in sections
            if s.line_count > limits.section_max_lines and s.annotation != "keep"
        ],
        sub_concepts=sub_concepts,
        code_blocks=code_blocks,
        limits=limits,
        lines=records,
    )


def is_code_heavy(analysis: ContentAnalysis) -> bool:
    """Check if more than half of the body is fenced code."""
    code_lines = sum(block.line_count for block in analysis.code_blocks)
    return code_lines > analysis.line_count * CODE_HEAVY_RATIO


def extract_title(content: str) -> str | None:
    """Get the title from content (first H1 heading), wiki-links stripped."""
    body_lines, _ = separate_frontmatter(content)
    for record in build_line_records(body_lines):
        if not record.in_code_block and record.text.startswith("# "):
            return strip_wiki_links(record.text[2:].strip())
    return None


def extract_wiki_links(content: str) -> list[str]:
    """Extract de-duplicated wiki-link targets in order of first appearance."""
    return list(dict.fromkeys(WIKILINK_PATTERN.findall(content)))
