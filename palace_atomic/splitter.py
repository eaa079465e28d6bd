"""
Content splitter for the atomic note system.

Partitions an oversized note into a hub plus child notes. Every body line
lands in exactly one place: the hub intro or one child. The only rewrites are
the document's leading H1 (replaced by the hub heading) and each child's first
heading (promoted to H1).

Filenames are title-style and derived, never assigned:
- Hub: "{title}.md" (e.g. "Green Peppers.md")
- Child: "{hub} - {child title}.md" (e.g. "Green Peppers - Climate.md")
"""

import re
from datetime import datetime
from pathlib import PurePosixPath
from typing import Any, NamedTuple

import structlog

from .analyzer import analyze_content, merge_limits
from .config import AtomicConfig, MAX_RECURSION_DEPTH
from .decision import decide_for_analysis, get_effective_limits
from .models import (
    ByLargeSections,
    BySections,
    BySubConcepts,
    ChildContent,
    ContentAnalysis,
    Hierarchical,
    HubContent,
    LinkUpdate,
    NoSplit,
    SectionInfo,
    SplitOptions,
    SplitResult,
    SplitStrategy,
)
from .utils import (
    DegenerateSplitError,
    KNOWLEDGE_MAP_HEADER,
    PRESERVED_HUB_FIELDS,
    RELATED_HEADER,
    adjust_header_levels,
    child_filename,
    format_knowledge_map_link,
    get_base_type,
    get_hub_type,
    heading_level,
    sanitize_for_filename,
    strip_wiki_links,
)

logger = structlog.get_logger(__name__)

SUMMARY_MAX_LENGTH = 100


class _Unit(NamedTuple):
    """A structural unit chosen for extraction."""

    title: str
    start_line: int
    end_line: int
    from_section: str | None


def should_keep_in_hub(section: SectionInfo, hub_sections: list[str]) -> bool:
    """Check if a section stays inline in the hub instead of becoming a child.

    A section stays if it is annotated keep, holds template/example content,
    or matches a hub_sections entry (case-insensitive substring).
    """
    if section.annotation == "keep" or section.is_template_content:
        return True

    title_lower = section.title.lower()
    return any(entry.lower() in title_lower for entry in hub_sections if entry)


def split_content(
    content: str,
    options: SplitOptions,
    config: AtomicConfig | dict[str, Any] | None = None,
    depth: int = 0,
) -> SplitResult:
    """Split content with the given or recommended strategy.

    Raises:
        DegenerateSplitError: If the content cannot be meaningfully partitioned
    """
    analysis = analyze_content(content, merge_limits(config))
    strategy = options.strategy or decide_for_analysis(analysis).suggested_strategy

    result = _dispatch(analysis, options, strategy, depth, hub_stem=None)
    logger.info(
        "content_split",
        title=options.title,
        strategy=strategy.kind,
        children=len(result.children),
        depth=depth,
    )
    return result


def _dispatch(
    analysis: ContentAnalysis,
    options: SplitOptions,
    strategy: SplitStrategy,
    depth: int,
    hub_stem: str | None,
) -> SplitResult:
    if isinstance(strategy, NoSplit):
        raise DegenerateSplitError("Content is within atomic limits; nothing to split")
    if isinstance(strategy, BySections):
        return split_by_sections(analysis, options, hub_stem)
    if isinstance(strategy, ByLargeSections):
        return split_by_large_sections(analysis, options, strategy, hub_stem)
    if isinstance(strategy, BySubConcepts):
        return split_by_sub_concepts(analysis, options, strategy, hub_stem)
    if isinstance(strategy, Hierarchical):
        return split_hierarchical(analysis, options, strategy, depth, hub_stem)
    raise TypeError(f"Unsupported split strategy: {strategy!r}")


# ============== Strategies ==============

def split_by_sections(
    analysis: ContentAnalysis,
    options: SplitOptions,
    hub_stem: str | None = None,
) -> SplitResult:
    """Extract each H2 section into a child unless it stays in the hub."""
    if not analysis.sections:
        raise DegenerateSplitError("Content has no H2 sections to split by")

    units = [
        _Unit(s.title, s.start_line, s.end_line, s.title)
        for s in analysis.sections
        if not should_keep_in_hub(s, options.hub_sections)
    ]
    return _partition(analysis, options, units, hub_stem)


def split_by_large_sections(
    analysis: ContentAnalysis,
    options: SplitOptions,
    strategy: ByLargeSections | None = None,
    hub_stem: str | None = None,
) -> SplitResult:
    """Extract only sections over the (effective) section size limit."""
    limits = get_effective_limits(analysis.limits, analysis)
    wanted = set(strategy.sections) if strategy and strategy.sections else None

    oversized = [
        s for s in analysis.sections
        if (s.title in wanted if wanted is not None else s.line_count > limits.section_max_lines)
    ]
    if not oversized:
        raise DegenerateSplitError("Content has no oversized sections to extract")

    units = [
        _Unit(s.title, s.start_line, s.end_line, s.title)
        for s in oversized
        if not should_keep_in_hub(s, options.hub_sections)
    ]
    return _partition(analysis, options, units, hub_stem)


def split_by_sub_concepts(
    analysis: ContentAnalysis,
    options: SplitOptions,
    strategy: BySubConcepts | None = None,
    hub_stem: str | None = None,
) -> SplitResult:
    """Extract H3+ sub-concepts; their parent section headings stay in the hub."""
    if not analysis.sub_concepts:
        raise DegenerateSplitError("Content has no sub-concepts to extract")

    wanted = set(strategy.sub_concepts) if strategy and strategy.sub_concepts else None
    kept_sections = {
        s.title for s in analysis.sections if should_keep_in_hub(s, options.hub_sections)
    }

    units = [
        _Unit(sc.title, sc.start_line, sc.end_line, sc.parent_section)
        for sc in analysis.sub_concepts
        if (wanted is None or sc.title in wanted) and sc.parent_section not in kept_sections
    ]
    return _partition(analysis, options, units, hub_stem)


def split_hierarchical(
    analysis: ContentAnalysis,
    options: SplitOptions,
    strategy: Hierarchical | None = None,
    depth: int = 0,
    hub_stem: str | None = None,
) -> SplitResult:
    """Split by sections, then re-split children that still exceed the limits.

    A re-split child becomes a sub-hub; its own children hang off it. Recursion
    stops at ``max_depth`` levels (never more than MAX_RECURSION_DEPTH).
    """
    max_depth = min(strategy.max_depth if strategy else MAX_RECURSION_DEPTH, MAX_RECURSION_DEPTH)
    result = split_by_sections(analysis, options, hub_stem)

    if depth + 1 >= max_depth:
        return result

    children = [
        _resplit_child(child, options, analysis.limits, depth + 1, max_depth)
        for child in result.children
    ]
    return result.model_copy(update={"children": children})


def _resplit_child(
    child: ChildContent,
    options: SplitOptions,
    limits: AtomicConfig,
    depth: int,
    max_depth: int,
) -> ChildContent:
    # Lift the child's subsections (H3 -> H2) so they can act as sections
    shifted = adjust_header_levels(child.content, -1)
    child_analysis = analyze_content(shifted, limits)
    decision = decide_for_analysis(child_analysis)
    if not decision.should_split:
        return child

    strategy = decision.suggested_strategy
    if isinstance(strategy, Hierarchical):
        strategy = strategy.model_copy(update={"max_depth": max_depth})
    sub_options = options.model_copy(update={"title": child.title, "strategy": None})

    try:
        sub = _dispatch(
            child_analysis, sub_options, strategy, depth,
            hub_stem=PurePosixPath(child.relative_path).stem,
        )
    except DegenerateSplitError as e:
        logger.debug("child_resplit_skipped", child=child.title, reason=str(e))
        return child

    return child.model_copy(update={
        "content": sub.hub.content,
        "frontmatter": sub.hub.frontmatter,
        "children": sub.children,
    })


# ============== Partition ==============

def _title_line_index(analysis: ContentAnalysis) -> int | None:
    if analysis.lines:
        first = analysis.lines[0]
        if not first.in_code_block and heading_level(first.text) == 1:
            return 0
    return None


def _trim(lines: list[str]) -> str:
    return "\n".join(lines).strip("\n")


def _summarize(analysis: ContentAnalysis, unit: _Unit) -> str | None:
    """First prose line of a unit, used as its Knowledge Map summary."""
    for record in analysis.lines[unit.start_line + 1:unit.end_line + 1]:
        text = record.text.strip()
        if (
            not text
            or record.in_code_block
            or text.startswith(("#", "<!--", ">", "|", "---"))
        ):
            continue
        text = re.sub(r'^(?:[-*+]|\d+[.)])\s+', '', strip_wiki_links(text))
        if len(text) > SUMMARY_MAX_LENGTH:
            text = text[:SUMMARY_MAX_LENGTH - 3].rstrip() + "..."
        return text or None
    return None


def _partition(
    analysis: ContentAnalysis,
    options: SplitOptions,
    units: list[_Unit],
    hub_stem: str | None,
) -> SplitResult:
    """Carve units out of the body; everything else stays in the hub."""
    warnings: list[str] = []
    limits = analysis.limits
    clean_title = strip_wiki_links(options.title).strip()
    hub_stem = hub_stem or sanitize_for_filename(clean_title)
    target_dir = PurePosixPath(options.target_dir or ".")
    hub_path = str(target_dir / f"{hub_stem}.md")

    if len(units) > limits.max_children:
        warnings.append(f"Split produces {len(units)} children, over the limit of {limits.max_children}")

    extracted = {i for u in units for i in range(u.start_line, u.end_line + 1)}
    title_index = _title_line_index(analysis)
    retained = [
        record.text for i, record in enumerate(analysis.lines)
        if i not in extracted and i != title_index
    ]

    if len(units) == 1 and not any(line.strip() for line in retained):
        raise DegenerateSplitError(
            f"Splitting would move the whole document into a single child ({units[0].title})"
        )
    if not units:
        warnings.append("No sections were extracted; all content stays in the hub")

    now = datetime.now().isoformat(timespec="seconds")
    children: list[ChildContent] = []
    links_updated: list[LinkUpdate] = []
    used_stems = {hub_stem}

    for n, unit in enumerate(units, start=1):
        title = unit.title or f"Part {n}"
        filename = child_filename(hub_stem, title)
        stem = filename[:-3]
        suffix = 2
        while stem in used_stems:
            stem = f"{filename[:-3]} ({suffix})"
            suffix += 1
        used_stems.add(stem)
        child_path = str(target_dir / f"{stem}.md")

        body = [record.text for record in analysis.lines[unit.start_line:unit.end_line + 1]]
        body[0] = f"# {title}"

        children.append(ChildContent(
            title=title,
            relative_path=child_path,
            content=_trim(body) + "\n",
            frontmatter=_child_frontmatter(options, title, now),
            from_section=unit.from_section,
            summary=_summarize(analysis, unit),
        ))
        links_updated.append(LinkUpdate(
            from_path=hub_path,
            original_target=f"{clean_title}#{unit.title}",
            new_target=child_path,
        ))

    hub = HubContent(
        title=clean_title,
        relative_path=hub_path,
        content=_build_hub_body(clean_title, _trim(retained), children),
        frontmatter=_hub_frontmatter(options, clean_title, len(children), now),
    )

    for warning in warnings:
        logger.warning("split_warning", title=clean_title, warning=warning)

    return SplitResult(hub=hub, children=children, links_updated=links_updated, warnings=warnings)


def _build_hub_body(title: str, intro: str, children: list[ChildContent]) -> str:
    links = [
        format_knowledge_map_link(PurePosixPath(c.relative_path).stem, c.title, c.summary)
        for c in children
    ]
    parts = [f"# {title}"]
    if intro:
        parts.append(intro)
    parts.append("\n\n".join([KNOWLEDGE_MAP_HEADER, "\n".join(links)]) if links else KNOWLEDGE_MAP_HEADER)
    parts.append(RELATED_HEADER)
    return "\n\n".join(parts) + "\n"


def _palace_block(options: SplitOptions) -> dict[str, Any]:
    palace: dict[str, Any] = {"version": 1}
    if options.layer:
        palace["layer"] = options.layer
    return palace


def _hub_frontmatter(options: SplitOptions, title: str, children_count: int, now: str) -> dict[str, Any]:
    original = options.original_frontmatter
    frontmatter: dict[str, Any] = {
        "type": get_hub_type(original.get("type")),
        "title": title,
        "status": "active",
        "children_count": children_count,
    }
    if options.domain:
        frontmatter["domain"] = options.domain
    frontmatter["created"] = original.get("created", now)
    frontmatter["modified"] = now
    frontmatter["palace"] = _palace_block(options)

    for key in PRESERVED_HUB_FIELDS:
        if original.get(key) is not None:
            frontmatter[key] = original[key]

    return frontmatter


def _child_frontmatter(options: SplitOptions, title: str, now: str) -> dict[str, Any]:
    # No parent field: children link back through the hub's Knowledge Map
    original = options.original_frontmatter
    frontmatter: dict[str, Any] = {
        "type": get_base_type(original.get("type")),
        "title": title,
        "status": "active",
    }
    if options.domain:
        frontmatter["domain"] = options.domain
    frontmatter["created"] = original.get("created", now)
    frontmatter["modified"] = now
    frontmatter["palace"] = _palace_block(options)
    return frontmatter


# ============== Link maintenance ==============

def update_links_in_content(content: str, link_updates: list[LinkUpdate]) -> str:
    """Point [[target]] and [[target|display]] links at their new notes."""
    updated = content

    for update in link_updates:
        new_target = PurePosixPath(update.new_target).stem
        pattern = re.compile(r'\[\[' + re.escape(update.original_target) + r'(\|[^\]]+)?\]\]')
        updated = pattern.sub(
            lambda m: f"[[{new_target}{m.group(1) or ''}]]",
            updated,
        )

    return updated


def validate_split_result(result: SplitResult, max_lines: int = 200, max_hub_lines: int = 150) -> bool:
    """Check that every note produced by a split is itself within limits."""
    if len(result.hub.content.split("\n")) > max_hub_lines:
        return False

    pending = list(result.children)
    while pending:
        child = pending.pop()
        limit = max_hub_lines if child.children else max_lines
        if len(child.content.split("\n")) > limit:
            return False
        pending.extend(child.children)

    return True
