"""
Hub consolidation.

Merges a hub note and its children back into a single document, either for
export or to flatten the hub in place. Nested hubs are consolidated
recursively up to ``max_depth`` levels.
"""

import re
from pathlib import Path, PurePosixPath
from typing import Any

import structlog

from .config import MAX_RECURSION_DEPTH
from .hub_manager import extract_children, extract_title_from_body, read_note, write_note
from .models import ConsolidationApplyResult, ConsolidationResult, HubChild
from .utils import (
    AtomicError,
    HubNotFoundError,
    NotAHubError,
    PathValidationError,
    RELATED_HEADER,
    VaultIOError,
    adjust_header_levels,
    is_fence_marker,
    is_hub_type,
    is_knowledge_map_header,
    parse_frontmatter,
    stringify_frontmatter,
    strip_hub_suffix,
    validate_path_within_vault,
)

logger = structlog.get_logger(__name__)

EXPORT_FIELDS = ("domain", "tags", "created", "modified", "source", "confidence")


def extract_hub_intro(body: str) -> str:
    """Hub content minus the Knowledge Map and Related sections."""
    kept: list[str] = []
    skipping = False
    in_code = False

    for line in body.split("\n"):
        if is_fence_marker(line):
            in_code = not in_code
        elif not in_code and line.startswith("## "):
            skipping = is_knowledge_map_header(line) or line.rstrip() == RELATED_HEADER
            if skipping:
                continue
        if not skipping:
            kept.append(line)

    return "\n".join(kept).strip()


def demote_title(body: str) -> str:
    """Turn H1 headings outside code fences into H2."""
    result: list[str] = []
    in_code = False

    for line in body.split("\n"):
        if is_fence_marker(line):
            in_code = not in_code
        elif not in_code and line.startswith("# "):
            line = f"#{line}"
        result.append(line)

    return "\n".join(result)


def remove_hub_backlinks(content: str, hub_names: set[str]) -> str:
    """Drop "See also: [[Hub]]" lines pointing back at the hub."""
    for name in hub_names:
        if not name:
            continue
        pattern = re.compile(
            r'^[ \t]*See\s+also:\s*\[\[' + re.escape(name) + r'(?:\|[^\]]+)?\]\][^\n]*(?:\n|$)',
            re.IGNORECASE | re.MULTILINE,
        )
        content = pattern.sub('', content)
    return content.strip()


def export_frontmatter(hub_frontmatter: dict[str, Any], title: str) -> dict[str, Any]:
    """Frontmatter for a flat note: title, an allow-list of fields, and the base type."""
    frontmatter: dict[str, Any] = {"title": title}
    for field in EXPORT_FIELDS:
        if hub_frontmatter.get(field) is not None:
            frontmatter[field] = hub_frontmatter[field]

    note_type = hub_frontmatter.get("type")
    if isinstance(note_type, str) and note_type:
        frontmatter["type"] = strip_hub_suffix(note_type)

    return frontmatter


async def _read_hub(vault_path: Path, hub_path: str) -> tuple[dict[str, Any], str]:
    try:
        full_path = validate_path_within_vault(hub_path, vault_path)
    except PathValidationError as e:
        raise VaultIOError(str(e)) from e

    if not full_path.exists():
        raise HubNotFoundError(hub_path)

    try:
        content = await read_note(full_path)
    except (OSError, UnicodeDecodeError) as e:
        raise VaultIOError(f"Cannot read hub {hub_path}: {e}") from e

    frontmatter, body = parse_frontmatter(content)
    if not is_hub_type(frontmatter.get("type")):
        raise NotAHubError(hub_path, frontmatter.get("type"))

    return frontmatter, body


async def consolidate_hub(
    vault_path: Path,
    hub_path: str,
    include_frontmatter: bool = True,
    recursive: bool = True,
    max_depth: int = 3,
    depth: int = 0,
) -> ConsolidationResult:
    """Consolidate a hub note and its children into a single document.

    Children are merged in Knowledge Map order. A missing or unreadable child
    is skipped with a warning; the rest still merge.

    Raises:
        HubNotFoundError: If the hub file does not exist
        NotAHubError: If the note is not hub-typed
        VaultIOError: If the hub cannot be read
    """
    max_depth = min(max_depth, MAX_RECURSION_DEPTH)
    hub_frontmatter, hub_body = await _read_hub(vault_path, hub_path)

    title = str(hub_frontmatter.get("title") or extract_title_from_body(hub_body))
    hub_names = {PurePosixPath(hub_path).stem, title}
    sources = [hub_path]
    warnings: list[str] = []
    parts = [extract_hub_intro(hub_body)]

    for child in extract_children(hub_body, str(PurePosixPath(hub_path).parent)):
        merged = await _merge_child(vault_path, child, hub_names, recursive, max_depth, depth, warnings)
        if merged is None:
            continue
        content, child_sources = merged
        if content:
            parts.append(content)
        sources.extend(child_sources)

    logger.info(
        "hub_consolidated",
        path=hub_path,
        sources=len(sources),
        warnings=len(warnings),
        depth=depth,
    )

    return ConsolidationResult(
        content="\n\n".join(p for p in parts if p).strip(),
        title=title,
        sources=sources,
        frontmatter=export_frontmatter(hub_frontmatter, title) if include_frontmatter else {},
        warnings=warnings,
    )


async def _merge_child(
    vault_path: Path,
    child: HubChild,
    hub_names: set[str],
    recursive: bool,
    max_depth: int,
    depth: int,
    warnings: list[str],
) -> tuple[str, list[str]] | None:
    try:
        full_path = validate_path_within_vault(child.path, vault_path)
    except PathValidationError as e:
        warnings.append(f"Skipped child {child.title}: {e}")
        return None

    if not full_path.exists():
        warnings.append(f"Child note not found: {child.title} ({child.path})")
        logger.warning("consolidation_child_missing", child=child.path)
        return None

    try:
        raw = await read_note(full_path)
    except (OSError, UnicodeDecodeError) as e:
        warnings.append(f"Failed to read child {child.title} ({child.path}): {e}")
        logger.warning("consolidation_child_unreadable", child=child.path, error=str(e))
        return None

    frontmatter, body = parse_frontmatter(raw)

    if is_hub_type(frontmatter.get("type")) and recursive and depth + 1 < max_depth:
        try:
            nested = await consolidate_hub(
                vault_path, child.path,
                include_frontmatter=False, recursive=True, max_depth=max_depth, depth=depth + 1,
            )
        except AtomicError as e:
            warnings.append(f"Failed to consolidate nested hub {child.path}: {e}")
        else:
            warnings.extend(nested.warnings)
            return adjust_header_levels(nested.content, 1), nested.sources

    content = remove_hub_backlinks(demote_title(body).strip(), hub_names)
    return content, [child.path]


def render_consolidated(result: ConsolidationResult) -> str:
    """Full markdown for a consolidation result."""
    if result.frontmatter:
        return stringify_frontmatter(result.frontmatter, result.content)
    return f"{result.content}\n"


async def apply_consolidation(
    vault_path: Path,
    hub_path: str,
    delete_children: bool = False,
    dry_run: bool = False,
    max_depth: int = 3,
) -> ConsolidationApplyResult:
    """Rewrite a hub file as a flat note, optionally deleting the merged children."""
    try:
        result = await consolidate_hub(vault_path, hub_path, max_depth=max_depth)
    except AtomicError as e:
        logger.error("consolidation_failed", path=hub_path, error=str(e))
        return ConsolidationApplyResult(success=False, path=hub_path, message=str(e))

    to_delete = [s for s in result.sources if s != hub_path] if delete_children else []

    if dry_run:
        return ConsolidationApplyResult(
            success=True,
            path=hub_path,
            message=f"Would consolidate {len(result.sources)} notes",
            deleted=to_delete,
            dry_run=True,
            result=result,
        )

    deleted: list[str] = []
    try:
        await write_note(validate_path_within_vault(hub_path, vault_path), render_consolidated(result))
        for source in to_delete:
            validate_path_within_vault(source, vault_path).unlink()
            deleted.append(source)
    except (OSError, PathValidationError) as e:
        logger.error("consolidation_write_failed", path=hub_path, deleted=len(deleted), error=str(e))
        return ConsolidationApplyResult(
            success=False, path=hub_path, message=str(e), deleted=deleted, result=result,
        )

    logger.info("consolidation_applied", path=hub_path, deleted=len(deleted))

    return ConsolidationApplyResult(
        success=True,
        path=hub_path,
        message=f"Consolidated {len(result.sources)} notes",
        deleted=deleted,
        result=result,
    )
