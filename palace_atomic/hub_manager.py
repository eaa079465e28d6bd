"""
Hub manager for the atomic note system.

Handles CRUD operations for hub notes and their children, and writes whole
split results to the vault. Filesystem failures are caught here and returned
as ``success=False`` results; nothing below this boundary raises to callers.

Hub filenames are derived from the title ("Green Peppers.md"); the hub's
"## Knowledge Map" section is the only record of its children.
"""

from datetime import datetime
from pathlib import Path, PurePosixPath
from typing import Any

import aiofiles
import structlog

from .models import (
    ChildContent,
    HubChild,
    HubInfo,
    HubOperationResult,
    PersistResult,
    SplitResult,
)
from .utils import (
    ContentValidationError,
    KNOWLEDGE_MAP_HEADER,
    PRESERVED_HUB_FIELDS,
    PathValidationError,
    RELATED_HEADER,
    format_knowledge_map_link,
    get_base_type,
    get_hub_type,
    is_fence_marker,
    is_hub_type,
    is_knowledge_map_header,
    parse_frontmatter,
    parse_knowledge_map,
    resolve_child_path,
    stringify_frontmatter,
    strip_wiki_links,
    title_to_filename,
    validate_content_size,
    validate_folder_path,
    validate_path_within_vault,
)

logger = structlog.get_logger(__name__)

OVERVIEW_HEADER = "## Overview"
OVERVIEW_PLACEHOLDER = "Brief overview of this topic."

# Failures that stay inside this module and come back as results
FILE_ERRORS = (OSError, UnicodeDecodeError, PathValidationError, ContentValidationError)


def _now() -> str:
    return datetime.now().isoformat(timespec="seconds")


async def read_note(path: Path) -> str:
    """Read a note as UTF-8 text."""
    async with aiofiles.open(path, mode="r", encoding="utf-8") as f:
        return await f.read()


async def write_note(path: Path, content: str) -> None:
    """Write a note as UTF-8 text, creating parent folders."""
    path.parent.mkdir(parents=True, exist_ok=True)
    async with aiofiles.open(path, mode="w", encoding="utf-8") as f:
        await f.write(content)


def get_hub_path(directory: str, title: str) -> str:
    """Get the hub path for a directory and title."""
    return str(PurePosixPath(directory or ".") / title_to_filename(strip_wiki_links(title)))


def is_hub_note(frontmatter: dict[str, Any]) -> bool:
    """Hub notes carry a type ending in _hub."""
    return is_hub_type(frontmatter.get("type"))


def link_target(child: HubChild) -> str:
    """Knowledge Map target for a child: its file stem."""
    return PurePosixPath(child.path).stem or child.title


def render_knowledge_map(children: list[HubChild]) -> list[str]:
    return [format_knowledge_map_link(link_target(c), c.title, c.summary) for c in children]


def build_hub_body(title: str, children: list[HubChild], overview: str | None = None) -> str:
    """Build hub note content: heading, overview, Knowledge Map, Related."""
    overview = (overview or "").strip()
    lines = overview.split("\n")
    if lines and lines[0].strip() == OVERVIEW_HEADER:
        overview = "\n".join(lines[1:]).strip()

    parts = [f"# {title}"]
    if overview:
        parts.append(overview)
    else:
        parts.append(f"{OVERVIEW_HEADER}\n\n{OVERVIEW_PLACEHOLDER}")

    links = render_knowledge_map(children)
    parts.append(f"{KNOWLEDGE_MAP_HEADER}\n\n" + "\n".join(links) if links else KNOWLEDGE_MAP_HEADER)
    parts.append(RELATED_HEADER)
    return "\n\n".join(parts) + "\n"


def replace_knowledge_map(body: str, children: list[HubChild]) -> str:
    """Regenerate only the Knowledge Map block (header through next H2).

    Everything else in the body is kept verbatim. A body without a Knowledge
    Map gets one appended.
    """
    lines = body.split("\n")
    new_lines: list[str] = []
    skipping = False
    replaced = False
    in_code = False

    for line in lines:
        if is_fence_marker(line):
            in_code = not in_code
        if not in_code and not replaced and is_knowledge_map_header(line):
            new_lines.extend([line, "", *render_knowledge_map(children)])
            skipping = True
            replaced = True
            continue
        if skipping:
            if not in_code and line.startswith("## "):
                skipping = False
                new_lines.extend(["", line])
            continue
        new_lines.append(line)

    if not replaced:
        new_lines.extend(["", KNOWLEDGE_MAP_HEADER, "", *render_knowledge_map(children)])

    return "\n".join(new_lines)


def replace_title(body: str, title: str) -> str:
    """Rewrite the first H1 outside code, or prepend one if the body has none."""
    lines = body.split("\n")
    in_code = False

    for i, line in enumerate(lines):
        if is_fence_marker(line):
            in_code = not in_code
        elif not in_code and line.startswith("# "):
            lines[i] = f"# {title}"
            return "\n".join(lines)

    return f"# {title}\n\n{body}"


def extract_title_from_body(body: str) -> str:
    """Extract title from body (H1 heading), wiki-links stripped."""
    for line in body.split("\n"):
        if line.startswith("# "):
            return strip_wiki_links(line[2:].strip())
    return "Untitled Hub"


def extract_children(body: str, hub_dir: str) -> list[HubChild]:
    """Read the Knowledge Map bullets into HubChild records."""
    children: list[HubChild] = []
    for target, display, summary in parse_knowledge_map(body):
        children.append(HubChild(
            path=resolve_child_path(target, hub_dir),
            title=display or PurePosixPath(target).name.removesuffix(".md"),
            summary=summary,
        ))
    return children


async def create_hub(
    vault_path: Path,
    hub_dir: str,
    title: str,
    children: list[HubChild],
    domain: list[str] | None = None,
    original_frontmatter: dict[str, Any] | None = None,
    overview: str | None = None,
    dry_run: bool = False,
) -> HubOperationResult:
    """Create a new hub note.

    Args:
        vault_path: Vault root
        hub_dir: Folder for the hub, relative to the vault
        title: Hub title; the filename is derived from it
        children: Children listed in the Knowledge Map, in order
        domain: Optional domain tags
        original_frontmatter: Frontmatter of the note being split
        overview: Intro content kept verbatim when non-blank
        dry_run: Build everything but write nothing

    Returns:
        HubOperationResult with the new hub's info
    """
    title = strip_wiki_links(title).strip()
    relative_path = get_hub_path(hub_dir, title)
    original_frontmatter = original_frontmatter or {}

    now = _now()
    frontmatter: dict[str, Any] = {
        "type": get_hub_type(original_frontmatter.get("type")),
        "title": title,
        "status": "active",
        "children_count": len(children),
    }
    if domain:
        frontmatter["domain"] = domain
    frontmatter["created"] = original_frontmatter.get("created", now)
    frontmatter["modified"] = now
    frontmatter["palace"] = {"version": 1}
    for key in PRESERVED_HUB_FIELDS:
        if original_frontmatter.get(key) is not None:
            frontmatter[key] = original_frontmatter[key]

    full_content = stringify_frontmatter(frontmatter, build_hub_body(title, children, overview))
    hub_info = HubInfo(path=relative_path, title=title, children_count=len(children), children=children)

    if dry_run:
        return HubOperationResult(
            success=True,
            path=relative_path,
            message=f"Would create hub with {len(children)} children",
            hub=hub_info,
        )

    try:
        validate_folder_path(hub_dir, vault_path)
        hub_file = validate_path_within_vault(relative_path, vault_path)
        await write_note(hub_file, full_content)
    except FILE_ERRORS as e:
        logger.error("hub_create_failed", path=relative_path, error=str(e))
        return HubOperationResult(success=False, path=relative_path, message=str(e))

    logger.info("hub_created", path=relative_path, children=len(children))

    return HubOperationResult(
        success=True,
        path=relative_path,
        message=f"Created hub with {len(children)} children",
        hub=hub_info,
    )


async def get_hub_info(vault_path: Path, hub_path: str, validate_children: bool = True) -> HubInfo | None:
    """Read hub information.

    With ``validate_children``, children_count counts only children whose file
    exists. The stored count is neither trusted nor rewritten here.
    """
    try:
        full_path = validate_path_within_vault(hub_path, vault_path)
    except PathValidationError as e:
        logger.warning("hub_path_invalid", path=hub_path, error=str(e))
        return None

    if not full_path.exists():
        return None

    try:
        content = await read_note(full_path)
    except (OSError, UnicodeDecodeError) as e:
        logger.error("hub_read_failed", path=hub_path, error=str(e))
        return None

    frontmatter, body = parse_frontmatter(content)
    title = frontmatter.get("title") or extract_title_from_body(body)
    stored_count = frontmatter.get("children_count", 0)
    children = extract_children(body, str(PurePosixPath(hub_path).parent))

    children_count = stored_count if isinstance(stored_count, int) else 0
    if validate_children:
        children_count = sum(1 for c in children if (vault_path / c.path).exists())
        if children_count != stored_count:
            logger.info(
                "hub_children_count_mismatch",
                path=hub_path,
                stored=stored_count,
                actual=children_count,
            )

    return HubInfo(path=hub_path, title=str(title), children_count=children_count, children=children)


async def update_hub(
    vault_path: Path,
    hub_path: str,
    title: str | None = None,
    children: list[HubChild] | None = None,
    frontmatter: dict[str, Any] | None = None,
    dry_run: bool = False,
) -> HubOperationResult:
    """Update a hub note's frontmatter and, if given, its Knowledge Map."""
    try:
        full_path = validate_path_within_vault(hub_path, vault_path)
    except PathValidationError as e:
        return HubOperationResult(success=False, path=hub_path, message=str(e))

    if not full_path.exists():
        return HubOperationResult(success=False, path=hub_path, message=f"Hub not found: {hub_path}")

    try:
        content = await read_note(full_path)
    except (OSError, UnicodeDecodeError) as e:
        logger.error("hub_read_failed", path=hub_path, error=str(e))
        return HubOperationResult(success=False, path=hub_path, message=str(e))

    fm, body = parse_frontmatter(content)

    if frontmatter:
        fm.update(frontmatter)
    if title:
        title = strip_wiki_links(title).strip()
        fm["title"] = title
        body = replace_title(body.strip("\n"), title)
    fm["modified"] = _now()

    if children is not None:
        fm["children_count"] = len(children)
        body = replace_knowledge_map(body.strip("\n"), children)

    palace = fm.get("palace")
    if not isinstance(palace, dict):
        palace = {}
    version = palace.get("version")
    palace["version"] = (version if isinstance(version, int) else 0) + 1
    fm["palace"] = palace

    hub_children = children if children is not None else extract_children(
        body, str(PurePosixPath(hub_path).parent)
    )
    hub_info = HubInfo(
        path=hub_path,
        title=str(fm.get("title") or extract_title_from_body(body)),
        children_count=fm.get("children_count", len(hub_children)),
        children=hub_children,
    )

    if dry_run:
        return HubOperationResult(success=True, path=hub_path, message="Would update hub", hub=hub_info)

    try:
        await write_note(full_path, stringify_frontmatter(fm, body))
    except FILE_ERRORS as e:
        logger.error("hub_update_failed", path=hub_path, error=str(e))
        return HubOperationResult(success=False, path=hub_path, message=str(e))

    logger.info("hub_updated", path=hub_path, version=palace["version"])

    return HubOperationResult(success=True, path=hub_path, message="Hub updated successfully", hub=hub_info)


async def add_child(vault_path: Path, hub_path: str, child: HubChild, dry_run: bool = False) -> HubOperationResult:
    """Add a child to an existing hub. Adding a present child is a no-op."""
    hub_info = await get_hub_info(vault_path, hub_path)

    if not hub_info:
        return HubOperationResult(success=False, path=hub_path, message=f"Hub not found: {hub_path}")

    if any(c.path == child.path for c in hub_info.children):
        return HubOperationResult(
            success=True, path=hub_path, message="Child already exists in hub", hub=hub_info,
        )

    return await update_hub(vault_path, hub_path, children=[*hub_info.children, child], dry_run=dry_run)


async def remove_child(vault_path: Path, hub_path: str, child_path: str, dry_run: bool = False) -> HubOperationResult:
    """Remove a child from a hub. Removing an absent child is a no-op."""
    hub_info = await get_hub_info(vault_path, hub_path)

    if not hub_info:
        return HubOperationResult(success=False, path=hub_path, message=f"Hub not found: {hub_path}")

    remaining = [c for c in hub_info.children if c.path != child_path]
    if len(remaining) == len(hub_info.children):
        return HubOperationResult(
            success=True, path=hub_path, message="Child not found in hub", hub=hub_info,
        )

    return await update_hub(vault_path, hub_path, children=remaining, dry_run=dry_run)


async def create_child_note(
    vault_path: Path,
    child_path: str,
    title: str,
    content: str,
    hub_path: str,
    domain: list[str] | None = None,
    original_frontmatter: dict[str, Any] | None = None,
    dry_run: bool = False,
) -> HubOperationResult:
    """Create a child note for a hub. Children always get the base (non-hub) type."""
    original_frontmatter = original_frontmatter or {}
    now = _now()
    frontmatter: dict[str, Any] = {
        "type": get_base_type(original_frontmatter.get("type")),
        "title": title,
        "status": "active",
    }
    if domain:
        frontmatter["domain"] = domain
    frontmatter["created"] = now
    frontmatter["modified"] = now
    frontmatter["palace"] = {"version": 1}

    if dry_run:
        return HubOperationResult(success=True, path=child_path, message="Would create child note")

    try:
        validate_content_size(content)
        full_path = validate_path_within_vault(child_path, vault_path)
        await write_note(full_path, stringify_frontmatter(frontmatter, content))
    except FILE_ERRORS as e:
        logger.error("child_create_failed", path=child_path, hub=hub_path, error=str(e))
        return HubOperationResult(success=False, path=child_path, message=str(e))

    logger.info("child_created", path=child_path, hub=hub_path)
    return HubOperationResult(success=True, path=child_path, message="Child note created")


async def _write_split_note(vault_path: Path, relative_path: str, frontmatter: dict[str, Any], content: str) -> None:
    validate_content_size(content)
    full_path = validate_path_within_vault(relative_path, vault_path)
    await write_note(full_path, stringify_frontmatter(frontmatter, content))


def _write_order(children: list[ChildContent]) -> list[ChildContent]:
    """Children in Knowledge Map order; a sub-hub follows its own children."""
    ordered: list[ChildContent] = []
    for child in children:
        ordered.extend(_write_order(child.children))
        ordered.append(child)
    return ordered


async def persist_split(vault_path: Path, result: SplitResult, dry_run: bool = False) -> PersistResult:
    """Write a split result: every child first, then the hub.

    Stops at the first failure. Files already written stay on disk; the
    reconciliation check reports the resulting drift.
    """
    notes = [
        (c.relative_path, c.frontmatter, c.content) for c in _write_order(result.children)
    ] + [(result.hub.relative_path, result.hub.frontmatter, result.hub.content)]

    if dry_run:
        return PersistResult(
            success=True,
            message=f"Would write {len(notes)} notes",
            written=[path for path, _, _ in notes],
            dry_run=True,
        )

    written: list[str] = []
    for relative_path, frontmatter, content in notes:
        try:
            await _write_split_note(vault_path, relative_path, frontmatter, content)
        except FILE_ERRORS as e:
            logger.error("split_write_failed", path=relative_path, written=len(written), error=str(e))
            return PersistResult(
                success=False,
                message=f"Failed to write {relative_path}: {e}",
                written=written,
            )
        written.append(relative_path)

    logger.info("split_persisted", hub=result.hub.relative_path, notes=len(written))
    return PersistResult(success=True, message=f"Wrote {len(written)} notes", written=written)
