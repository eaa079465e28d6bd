"""
Utility functions and compiled regex patterns for Palace Atomic MCP Server.

Contains the frontmatter codec, filename sanitizing, wiki-link and heading
helpers, hub type suffixing, validation utilities and the exception hierarchy.
"""

import re
from pathlib import Path, PurePosixPath
from typing import Any

import yaml

from .config import settings

# Pre-compiled regex patterns for performance
WIKILINK_PATTERN = re.compile(r'\[\[([^\]|]+)(?:\|[^\]]+)?\]\]')
WIKILINK_DISPLAY_PATTERN = re.compile(r'\[\[([^\]|]+)\|([^\]]+)\]\]')
WIKILINK_PLAIN_PATTERN = re.compile(r'\[\[([^\]]+)\]\]')
MARKDOWN_LINK_PATTERN = re.compile(r'\[([^\]]+)\]\([^)]+\)')
FRONTMATTER_PATTERN = re.compile(r'^---\s*\n(.*?)\n---\s*(?:\n|$)', re.DOTALL)
HEADING_PATTERN = re.compile(r'^(#{1,6})\s+(.+)$')
INVALID_FILENAME_CHARS_PATTERN = re.compile(r'[/\\:*?"<>|#^]')
WHITESPACE_PATTERN = re.compile(r'\s+')
HYPHEN_RUN_PATTERN = re.compile(r'-+')
EDGE_HYPHENS_PATTERN = re.compile(r'^-+|-+$')
KNOWLEDGE_MAP_LINK_PATTERN = re.compile(r'^-\s*\[\[([^\]|]+)(?:\|([^\]]+))?\]\](?:\s+-\s+(.+))?$')

# Square brackets would close a wiki-link early
LINK_BRACKETS = str.maketrans("[]", "()")

# Frontmatter fields a hub inherits from the note it replaces
PRESERVED_HUB_FIELDS = ("tags", "aliases", "source", "confidence")

HUB_SUFFIX = "_hub"
GENERIC_HUB_TYPE = "hub"
KNOWLEDGE_MAP_HEADER = "## Knowledge Map"
RELATED_HEADER = "## Related"


# ============== Exceptions ==============

class PathValidationError(Exception):
    """Raised when path validation fails."""
    pass


class ContentValidationError(Exception):
    """Raised when content validation fails."""
    pass


class AtomicError(Exception):
    """Base class for structural split/consolidate failures."""
    pass


class HubNotFoundError(AtomicError):
    """Raised when a referenced hub note does not exist."""

    def __init__(self, hub_path: str):
        super().__init__(f"Hub not found: {hub_path}")
        self.hub_path = hub_path


class NotAHubError(AtomicError):
    """Raised when a hub operation targets a note that is not a hub."""

    def __init__(self, path: str, note_type: str | None):
        super().__init__(f"Not a hub note: {path} (type: {note_type or 'none'})")
        self.path = path
        self.note_type = note_type


class VaultIOError(AtomicError):
    """Raised when a vault file cannot be read or written."""
    pass


class DegenerateSplitError(AtomicError):
    """Raised when content lacks enough structure for the requested split."""
    pass


# ============== Frontmatter ==============

def parse_frontmatter(content: str) -> tuple[dict, str]:
    """Extract YAML frontmatter and body from note content."""
    frontmatter = {}
    body = content

    match = FRONTMATTER_PATTERN.match(content)
    if match:
        try:
            loaded = yaml.safe_load(match.group(1))
            if isinstance(loaded, dict):
                frontmatter = loaded
        except yaml.YAMLError:
            pass
        body = content[match.end():]

    return frontmatter, body


def stringify_frontmatter(frontmatter: dict[str, Any], body: str = "") -> str:
    """Serialize frontmatter and body back into note content."""
    yaml_content = yaml.dump(frontmatter, allow_unicode=True, default_flow_style=False, sort_keys=False)
    body = body.strip()
    if not body:
        return f"---\n{yaml_content}---\n"
    return f"---\n{yaml_content}---\n\n{body}\n"


# ============== Markdown helpers ==============

def strip_wiki_links(text: str) -> str:
    """Replace [[target|display]] with display and [[target]] with target."""
    text = WIKILINK_DISPLAY_PATTERN.sub(r'\2', text)
    return WIKILINK_PLAIN_PATTERN.sub(r'\1', text)


def is_fence_marker(line: str) -> bool:
    """True for a line that opens or closes a fenced code block."""
    return line.startswith("```") or line.startswith("~~~")


def heading_level(line: str) -> int:
    """Return the ATX heading level of a line, or 0 if it is not a heading."""
    match = HEADING_PATTERN.match(line)
    return len(match.group(1)) if match else 0


def adjust_header_levels(content: str, delta: int) -> str:
    """Shift every heading outside code fences by ``delta`` levels (clamped to 1..6)."""
    result: list[str] = []
    in_code = False

    for line in content.split("\n"):
        if is_fence_marker(line):
            in_code = not in_code
            result.append(line)
            continue

        match = None if in_code else HEADING_PATTERN.match(line)
        if match:
            level = min(6, max(1, len(match.group(1)) + delta))
            result.append(f"{'#' * level} {match.group(2)}")
        else:
            result.append(line)

    return "\n".join(result)


# ============== Knowledge Map ==============

def is_knowledge_map_header(line: str) -> bool:
    return line.rstrip() == KNOWLEDGE_MAP_HEADER


def format_knowledge_map_link(target: str, title: str, summary: str | None = None) -> str:
    """Render one Knowledge Map bullet: - [[target|title]] - summary."""
    display = title.translate(LINK_BRACKETS).replace("|", "-")
    link = f"[[{target}]]" if target == display else f"[[{target}|{display}]]"
    return f"- {link} - {summary}" if summary else f"- {link}"


def parse_knowledge_map(body: str) -> list[tuple[str, str | None, str | None]]:
    """Return (target, display, summary) for each bullet under ## Knowledge Map.

    The section runs from its header to the next H2 outside code.
    """
    entries: list[tuple[str, str | None, str | None]] = []
    in_map = False
    in_code = False

    for line in body.split("\n"):
        if is_fence_marker(line):
            in_code = not in_code
            continue
        if in_code:
            continue
        if is_knowledge_map_header(line):
            in_map = True
            continue
        if in_map and line.startswith("## "):
            break
        if in_map:
            match = KNOWLEDGE_MAP_LINK_PATTERN.match(line.strip())
            if match:
                entries.append((match.group(1).strip(), match.group(2), match.group(3)))

    return entries


def resolve_child_path(target: str, hub_dir: str) -> str:
    """Resolve a Knowledge Map target to a vault-relative .md path.

    Bare targets live in the hub's directory; targets with a slash are vault-relative.
    """
    child = target if target.endswith(".md") else f"{target}.md"
    if "/" in child:
        return child
    return str(PurePosixPath(hub_dir) / child)


# ============== Filenames ==============

def sanitize_for_filename(title: str) -> str:
    """Sanitize a title for use as a filename, preserving case and spaces."""
    name = INVALID_FILENAME_CHARS_PATTERN.sub('-', title.strip().translate(LINK_BRACKETS))
    name = WHITESPACE_PATTERN.sub(' ', name)
    name = HYPHEN_RUN_PATTERN.sub('-', name)
    name = EDGE_HYPHENS_PATTERN.sub('', name)
    return name.strip() or "Untitled"


def title_to_filename(title: str) -> str:
    """Title-style filename: "Green Peppers" -> "Green Peppers.md"."""
    return f"{sanitize_for_filename(title)}.md"


def child_filename(hub_stem: str, child_title: str) -> str:
    """Child filename "{hub} - {child}.md"; the parent hub is recoverable from it."""
    return title_to_filename(f"{hub_stem} - {strip_wiki_links(child_title)}")


# ============== Note types ==============

def is_hub_type(note_type: str | None) -> bool:
    """Check if a note type marks a hub."""
    if not note_type:
        return False
    return note_type == GENERIC_HUB_TYPE or note_type.endswith(HUB_SUFFIX)


def get_base_type(note_type: str | None) -> str:
    """Strip every trailing _hub suffix: 'research_hub_hub' -> 'research'."""
    if not note_type or note_type == GENERIC_HUB_TYPE:
        return settings.default_note_type
    while note_type.endswith(HUB_SUFFIX):
        note_type = note_type[:-len(HUB_SUFFIX)]
    return note_type or settings.default_note_type


def get_hub_type(note_type: str | None) -> str:
    """Return the hub type for a note type; applying it twice never yields _hub_hub."""
    return f"{get_base_type(note_type)}{HUB_SUFFIX}"


def strip_hub_suffix(note_type: str) -> str:
    """Remove exactly one trailing _hub suffix."""
    if note_type.endswith(HUB_SUFFIX):
        return note_type[:-len(HUB_SUFFIX)]
    return note_type


# ============== Security Validation ==============

def validate_path_within_vault(path_str: str, vault_path: Path) -> Path:
    """Validate that a path is safely within the vault directory.

    Args:
        path_str: The path string to validate (relative path or note identifier)
        vault_path: The vault root path

    Returns:
        The validated absolute Path

    Raises:
        PathValidationError: If the path attempts to escape the vault
    """
    if not path_str or not path_str.strip():
        raise PathValidationError("Path cannot be empty")

    # Reject paths with ".." components (path traversal attempt)
    if ".." in Path(path_str).parts:
        raise PathValidationError("Path traversal detected: '..' is not allowed")

    # Reject absolute paths
    if path_str.startswith("/") or (len(path_str) > 1 and path_str[1] == ":"):
        raise PathValidationError("Absolute paths are not allowed")

    full_path = (vault_path / path_str).resolve()
    vault_resolved = vault_path.resolve()

    try:
        full_path.relative_to(vault_resolved)
    except ValueError:
        raise PathValidationError(f"Path escapes vault directory: {path_str}")

    return full_path


def validate_folder_path(folder: str, vault_path: Path) -> Path:
    """Validate a folder path for hub creation. An empty folder means the vault root."""
    if not folder or folder.strip() in ("", "."):
        return vault_path.resolve()
    return validate_path_within_vault(folder, vault_path)


def validate_content_size(content: str) -> str:
    """Validate content size.

    Raises:
        ContentValidationError: If the content exceeds size limits
    """
    content_bytes = len(content.encode('utf-8'))

    if content_bytes > settings.max_content_size:
        max_mb = settings.max_content_size / (1024 * 1024)
        actual_mb = content_bytes / (1024 * 1024)
        raise ContentValidationError(
            f"Content size ({actual_mb:.2f}MB) exceeds maximum allowed size ({max_mb}MB)"
        )

    return content
