"""
Hub reconciliation.

The stored ``children_count`` can go stale when children are deleted or
moved outside the system. This module compares a hub's Knowledge Map with the
files on disk. Checking is read-only; ``update_children_count`` is the only
repair and is never called implicitly.
"""

from datetime import datetime
from pathlib import Path, PurePosixPath

import structlog

from .hub_manager import read_note, write_note
from .models import ChildrenCountResult
from .utils import (
    HubNotFoundError,
    PathValidationError,
    VaultIOError,
    is_hub_type,
    parse_frontmatter,
    parse_knowledge_map,
    resolve_child_path,
    stringify_frontmatter,
    validate_path_within_vault,
)

logger = structlog.get_logger(__name__)


def _stored_count(frontmatter: dict) -> int:
    count = frontmatter.get("children_count", 0)
    return count if isinstance(count, int) else 0


async def _find_orphans(vault_path: Path, hub_path: str, linked: list[str]) -> list[str]:
    """Non-hub .md files in the hub's directory that no hub there links.

    Children are assumed to live beside their hub. Notes linked from a sibling
    hub's Knowledge Map belong to that hub and are not reported.
    """
    hub_dir = PurePosixPath(hub_path).parent
    hub_dir_full = vault_path / hub_dir
    if not hub_dir_full.is_dir():
        return []

    linked_names = {PurePosixPath(p).name for p in linked}
    hub_name = PurePosixPath(hub_path).name
    candidates: list[str] = []

    for file in sorted(hub_dir_full.iterdir()):
        if file.suffix != ".md" or not file.is_file() or file.name == hub_name:
            continue

        try:
            content = await read_note(file)
        except (OSError, UnicodeDecodeError) as e:
            logger.warning("orphan_check_unreadable", path=str(file), error=str(e))
            continue

        frontmatter, body = parse_frontmatter(content)
        if is_hub_type(frontmatter.get("type")):
            for target, _, _ in parse_knowledge_map(body):
                child = PurePosixPath(resolve_child_path(target, str(hub_dir)))
                if child.parent == hub_dir:
                    linked_names.add(child.name)
        else:
            candidates.append(file.name)

    return [str(hub_dir / name) for name in candidates if name not in linked_names]


async def reconcile_hub(vault_path: Path, hub_path: str, content: str | None = None) -> ChildrenCountResult:
    """Compare a hub's declared children with the filesystem.

    Args:
        vault_path: Vault root
        hub_path: Hub note path relative to the vault
        content: Hub content if already read

    Returns:
        ChildrenCountResult for the hub

    Raises:
        HubNotFoundError: If the hub note does not exist
        VaultIOError: If the hub path is invalid or cannot be read
    """
    if content is None:
        try:
            full_path = validate_path_within_vault(hub_path, vault_path)
        except PathValidationError as e:
            raise VaultIOError(str(e)) from e
        if not full_path.exists():
            raise HubNotFoundError(hub_path)
        try:
            content = await read_note(full_path)
        except (OSError, UnicodeDecodeError) as e:
            logger.warning("reconcile_hub_unreadable", path=hub_path, error=str(e))
            raise VaultIOError(f"Cannot read hub {hub_path}: {e}") from e

    frontmatter, body = parse_frontmatter(content)
    stored_count = _stored_count(frontmatter)
    hub_dir = str(PurePosixPath(hub_path).parent)
    linked = [resolve_child_path(target, hub_dir) for target, _, _ in parse_knowledge_map(body)]

    existing = [p for p in linked if (vault_path / p).exists()]
    missing = [p for p in linked if p not in existing]
    orphaned = await _find_orphans(vault_path, hub_path, linked)

    result = ChildrenCountResult(
        path=hub_path,
        stored_count=stored_count,
        actual_count=len(existing),
        is_accurate=stored_count == len(existing),
        existing_children=existing,
        missing_children=missing,
        orphaned_children=orphaned,
    )

    if not result.is_accurate or orphaned:
        logger.info(
            "hub_drift_detected",
            path=hub_path,
            stored=stored_count,
            actual=len(existing),
            missing=len(missing),
            orphaned=len(orphaned),
        )

    return result


async def update_children_count(vault_path: Path, hub_path: str, new_count: int) -> bool:
    """Rewrite a hub's children_count. Returns False if the hub cannot be updated."""
    try:
        full_path = validate_path_within_vault(hub_path, vault_path)
        content = await read_note(full_path)
    except (OSError, UnicodeDecodeError, PathValidationError) as e:
        logger.error("children_count_update_failed", path=hub_path, error=str(e))
        return False

    frontmatter, body = parse_frontmatter(content)
    current = _stored_count(frontmatter)
    if current == new_count and "children_count" in frontmatter:
        return True

    frontmatter["children_count"] = new_count
    frontmatter["modified"] = datetime.now().isoformat(timespec="seconds")

    try:
        await write_note(full_path, stringify_frontmatter(frontmatter, body))
    except OSError as e:
        logger.error("children_count_update_failed", path=hub_path, error=str(e))
        return False

    logger.info("children_count_updated", path=hub_path, old=current, new=new_count)
    return True


async def repair_hub(vault_path: Path, hub_path: str, dry_run: bool = False) -> ChildrenCountResult:
    """Reconcile a hub and fix its stored count if it drifted."""
    result = await reconcile_hub(vault_path, hub_path)

    if not result.is_accurate and not dry_run:
        await update_children_count(vault_path, hub_path, result.actual_count)

    return result
