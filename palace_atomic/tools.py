"""
MCP Tools module for Palace Atomic MCP Server.

Contains the MCP tool handlers (list_tools and call_tool).
"""

import json
from pathlib import PurePosixPath
from typing import Any

from mcp.server import Server
from mcp.types import TextContent, Tool

from .analyzer import analyze_content, extract_title
from .config import settings
from .consolidator import apply_consolidation, consolidate_hub, render_consolidated
from .decision import decide_for_analysis, strategy_from_kind
from .hub_manager import get_hub_info, persist_split, read_note
from .logging import get_logger
from .models import SplitOptions
from .reconcile import reconcile_hub, repair_hub
from .splitter import split_content
from .utils import (
    AtomicError,
    PathValidationError,
    parse_frontmatter,
    validate_path_within_vault,
)

logger = get_logger(__name__)

STRATEGY_NAMES = ["by_sections", "by_large_sections", "by_sub_concepts", "hierarchical"]

# Initialize server
server = Server("palace-atomic")


@server.list_tools()
async def list_tools() -> list[Tool]:
    """List available tools."""
    return [
        Tool(
            name="palace_analyze",
            description="Analyze a note against the atomic limits and recommend whether and how to split it.",
            inputSchema={
                "type": "object",
                "properties": {
                    "path": {
                        "type": "string",
                        "description": "Path to the note relative to the vault (e.g., 'Research/Green Peppers.md')"
                    }
                },
                "required": ["path"]
            }
        ),
        Tool(
            name="palace_split",
            description="Split an oversized note into a hub note plus child notes. "
                       "Children are written first, then the hub. Use dry_run to preview.",
            inputSchema={
                "type": "object",
                "properties": {
                    "path": {
                        "type": "string",
                        "description": "Path to the note relative to the vault"
                    },
                    "strategy": {
                        "type": "string",
                        "enum": STRATEGY_NAMES,
                        "description": "Split strategy (default: the recommended one; required when auto_split is disabled)"
                    },
                    "dry_run": {
                        "type": "boolean",
                        "description": "Preview the split without writing (default: false)",
                        "default": False
                    }
                },
                "required": ["path"]
            }
        ),
        Tool(
            name="palace_hub_info",
            description="Read a hub note: title, children from its Knowledge Map, and the live children count.",
            inputSchema={
                "type": "object",
                "properties": {
                    "path": {
                        "type": "string",
                        "description": "Path to the hub note relative to the vault"
                    }
                },
                "required": ["path"]
            }
        ),
        Tool(
            name="palace_hub_reconcile",
            description="Compare a hub's Knowledge Map with the files on disk. "
                       "Reports missing and orphaned children; optionally repairs children_count.",
            inputSchema={
                "type": "object",
                "properties": {
                    "path": {
                        "type": "string",
                        "description": "Path to the hub note relative to the vault"
                    },
                    "repair": {
                        "type": "boolean",
                        "description": "Rewrite children_count if it drifted (default: false)",
                        "default": False
                    }
                },
                "required": ["path"]
            }
        ),
        Tool(
            name="palace_consolidate",
            description="Merge a hub and its children back into one document. "
                       "Returns the merged markdown, or rewrites the hub in place with apply.",
            inputSchema={
                "type": "object",
                "properties": {
                    "path": {
                        "type": "string",
                        "description": "Path to the hub note relative to the vault"
                    },
                    "apply": {
                        "type": "boolean",
                        "description": "Rewrite the hub as a flat note (default: false)",
                        "default": False
                    },
                    "delete_children": {
                        "type": "boolean",
                        "description": "With apply, delete the merged child notes (default: false)",
                        "default": False
                    },
                    "dry_run": {
                        "type": "boolean",
                        "description": "With apply, report what would change without writing (default: false)",
                        "default": False
                    }
                },
                "required": ["path"]
            }
        ),
    ]


async def _load_note(note_path: str) -> tuple[str, dict[str, Any]]:
    full_path = validate_path_within_vault(note_path, settings.vault_path)
    content = await read_note(full_path)
    frontmatter, _ = parse_frontmatter(content)
    return content, frontmatter


@server.call_tool()
async def call_tool(name: str, arguments: dict[str, Any]) -> list[TextContent]:
    """Handle tool calls."""
    vault_path = settings.vault_path

    if name == "palace_analyze":
        note_path = arguments.get("path", "")
        try:
            content, _ = await _load_note(note_path)
        except (OSError, UnicodeDecodeError, PathValidationError) as e:
            return [TextContent(type="text", text=f"Error: {e}")]

        analysis = analyze_content(content)
        decision = decide_for_analysis(analysis)

        output = f"# Atomic Analysis: {note_path}\n\n"
        output += f"**Lines:** {analysis.line_count}\n"
        output += f"**Sections:** {analysis.section_count}\n"
        output += f"**Words:** {analysis.word_count}\n"
        output += f"**Sub-concepts:** {len(analysis.sub_concepts)}\n"
        output += f"**Should split:** {'yes' if decision.should_split else 'no'}\n"
        output += f"**Strategy:** {decision.suggested_strategy.kind}\n\n"
        output += f"{decision.reason}\n"

        if decision.violations:
            output += "\n## Violations\n"
            for v in decision.violations:
                output += f"- {v.type}: {v.value} (limit {v.limit})\n"

        return [TextContent(type="text", text=output)]

    elif name == "palace_split":
        note_path = arguments.get("path", "")
        dry_run = arguments.get("dry_run", False)
        strategy_name = arguments.get("strategy")

        if not strategy_name and not settings.atomic.auto_split:
            return [TextContent(
                type="text",
                text="Error: Automatic splitting is disabled (PALACE_ATOMIC__AUTO_SPLIT); pass a strategy",
            )]

        try:
            content, frontmatter = await _load_note(note_path)
        except (OSError, UnicodeDecodeError, PathValidationError) as e:
            return [TextContent(type="text", text=f"Error: {e}")]

        title = frontmatter.get("title") or extract_title(content) or PurePosixPath(note_path).stem
        domain = frontmatter.get("domain")
        if isinstance(domain, str):
            domain = [domain]

        try:
            strategy = strategy_from_kind(strategy_name, analyze_content(content)) if strategy_name else None
            options = SplitOptions(
                target_dir=str(PurePosixPath(note_path).parent),
                title=str(title),
                original_frontmatter=frontmatter,
                strategy=strategy,
                domain=domain or None,
                hub_sections=settings.hub_sections,
            )
            result = split_content(content, options)
        except (AtomicError, ValueError) as e:
            return [TextContent(type="text", text=f"Error: {e}")]

        persisted = await persist_split(vault_path, result, dry_run=dry_run)
        if not persisted.success:
            return [TextContent(type="text", text=f"Error: {persisted.message}")]

        header = "Split Preview" if dry_run else "Note Split Successfully"
        output = f"# {header}\n\n"
        output += f"**Hub:** {result.hub.relative_path}\n"
        output += f"**Children:** {len(result.children)}\n\n"
        for path in persisted.written:
            output += f"- {path}\n"

        if result.warnings:
            output += "\n## Warnings\n"
            for warning in result.warnings:
                output += f"- {warning}\n"

        if result.hub.relative_path != note_path:
            output += f"\nThe original note is unchanged at {note_path}.\n"

        logger.info("split_tool_completed", path=note_path, dry_run=dry_run, written=len(persisted.written))
        return [TextContent(type="text", text=output)]

    elif name == "palace_hub_info":
        hub_path = arguments.get("path", "")
        hub = await get_hub_info(vault_path, hub_path)

        if not hub:
            return [TextContent(type="text", text=f"Hub not found: '{hub_path}'")]

        output = f"# {hub.title}\n\n"
        output += f"**Path:** {hub.path}\n"
        output += f"**Children:** {hub.children_count} of {len(hub.children)} linked\n\n"
        for child in hub.children:
            summary = f" - {child.summary}" if child.summary else ""
            output += f"- **{child.title}** ({child.path}){summary}\n"

        return [TextContent(type="text", text=output)]

    elif name == "palace_hub_reconcile":
        hub_path = arguments.get("path", "")
        repair = arguments.get("repair", False)

        try:
            if repair:
                result = await repair_hub(vault_path, hub_path)
            else:
                result = await reconcile_hub(vault_path, hub_path)
        except AtomicError as e:
            return [TextContent(type="text", text=f"Error: {e}")]

        return [TextContent(type="text", text=json.dumps(result.model_dump(), indent=2))]

    elif name == "palace_consolidate":
        hub_path = arguments.get("path", "")

        if arguments.get("apply", False):
            applied = await apply_consolidation(
                vault_path,
                hub_path,
                delete_children=arguments.get("delete_children", False),
                dry_run=arguments.get("dry_run", False),
                max_depth=settings.max_consolidation_depth,
            )
            if not applied.success:
                return [TextContent(type="text", text=f"Error: {applied.message}")]

            output = f"# {applied.message}\n\n"
            output += f"**Path:** {applied.path}\n"
            if applied.deleted:
                verb = "Would delete" if applied.dry_run else "Deleted"
                output += f"\n## {verb}\n"
                for path in applied.deleted:
                    output += f"- {path}\n"
            if applied.result and applied.result.warnings:
                output += "\n## Warnings\n"
                for warning in applied.result.warnings:
                    output += f"- {warning}\n"
            return [TextContent(type="text", text=output)]

        try:
            consolidated = await consolidate_hub(
                vault_path, hub_path, max_depth=settings.max_consolidation_depth,
            )
        except AtomicError as e:
            return [TextContent(type="text", text=f"Error: {e}")]

        output = render_consolidated(consolidated)
        if consolidated.warnings:
            output += "\n<!-- warnings:\n" + "\n".join(consolidated.warnings) + "\n-->\n"
        return [TextContent(type="text", text=output)]

    else:
        return [TextContent(type="text", text=f"Unknown tool: {name}")]
