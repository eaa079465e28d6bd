# Palace Atomic MCP Server
#
# Modular package structure:
# - config.py: Settings and atomic limits (PALACE_ environment variables)
# - models.py: Pydantic models for analysis, decisions, splits and hubs
# - utils.py: Frontmatter codec, filenames, note types, validation, exceptions
# - analyzer.py: Structural analysis of note bodies
# - decision.py: Split decision engine and strategy selection
# - splitter.py: Hub + children partitioning
# - hub_manager.py: Hub and child note persistence
# - reconcile.py: children_count drift detection and repair
# - consolidator.py: Merging hubs back into flat notes
# - tools.py: MCP tool handlers and server instance
# - main.py: Entry point and server initialization
