"""
Configuration module for Palace Atomic MCP Server.

Uses pydantic-settings for configuration management with environment variable support.
Environment variables use PALACE_ prefix (e.g., PALACE_VAULT_PATH).
Atomic limits are nested under PALACE_ATOMIC__ (e.g., PALACE_ATOMIC__MAX_LINES).
"""

from pathlib import Path

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


def _get_default_vault_path() -> Path:
    """Get default vault path."""
    return Path.home() / "Documents" / "Palace"


class AtomicConfig(BaseModel):
    """Limits beyond which a note is considered too large to stay atomic."""

    max_lines: int = 200
    max_sections: int = 6
    section_max_lines: int = 50
    min_section_lines: int = 5  # Minimum length of an H3-H6 sub-concept
    max_children: int = 10
    auto_split: bool = True


class Settings(BaseSettings):
    """Application settings with environment variable support.

    Environment variables:
    - PALACE_VAULT_PATH: Path to the Obsidian vault
    - PALACE_ATOMIC__MAX_LINES (and the other AtomicConfig fields): atomic limits
    - PALACE_HUB_SECTIONS: JSON list of section titles that always stay in a hub
    - PALACE_DEFAULT_NOTE_TYPE: Type used when a note carries none
    - PALACE_MAX_SPLIT_DEPTH: Recursion cap for hierarchical splits
    - PALACE_MAX_CONSOLIDATION_DEPTH: Recursion cap for nested hub consolidation
    - PALACE_MAX_CONTENT_SIZE: Maximum note size in bytes
    - PALACE_LOG_LEVEL: Log level name (default INFO)
    - PALACE_LOG_JSON: Emit JSON log lines instead of console output
    """

    vault_path: Path = Field(default_factory=_get_default_vault_path)
    atomic: AtomicConfig = Field(default_factory=AtomicConfig)
    hub_sections: list[str] = Field(default_factory=list)
    default_note_type: str = "research"
    max_split_depth: int = 3
    max_consolidation_depth: int = 3
    max_content_size: int = 1 * 1024 * 1024  # 1MB in bytes
    log_level: str = "INFO"
    log_json: bool = False

    model_config = SettingsConfigDict(env_prefix="PALACE_", env_nested_delimiter="__")


# Global settings instance
settings = Settings()

# Hard cap on any recursive structural transform, whatever the settings say
MAX_RECURSION_DEPTH = 3
