"""
Tests for palace-atomic utility functions.
"""

import pytest
from pathlib import Path


# ============== Tests for parse_frontmatter() ==============

class TestParseFrontmatter:
    """Tests for the parse_frontmatter function."""

    def test_valid_frontmatter(self):
        """Test parsing valid YAML frontmatter."""
        from palace_atomic.utils import parse_frontmatter

        content = """---
title: Test Note
type: research
tags:
  - python
---

# Body content
"""
        frontmatter, body = parse_frontmatter(content)

        assert frontmatter["title"] == "Test Note"
        assert frontmatter["type"] == "research"
        assert frontmatter["tags"] == ["python"]
        assert "# Body content" in body

    def test_missing_frontmatter(self):
        """Test parsing content without frontmatter."""
        from palace_atomic.utils import parse_frontmatter

        content = "# Just a heading\n\nNo frontmatter here.\n"
        frontmatter, body = parse_frontmatter(content)

        assert frontmatter == {}
        assert body == content

    def test_invalid_yaml_frontmatter(self):
        """Test parsing invalid YAML frontmatter returns empty dict."""
        from palace_atomic.utils import parse_frontmatter

        content = """---
title: [broken yaml syntax
---

Body content here.
"""
        frontmatter, body = parse_frontmatter(content)

        assert frontmatter == {}
        assert "Body content here." in body

    def test_non_mapping_frontmatter(self):
        """Test a YAML list in the frontmatter block is ignored."""
        from palace_atomic.utils import parse_frontmatter

        frontmatter, _ = parse_frontmatter("---\n- a\n- b\n---\n\nBody\n")

        assert frontmatter == {}


class TestStringifyFrontmatter:
    """Tests for the stringify_frontmatter function."""

    def test_keeps_insertion_order(self):
        """Test keys are written in insertion order."""
        from palace_atomic.utils import stringify_frontmatter

        output = stringify_frontmatter({"type": "research", "title": "Zeta", "children_count": 2}, "# Zeta")

        assert output.startswith("---\ntype: research\ntitle: Zeta\nchildren_count: 2\n---\n\n# Zeta\n")

    def test_unicode_is_not_escaped(self):
        """Test unicode values are written as-is."""
        from palace_atomic.utils import stringify_frontmatter

        output = stringify_frontmatter({"title": "Café"}, "Body")

        assert "Café" in output

    def test_parse_round_trip(self):
        """Test stringify output parses back to the same frontmatter."""
        from palace_atomic.utils import parse_frontmatter, stringify_frontmatter

        fm = {"type": "research_hub", "palace": {"version": 2}, "domain": ["a", "b"]}
        parsed, body = parse_frontmatter(stringify_frontmatter(fm, "# Title\n\nText"))

        assert parsed == fm
        assert body.strip() == "# Title\n\nText"


# ============== Tests for note types ==============

class TestNoteTypes:
    """Tests for hub type suffixing."""

    def test_get_hub_type_adds_suffix(self):
        from palace_atomic.utils import get_hub_type

        assert get_hub_type("research") == "research_hub"

    def test_get_hub_type_is_idempotent(self):
        """Test applying the hub suffix twice never yields _hub_hub."""
        from palace_atomic.utils import get_hub_type

        for note_type in ["research", "research_hub", "research_hub_hub", "hub", None]:
            once = get_hub_type(note_type)
            assert get_hub_type(once) == once
            assert not once.endswith("_hub_hub")

    def test_get_hub_type_default(self):
        from palace_atomic.utils import get_hub_type

        assert get_hub_type(None) == "research_hub"
        assert get_hub_type("hub") == "research_hub"

    def test_get_base_type(self):
        from palace_atomic.utils import get_base_type

        assert get_base_type("research_hub") == "research"
        assert get_base_type("research_hub_hub") == "research"
        assert get_base_type("project") == "project"
        assert get_base_type("") == "research"

    def test_is_hub_type(self):
        from palace_atomic.utils import is_hub_type

        assert is_hub_type("research_hub")
        assert is_hub_type("hub")
        assert not is_hub_type("research")
        assert not is_hub_type(None)

    def test_strip_hub_suffix_removes_one(self):
        from palace_atomic.utils import strip_hub_suffix

        assert strip_hub_suffix("research_hub") == "research"
        assert strip_hub_suffix("research_hub_hub") == "research_hub"
        assert strip_hub_suffix("research") == "research"


# ============== Tests for filenames ==============

class TestFilenames:
    """Tests for title-style filenames."""

    def test_title_to_filename(self):
        from palace_atomic.utils import title_to_filename

        assert title_to_filename("Green Peppers") == "Green Peppers.md"

    def test_invalid_characters_replaced(self):
        from palace_atomic.utils import sanitize_for_filename

        assert sanitize_for_filename('What: is/this?') == "What- is-this"

    def test_whitespace_and_hyphens_collapsed(self):
        from palace_atomic.utils import sanitize_for_filename

        assert sanitize_for_filename("  a   b -- c  ") == "a b - c"

    def test_empty_title(self):
        from palace_atomic.utils import sanitize_for_filename

        assert sanitize_for_filename("///") == "Untitled"

    def test_wiki_link_syntax_replaced(self):
        from palace_atomic.utils import sanitize_for_filename

        assert sanitize_for_filename("Arrays [deprecated]") == "Arrays (deprecated)"
        assert sanitize_for_filename("C# | F# ^notes") == "C- - F- -notes"

    def test_child_filename(self):
        from palace_atomic.utils import child_filename

        assert child_filename("Green Peppers", "Climate") == "Green Peppers - Climate.md"
        assert child_filename("Green Peppers", "[[Soil Types|Soil]]") == "Green Peppers - Soil.md"

    def test_deterministic(self):
        """Test the same title always maps to the same filename."""
        from palace_atomic.utils import title_to_filename

        assert title_to_filename("A/B: C") == title_to_filename("A/B: C")


# ============== Tests for markdown helpers ==============

class TestMarkdownHelpers:
    """Tests for wiki-link and heading helpers."""

    def test_strip_wiki_links(self):
        from palace_atomic.utils import strip_wiki_links

        assert strip_wiki_links("See [[Target|display]] and [[Plain]]") == "See display and Plain"

    def test_adjust_header_levels_down(self):
        from palace_atomic.utils import adjust_header_levels

        assert adjust_header_levels("# A\n## B\ntext", 1) == "## A\n### B\ntext"

    def test_adjust_header_levels_clamped(self):
        from palace_atomic.utils import adjust_header_levels

        assert adjust_header_levels("###### Deep", 1) == "###### Deep"
        assert adjust_header_levels("# Top", -1) == "# Top"

    def test_adjust_header_levels_skips_code(self):
        """Test comment lines inside fences are not treated as headings."""
        from palace_atomic.utils import adjust_header_levels

        content = "# A\n```bash\n# comment\n```"

        assert adjust_header_levels(content, 1) == "## A\n```bash\n# comment\n```"


class TestKnowledgeMap:
    """Tests for Knowledge Map parsing and formatting."""

    def test_format_link_with_display(self):
        from palace_atomic.utils import format_knowledge_map_link

        assert format_knowledge_map_link("Hub - A", "A", "Summary") == "- [[Hub - A|A]] - Summary"

    def test_format_link_plain(self):
        from palace_atomic.utils import format_knowledge_map_link

        assert format_knowledge_map_link("A", "A") == "- [[A]]"

    def test_format_link_display_round_trips(self):
        from palace_atomic.utils import format_knowledge_map_link, parse_knowledge_map

        line = format_knowledge_map_link("Hub - Arrays (deprecated)", "Arrays [deprecated] | old")
        entries = parse_knowledge_map(f"## Knowledge Map\n\n{line}\n")

        assert entries == [("Hub - Arrays (deprecated)", "Arrays (deprecated) - old", None)]

    def test_parse_knowledge_map(self):
        from palace_atomic.utils import parse_knowledge_map

        body = """# Hub

## Knowledge Map

- [[Hub - A|A]] - First
- [[B]]
- not a link

## Related

- [[Elsewhere]]
"""
        entries = parse_knowledge_map(body)

        assert entries == [("Hub - A", "A", "First"), ("B", None, None)]

    def test_resolve_child_path(self):
        from palace_atomic.utils import resolve_child_path

        assert resolve_child_path("Hub - A", "Research") == "Research/Hub - A.md"
        assert resolve_child_path("Other/Note", "Research") == "Other/Note.md"
        assert resolve_child_path("Note.md", ".") == "Note.md"


# ============== Tests for validate_path_within_vault() ==============

class TestValidatePathWithinVault:
    """Tests for the validate_path_within_vault function."""

    def test_valid_relative_path(self, temp_vault):
        from palace_atomic.utils import validate_path_within_vault

        result = validate_path_within_vault("Research/Green Peppers.md", temp_vault)

        assert result == (temp_vault / "Research" / "Green Peppers.md").resolve()

    def test_path_traversal_rejected(self, temp_vault):
        from palace_atomic.utils import PathValidationError, validate_path_within_vault

        with pytest.raises(PathValidationError, match="Path traversal"):
            validate_path_within_vault("../outside.md", temp_vault)

    def test_absolute_path_rejected(self, temp_vault):
        from palace_atomic.utils import PathValidationError, validate_path_within_vault

        with pytest.raises(PathValidationError, match="Absolute paths"):
            validate_path_within_vault("/etc/passwd", temp_vault)

    def test_empty_path_rejected(self, temp_vault):
        from palace_atomic.utils import PathValidationError, validate_path_within_vault

        with pytest.raises(PathValidationError, match="empty"):
            validate_path_within_vault("  ", temp_vault)

    def test_folder_root(self, temp_vault):
        from palace_atomic.utils import validate_folder_path

        assert validate_folder_path("", temp_vault) == temp_vault.resolve()
        assert validate_folder_path(".", temp_vault) == temp_vault.resolve()


class TestValidateContentSize:
    """Tests for the validate_content_size function."""

    def test_small_content(self):
        from palace_atomic.utils import validate_content_size

        assert validate_content_size("hello") == "hello"

    def test_oversized_content(self):
        from palace_atomic.utils import ContentValidationError, validate_content_size

        with pytest.raises(ContentValidationError, match="exceeds maximum"):
            validate_content_size("x" * (1024 * 1024 + 1))
