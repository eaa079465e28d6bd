"""
Pydantic models for Palace Atomic MCP Server.

Contains data models for content analysis, split decisions and strategies,
split results, hub records, reconciliation and consolidation results.
"""

from typing import Annotated, Any, Literal, NamedTuple, Union

from pydantic import BaseModel, ConfigDict, Field

from .config import AtomicConfig

PalaceAnnotation = Literal["keep", "split"]
ViolationType = Literal["lines", "sections", "section_size", "sub_concepts"]


# ============== Analysis ==============

class LineRecord(NamedTuple):
    """One body line and whether it sits inside a fenced code block."""

    text: str
    in_code_block: bool


class SectionInfo(BaseModel):
    """An H2-delimited region of the body. Line numbers are inclusive and 0-based."""

    model_config = ConfigDict(frozen=True)

    title: str
    start_line: int
    end_line: int
    line_count: int
    level: int = 2
    annotation: PalaceAnnotation | None = None
    is_template_content: bool = False


class SubConcept(BaseModel):
    """An H3-H6 region with enough content to stand alone as a note."""

    model_config = ConfigDict(frozen=True)

    title: str
    level: int
    start_line: int
    end_line: int
    line_count: int
    parent_section: str | None = None


class CodeBlockInfo(BaseModel):
    """A fenced code block."""

    model_config = ConfigDict(frozen=True)

    language: str
    start_line: int
    end_line: int
    line_count: int


class ContentAnalysis(BaseModel):
    """Structural facts about a note body.

    Sections, sub-concepts and code blocks are index ranges into ``lines``.
    """

    model_config = ConfigDict(frozen=True)

    line_count: int
    section_count: int
    word_count: int
    content_lines: int
    frontmatter_lines: int
    sections: list[SectionInfo]
    large_sections: list[str]
    sub_concepts: list[SubConcept]
    code_blocks: list[CodeBlockInfo]
    limits: AtomicConfig
    lines: tuple[LineRecord, ...] = ()

    def text_of(self, start_line: int, end_line: int) -> str:
        """Return the body text for an inclusive line range."""
        return "\n".join(line.text for line in self.lines[start_line:end_line + 1])


# ============== Decision ==============

class SplitViolation(BaseModel):
    """A single atomic limit that the content exceeds."""

    type: ViolationType
    message: str
    value: int
    limit: int


class SplitMetrics(BaseModel):
    """Headline numbers behind a split decision."""

    line_count: int
    section_count: int
    word_count: int
    large_sections: int
    sub_concepts: int


class NoSplit(BaseModel):
    kind: Literal["none"] = "none"


class BySections(BaseModel):
    kind: Literal["by_sections"] = "by_sections"


class ByLargeSections(BaseModel):
    kind: Literal["by_large_sections"] = "by_large_sections"
    sections: list[str] = Field(default_factory=list)


class BySubConcepts(BaseModel):
    kind: Literal["by_sub_concepts"] = "by_sub_concepts"
    sub_concepts: list[str] = Field(default_factory=list)


class Hierarchical(BaseModel):
    kind: Literal["hierarchical"] = "hierarchical"
    max_depth: int = 3


SplitStrategy = Annotated[
    Union[NoSplit, BySections, ByLargeSections, BySubConcepts, Hierarchical],
    Field(discriminator="kind"),
]


class SplitDecision(BaseModel):
    """Whether content should be split, why, and how."""

    should_split: bool
    reason: str
    metrics: SplitMetrics
    violations: list[SplitViolation]
    suggested_strategy: SplitStrategy


# ============== Split results ==============

class SplitOptions(BaseModel):
    """Caller options for splitting content."""

    target_dir: str
    title: str
    original_frontmatter: dict[str, Any] = Field(default_factory=dict)
    strategy: SplitStrategy | None = None
    domain: list[str] | None = None
    layer: str | None = None
    # Section titles that stay in the hub (case-insensitive substring match)
    hub_sections: list[str] = Field(default_factory=list)


class HubContent(BaseModel):
    """Hub note produced by a split."""

    title: str
    relative_path: str
    content: str
    frontmatter: dict[str, Any]


class ChildContent(BaseModel):
    """Child note produced by a split.

    A non-empty ``children`` list means this child was itself split into a
    sub-hub; its grandchildren must be written before it.
    """

    title: str
    relative_path: str
    content: str
    frontmatter: dict[str, Any]
    from_section: str | None = None
    summary: str | None = None
    children: list["ChildContent"] = Field(default_factory=list)


class LinkUpdate(BaseModel):
    """A wiki-link retarget caused by a split."""

    from_path: str
    original_target: str
    new_target: str


class SplitResult(BaseModel):
    """Hub plus children produced from one document."""

    hub: HubContent
    children: list[ChildContent]
    links_updated: list[LinkUpdate] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)


# ============== Hubs ==============

class HubChild(BaseModel):
    """Weak link from a hub to one child note."""

    path: str
    title: str
    summary: str | None = None


class HubInfo(BaseModel):
    """Hub note as read from disk."""

    path: str
    title: str
    children_count: int
    children: list[HubChild]


class HubOperationResult(BaseModel):
    """Model for the result of a hub or child write operation."""

    success: bool
    path: str = ""
    message: str = ""
    hub: HubInfo | None = None


class PersistResult(BaseModel):
    """Model for the result of writing a whole split to disk."""

    success: bool
    message: str = ""
    written: list[str] = Field(default_factory=list)
    dry_run: bool = False


class ChildrenCountResult(BaseModel):
    """Declared hub children compared with the filesystem."""

    path: str
    stored_count: int
    actual_count: int
    is_accurate: bool
    existing_children: list[str] = Field(default_factory=list)
    missing_children: list[str] = Field(default_factory=list)
    orphaned_children: list[str] = Field(default_factory=list)


# ============== Consolidation ==============

class ConsolidationResult(BaseModel):
    """A hub and its children merged into one document."""

    content: str
    title: str
    sources: list[str]
    frontmatter: dict[str, Any]
    warnings: list[str] = Field(default_factory=list)


class ConsolidationApplyResult(BaseModel):
    """Model for the result of rewriting a hub as a flat note."""

    success: bool
    path: str = ""
    message: str = ""
    deleted: list[str] = Field(default_factory=list)
    dry_run: bool = False
    result: ConsolidationResult | None = None
