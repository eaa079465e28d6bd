"""
Split decision engine for the atomic note system.

Determines if content should be split and recommends a strategy.
"""

import math
from typing import Any

from .analyzer import analyze_content, is_code_heavy, merge_limits
from .config import AtomicConfig, MAX_RECURSION_DEPTH, settings
from .models import (
    ByLargeSections,
    BySections,
    BySubConcepts,
    ContentAnalysis,
    Hierarchical,
    NoSplit,
    SplitDecision,
    SplitMetrics,
    SplitStrategy,
    SplitViolation,
)

# Code samples are denser than prose, so code-heavy notes get more room
CODE_HEAVY_MULTIPLIER = 1.5

# Fixed, independent of config
MIN_SUB_CONCEPTS_FOR_SPLIT = 3

STRATEGY_MESSAGES = {
    "none": "No split needed",
    "by_sections": "Recommended: Split by H2 sections",
    "by_large_sections": "Recommended: Extract large sections into separate notes",
    "by_sub_concepts": "Recommended: Split by sub-concepts (H3+ headings)",
    "hierarchical": "Recommended: Create hierarchical structure with sub-hubs",
}


def get_effective_limits(limits: AtomicConfig, analysis: ContentAnalysis) -> AtomicConfig:
    """Get effective limits, relaxing line limits for code-heavy content."""
    if not is_code_heavy(analysis):
        return limits
    return limits.model_copy(update={
        "max_lines": math.floor(limits.max_lines * CODE_HEAVY_MULTIPLIER),
        "section_max_lines": math.floor(limits.section_max_lines * CODE_HEAVY_MULTIPLIER),
    })


def large_sections(analysis: ContentAnalysis, limits: AtomicConfig) -> list[str]:
    """Titles of sections longer than the section limit. Sections marked keep never count."""
    return [
        s.title for s in analysis.sections
        if s.line_count > limits.section_max_lines and s.annotation != "keep"
    ]


def check_violations(analysis: ContentAnalysis, limits: AtomicConfig) -> list[SplitViolation]:
    """Evaluate every limit independently."""
    violations: list[SplitViolation] = []

    if analysis.line_count > limits.max_lines:
        violations.append(SplitViolation(
            type="lines",
            message=f"Content exceeds max lines ({analysis.line_count} > {limits.max_lines})",
            value=analysis.line_count,
            limit=limits.max_lines,
        ))

    if analysis.section_count > limits.max_sections:
        violations.append(SplitViolation(
            type="sections",
            message=f"Too many sections ({analysis.section_count} > {limits.max_sections})",
            value=analysis.section_count,
            limit=limits.max_sections,
        ))

    oversized = large_sections(analysis, limits)
    if oversized:
        violations.append(SplitViolation(
            type="section_size",
            message=f"{len(oversized)} section(s) exceed max lines: {', '.join(oversized)}",
            value=len(oversized),
            limit=limits.section_max_lines,
        ))

    if len(analysis.sub_concepts) >= MIN_SUB_CONCEPTS_FOR_SPLIT:
        violations.append(SplitViolation(
            type="sub_concepts",
            message=f"Many sub-concepts detected ({len(analysis.sub_concepts)})",
            value=len(analysis.sub_concepts),
            limit=MIN_SUB_CONCEPTS_FOR_SPLIT,
        ))

    return violations


def determine_strategy(
    analysis: ContentAnalysis,
    violations: list[SplitViolation],
    limits: AtomicConfig,
) -> SplitStrategy:
    """Pick a strategy; the first matching rule wins."""
    if not violations:
        return NoSplit()

    kinds = {v.type for v in violations}
    oversized = large_sections(analysis, limits)

    if "sections" in kinds and analysis.section_count > 3:
        return BySections()

    if "section_size" in kinds and oversized:
        return ByLargeSections(sections=oversized)

    if "sub_concepts" in kinds:
        return BySubConcepts(sub_concepts=[sc.title for sc in analysis.sub_concepts])

    if "lines" in kinds and analysis.section_count >= 2:
        return BySections()

    if len(violations) > 2:
        return Hierarchical(max_depth=min(settings.max_split_depth, MAX_RECURSION_DEPTH))

    # Also the fallback for fewer than two sections; the splitter refuses
    # that case with DegenerateSplitError rather than copying the document.
    return BySections()


def build_reason(violations: list[SplitViolation], strategy: SplitStrategy) -> str:
    """Build human-readable reason message."""
    if not violations:
        return "Content is within atomic limits"

    messages = "; ".join(v.message for v in violations)
    return f"{messages}. {STRATEGY_MESSAGES.get(strategy.kind, 'Split recommended')}"


def _decide(analysis: ContentAnalysis, limits: AtomicConfig) -> SplitDecision:
    effective = get_effective_limits(limits, analysis)
    violations = check_violations(analysis, effective)
    strategy = determine_strategy(analysis, violations, effective)

    return SplitDecision(
        should_split=bool(violations),
        reason=build_reason(violations, strategy),
        metrics=SplitMetrics(
            line_count=analysis.line_count,
            section_count=analysis.section_count,
            word_count=analysis.word_count,
            large_sections=len(large_sections(analysis, effective)),
            sub_concepts=len(analysis.sub_concepts),
        ),
        violations=violations,
        suggested_strategy=strategy,
    )


def should_split(content: str, config: AtomicConfig | dict[str, Any] | None = None) -> SplitDecision:
    """Determine if content should be split and how."""
    limits = merge_limits(config)
    return _decide(analyze_content(content, limits), limits)


def decide_for_analysis(analysis: ContentAnalysis) -> SplitDecision:
    """Decide from an existing analysis without re-parsing the content."""
    return _decide(analysis, analysis.limits)


def needs_split(content: str, config: AtomicConfig | dict[str, Any] | None = None) -> bool:
    """Check if content needs splitting based on config."""
    return should_split(content, config).should_split


def analyze_for_split(
    content: str,
    config: AtomicConfig | dict[str, Any] | None = None,
) -> tuple[ContentAnalysis, SplitDecision]:
    """Get analysis and decision together."""
    analysis = analyze_content(content, merge_limits(config))
    return analysis, decide_for_analysis(analysis)


def strategy_from_kind(kind: str, analysis: ContentAnalysis) -> SplitStrategy:
    """Build a strategy variant from its name, filling in data from the analysis.

    Raises:
        ValueError: If the name is not a known strategy
    """
    limits = get_effective_limits(analysis.limits, analysis)

    if kind == "none":
        return NoSplit()
    if kind == "by_sections":
        return BySections()
    if kind == "by_large_sections":
        return ByLargeSections(sections=large_sections(analysis, limits))
    if kind == "by_sub_concepts":
        return BySubConcepts(sub_concepts=[sc.title for sc in analysis.sub_concepts])
    if kind == "hierarchical":
        return Hierarchical(max_depth=min(settings.max_split_depth, MAX_RECURSION_DEPTH))

    raise ValueError(f"Unknown split strategy: {kind}")
