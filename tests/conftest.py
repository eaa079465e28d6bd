"""
Pytest configuration and fixtures for palace-atomic tests.
"""

import pytest
from pathlib import Path


def build_note(title: str, intro: list[str], sections: dict[str, list[str]]) -> str:
    """Assemble a markdown note from an H1 title, intro lines and H2 sections."""
    lines = [f"# {title}", ""] + intro
    for heading, body in sections.items():
        lines.append(f"## {heading}")
        lines.extend(body)
    return "\n".join(lines) + "\n"


@pytest.fixture
def scenario_a_note() -> str:
    """260 body lines in 7 sections of 36 lines each."""
    intro = [f"Intro line {i} about the big topic." for i in range(1, 7)]
    sections = {
        f"Section {n}": [f"Detail {k} of section {n}." for k in range(1, 36)]
        for n in range(1, 8)
    }
    return build_note("Big Topic", intro, sections)


@pytest.fixture
def scenario_b_note() -> str:
    """One 220-line section annotated keep."""
    body = ["<!-- palace:keep -->"] + [f"Reference row {k}." for k in range(1, 219)]
    return build_note("Kept Topic", [], {"Reference Table": body})


@pytest.fixture
def hierarchical_note() -> str:
    """A large section made of seven subsections plus a small section."""
    part_a = []
    for n in range(1, 8):
        part_a.append(f"### Sub A{n}")
        part_a.extend(f"Fact {k} of sub A{n}." for k in range(1, 11))
    part_b = [f"Point {k} of part B." for k in range(1, 10)]
    return build_note("Layered Topic", ["Opening line."], {"Part A": part_a, "Part B": part_b})


@pytest.fixture
def temp_vault(tmp_path: Path):
    """Create a temporary vault with a hub, its children and some neighbours."""
    vault_path = tmp_path / "vault"
    vault_path.mkdir()

    research = vault_path / "Research"
    research.mkdir()

    # Hub with three children
    (research / "Green Peppers.md").write_text("""---
type: research_hub
title: Green Peppers
status: active
children_count: 3
domain:
  - gardening
tags:
  - vegetables
created: '2024-01-15T10:00:00'
modified: '2024-01-15T10:00:00'
palace:
  version: 1
---

# Green Peppers

Green peppers are unripe bell peppers.

## Knowledge Map

- [[Green Peppers - Climate|Climate]] - Warm weather crop
- [[Green Peppers - Soil|Soil]] - Well-drained loam
- [[Green Peppers - Harvest|Harvest]]

## Related
""", encoding="utf-8")

    (research / "Green Peppers - Climate.md").write_text("""---
type: research
title: Climate
status: active
---

# Climate

Peppers need warm weather to fruit.

See also: [[Green Peppers]]
""", encoding="utf-8")

    (research / "Green Peppers - Soil.md").write_text("""---
type: research
title: Soil
status: active
---

# Soil

Loose, well-drained soil works best.
""", encoding="utf-8")

    (research / "Green Peppers - Harvest.md").write_text("""---
type: research
title: Harvest
status: active
---

# Harvest

Pick the fruit while it is still firm and green.

```bash
# not a heading
```
""", encoding="utf-8")

    # Unlinked plain note in the hub's folder
    (research / "Loose Note.md").write_text("""---
type: research
title: Loose Note
---

# Loose Note

Nobody links here.
""", encoding="utf-8")

    # Unrelated hub in the same folder
    (research / "Tomatoes.md").write_text("""---
type: research_hub
title: Tomatoes
children_count: 0
---

# Tomatoes

## Knowledge Map

## Related
""", encoding="utf-8")

    # Plain note that is not a hub
    (vault_path / "Plain.md").write_text("""---
type: research
title: Plain
---

# Plain

Just a note.
""", encoding="utf-8")

    yield vault_path


@pytest.fixture
def patched_settings(temp_vault, monkeypatch):
    """Point the global settings at the temp vault."""
    from palace_atomic.config import settings

    monkeypatch.setattr(settings, "vault_path", temp_vault)
    return settings
