"""
Tests for hub reconciliation.
"""

import pytest


class TestReconcileHub:
    """Tests for the reconcile_hub function."""

    async def test_accurate_hub(self, temp_vault):
        from palace_atomic.reconcile import reconcile_hub

        result = await reconcile_hub(temp_vault, "Research/Green Peppers.md")

        assert result.stored_count == 3
        assert result.actual_count == 3
        assert result.is_accurate is True
        assert result.missing_children == []
        assert result.existing_children == [
            "Research/Green Peppers - Climate.md",
            "Research/Green Peppers - Soil.md",
            "Research/Green Peppers - Harvest.md",
        ]

    async def test_orphans_exclude_hubs(self, temp_vault):
        """Test unlinked plain notes are orphans but sibling hubs are not."""
        from palace_atomic.reconcile import reconcile_hub

        result = await reconcile_hub(temp_vault, "Research/Green Peppers.md")

        assert result.orphaned_children == ["Research/Loose Note.md"]

    async def test_sibling_hub_children_not_orphans(self, temp_vault):
        from palace_atomic.reconcile import reconcile_hub

        research = temp_vault / "Research"
        (research / "Tomatoes.md").write_text(
            "---\ntype: research_hub\nchildren_count: 1\n---\n\n# Tomatoes\n\n"
            "## Knowledge Map\n\n- [[Tomatoes - Staking|Staking]]\n",
            encoding="utf-8",
        )
        (research / "Tomatoes - Staking.md").write_text("# Staking\n", encoding="utf-8")

        peppers = await reconcile_hub(temp_vault, "Research/Green Peppers.md")
        tomatoes = await reconcile_hub(temp_vault, "Research/Tomatoes.md")

        assert peppers.orphaned_children == ["Research/Loose Note.md"]
        assert tomatoes.orphaned_children == ["Research/Loose Note.md"]
        assert tomatoes.existing_children == ["Research/Tomatoes - Staking.md"]

    async def test_deleted_child(self, temp_vault):
        from palace_atomic.reconcile import reconcile_hub

        (temp_vault / "Research" / "Green Peppers - Soil.md").unlink()
        result = await reconcile_hub(temp_vault, "Research/Green Peppers.md")

        assert result.actual_count == 2
        assert result.is_accurate is False
        assert result.missing_children == ["Research/Green Peppers - Soil.md"]

    async def test_added_file_is_orphan_not_child(self, temp_vault):
        from palace_atomic.reconcile import reconcile_hub

        (temp_vault / "Research" / "Green Peppers - Pests.md").write_text(
            "---\ntype: research\n---\n\n# Pests\n", encoding="utf-8"
        )
        result = await reconcile_hub(temp_vault, "Research/Green Peppers.md")

        assert result.actual_count == 3
        assert "Research/Green Peppers - Pests.md" in result.orphaned_children

    async def test_uses_given_content(self, temp_vault):
        from palace_atomic.reconcile import reconcile_hub

        content = "---\nchildren_count: 1\n---\n\n## Knowledge Map\n\n- [[Green Peppers - Climate]]\n"
        result = await reconcile_hub(temp_vault, "Research/Green Peppers.md", content=content)

        assert result.stored_count == 1
        assert result.existing_children == ["Research/Green Peppers - Climate.md"]
        assert result.is_accurate is True

    async def test_missing_hub(self, temp_vault):
        from palace_atomic.reconcile import reconcile_hub
        from palace_atomic.utils import HubNotFoundError

        with pytest.raises(HubNotFoundError, match="Research/Nope.md"):
            await reconcile_hub(temp_vault, "Research/Nope.md")

    async def test_path_outside_vault(self, temp_vault):
        from palace_atomic.reconcile import reconcile_hub
        from palace_atomic.utils import VaultIOError

        with pytest.raises(VaultIOError):
            await reconcile_hub(temp_vault, "../outside.md")

    async def test_check_is_read_only(self, temp_vault):
        from palace_atomic.reconcile import reconcile_hub

        hub_file = temp_vault / "Research" / "Green Peppers.md"
        before = hub_file.read_text(encoding="utf-8")
        (temp_vault / "Research" / "Green Peppers - Soil.md").unlink()

        await reconcile_hub(temp_vault, "Research/Green Peppers.md")

        assert hub_file.read_text(encoding="utf-8") == before


class TestRepair:
    """Tests for update_children_count and repair_hub."""

    async def test_update_children_count(self, temp_vault):
        from palace_atomic.reconcile import update_children_count
        from palace_atomic.utils import parse_frontmatter

        assert await update_children_count(temp_vault, "Research/Green Peppers.md", 5) is True

        fm, body = parse_frontmatter((temp_vault / "Research" / "Green Peppers.md").read_text(encoding="utf-8"))
        assert fm["children_count"] == 5
        assert "## Knowledge Map" in body

    async def test_update_missing_hub(self, temp_vault):
        from palace_atomic.reconcile import update_children_count

        assert await update_children_count(temp_vault, "Research/Nope.md", 1) is False

    async def test_repair_hub(self, temp_vault):
        from palace_atomic.reconcile import reconcile_hub, repair_hub

        (temp_vault / "Research" / "Green Peppers - Soil.md").unlink()
        result = await repair_hub(temp_vault, "Research/Green Peppers.md")

        assert result.is_accurate is False
        after = await reconcile_hub(temp_vault, "Research/Green Peppers.md")
        assert after.stored_count == 2
        assert after.is_accurate is True

    async def test_repair_dry_run(self, temp_vault):
        from palace_atomic.reconcile import reconcile_hub, repair_hub

        (temp_vault / "Research" / "Green Peppers - Soil.md").unlink()
        await repair_hub(temp_vault, "Research/Green Peppers.md", dry_run=True)

        after = await reconcile_hub(temp_vault, "Research/Green Peppers.md")
        assert after.stored_count == 3
