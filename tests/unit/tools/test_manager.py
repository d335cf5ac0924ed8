"""
Tests for ToolManager - registry, category index, watchers, validation.

Pattern: Service Registry
"""

from typing import Any

import pytest

from campaign_agent.core.exceptions import ToolNotFoundError
from campaign_agent.models.tools import ToolAction, ToolKind, ToolMetadata, ToolResult
from campaign_agent.tools.base import Tool
from campaign_agent.tools.manager import ToolManager


class StubTool(Tool):
    def __init__(self, name: str, category: str = "search", tags: tuple[str, ...] = (), **config: Any) -> None:
        super().__init__(
            ToolMetadata(name=name, description=f"{name} tool", category=category, tags=tags),
            config or None,
        )

    async def execute(self, input: dict[str, Any]) -> ToolResult:
        return ToolResult.ok({"tool": self.name})


@pytest.fixture
def manager() -> ToolManager:
    return ToolManager()


class TestRegistration:
    """First registration of a name wins."""

    def test_register_and_lookup(self, manager: ToolManager) -> None:
        tool = StubTool("searchBooks")

        assert manager.register_tool(tool) is True
        assert manager.get_tool("searchBooks") is tool
        assert manager.get_tool_names() == ["searchBooks"]

    def test_duplicate_name_is_ignored(self, manager: ToolManager) -> None:
        first = StubTool("searchBooks")
        second = StubTool("searchBooks", category="other")
        manager.register_tool(first)

        assert manager.register_tool(second) is False
        assert manager.get_tool("searchBooks") is first
        assert manager.get_categories() == ["search"]

    def test_unregister_removes_empty_category(self, manager: ToolManager) -> None:
        manager.register_tool(StubTool("searchBooks", category="search"))
        manager.register_tool(StubTool("analyzeCampaigns", category="analytics"))

        assert manager.unregister_tool("searchBooks") is True

        assert manager.get_tool("searchBooks") is None
        assert manager.get_tools_by_category("search") == []
        assert manager.get_categories() == ["analytics"]

    def test_unregister_unknown_returns_false(self, manager: ToolManager) -> None:
        assert manager.unregister_tool("missing") is False

    def test_registration_defaults_skip_explicit_fields(self) -> None:
        manager = ToolManager(default_config={"max_retries": 5, "timeout_seconds": 12.0})
        tool = StubTool("searchBooks", max_retries=1)

        manager.register_tool(tool)

        assert tool.config.max_retries == 1
        assert tool.config.timeout_seconds == 12.0


class TestLookups:
    """Category, tag and enabled filters."""

    def test_by_category_and_tag(self, manager: ToolManager) -> None:
        books = StubTool("searchBooks", category="search", tags=("books",))
        campaigns = StubTool("analyzeCampaigns", category="analytics", tags=("campaign",))
        manager.register_tool(books)
        manager.register_tool(campaigns)

        assert manager.get_tools_by_category("analytics") == [campaigns]
        assert manager.get_tools_by_tag("books") == [books]
        assert manager.get_tools_by_tag("unknown") == []

    def test_disabled_tools_stay_registered(self, manager: ToolManager) -> None:
        tool = StubTool("searchBooks")
        manager.register_tool(tool)

        assert manager.disable_tool("searchBooks") is True

        assert manager.get_enabled_tools() == []
        assert manager.get_all_tools() == [tool]

        manager.enable_tool("searchBooks")
        assert manager.get_enabled_tools() == [tool]

    def test_enable_unknown_tool(self, manager: ToolManager) -> None:
        assert manager.enable_tool("missing") is False

    def test_resolve_known_kind(self, manager: ToolManager) -> None:
        tool = StubTool("analyzeCampaigns", category="analytics")
        manager.register_tool(tool)

        assert manager.resolve("analyzeCampaigns") == (ToolKind.ANALYZE_CAMPAIGNS, tool)

    @pytest.mark.parametrize("name", ["searchBooks", "rm_rf", None])
    def test_resolve_rejects_unknown_or_unregistered(self, manager: ToolManager, name) -> None:
        manager.register_tool(StubTool("analyzeCampaigns", category="analytics"))

        with pytest.raises(ToolNotFoundError):
            manager.resolve(name)

    def test_summary_and_stats(self, manager: ToolManager) -> None:
        manager.register_tool(StubTool("searchBooks", category="search"))
        manager.register_tool(StubTool("analyzeCampaigns", category="analytics"))
        manager.disable_tool("searchBooks")

        summary = manager.get_summary()
        stats = manager.get_tool_stats()

        assert summary["total_tools"] == 2
        assert summary["enabled_tools"] == 1
        assert summary["categories_count"] == {"search": 1, "analytics": 1}
        assert stats["searchBooks"]["enabled"] is False
        assert stats["analyzeCampaigns"]["call_count"] == 0

    async def test_clear_all_caches(self, manager: ToolManager) -> None:
        tool = StubTool("searchBooks")
        manager.register_tool(tool)
        await tool.execute_with_retry({"query": "dune"})

        assert manager.clear_all_caches() == 1
        assert tool.get_stats().cache_size == 0


class TestWatchers:
    """Watchers are notified synchronously; a failing watcher is isolated."""

    def test_notified_on_add_update_remove(self, manager: ToolManager) -> None:
        events: list[tuple[str, ToolAction]] = []
        manager.add_watcher(lambda tool, action: events.append((tool.name, action)))

        manager.register_tool(StubTool("searchBooks"))
        manager.disable_tool("searchBooks")
        manager.unregister_tool("searchBooks")

        assert events == [
            ("searchBooks", ToolAction.ADD),
            ("searchBooks", ToolAction.UPDATE),
            ("searchBooks", ToolAction.REMOVE),
        ]

    def test_failing_watcher_does_not_block_others(self, manager: ToolManager) -> None:
        seen: list[ToolAction] = []

        def broken(tool: Tool, action: ToolAction) -> None:
            raise RuntimeError("watcher bug")

        manager.add_watcher(broken)
        manager.add_watcher(lambda tool, action: seen.append(action))

        assert manager.register_tool(StubTool("searchBooks")) is True

        assert seen == [ToolAction.ADD]
        assert manager.get_tool("searchBooks") is not None

    def test_remove_watcher(self, manager: ToolManager) -> None:
        seen: list[ToolAction] = []

        def watcher(tool: Tool, action: ToolAction) -> None:
            seen.append(action)

        manager.add_watcher(watcher)
        manager.remove_watcher(watcher)
        manager.register_tool(StubTool("searchBooks"))

        assert seen == []


class TestValidation:
    """validate_tool reports every problem without changing state."""

    def test_valid_tool(self, manager: ToolManager) -> None:
        result = manager.validate_tool(StubTool("searchBooks"))

        assert result.valid is True
        assert result.errors == []
        assert manager.get_all_tools() == []

    def test_duplicate_name(self, manager: ToolManager) -> None:
        manager.register_tool(StubTool("searchBooks"))

        result = manager.validate_tool(StubTool("searchBooks"))

        assert result.valid is False
        assert "Tool with name 'searchBooks' already exists" in result.errors

    def test_missing_metadata_and_execute(self, manager: ToolManager) -> None:
        result = manager.validate_tool(object())

        assert result.valid is False
        assert "Tool metadata is required" in result.errors
        assert "Tool must implement execute method" in result.errors

    def test_sync_execute_rejected(self, manager: ToolManager) -> None:
        class SyncTool:
            def get_metadata(self) -> ToolMetadata:
                return ToolMetadata(name="sync", description="d", category="c")

            def execute(self, input: dict[str, Any]) -> ToolResult:
                return ToolResult.ok({})

        result = manager.validate_tool(SyncTool())

        assert result.errors == ["Tool execute method must be async"]

    def test_empty_metadata_fields(self, manager: ToolManager) -> None:
        class BlankTool:
            def get_metadata(self) -> ToolMetadata:
                return ToolMetadata(name="", description="", category="")

            async def execute(self, input: dict[str, Any]) -> ToolResult:
                return ToolResult.ok({})

        result = manager.validate_tool(BlankTool())

        assert result.errors == [
            "Tool name is required",
            "Tool category is required",
            "Tool description is required",
        ]
