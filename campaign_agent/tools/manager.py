"""
Tool Manager

This module implements the registry that owns tool lifecycle: registration
(first registration of a name wins), unregistration, enable/disable,
category and tag lookups, validation, and change notification.

Invariant: a tool is in the category index if and only if it is in the
primary map; category buckets are removed once empty.

Pattern: Service Registry
Pattern: Observer (watchers notified on add/remove/update)
"""

import inspect
import logging
from typing import Any, Callable, Optional

from campaign_agent.core.exceptions import ToolNotFoundError
from campaign_agent.models.tools import (
    ToolAction,
    ToolConfig,
    ToolKind,
    ToolValidationResult,
)
from campaign_agent.tools.base import Tool


logger = logging.getLogger(__name__)

Watcher = Callable[[Tool, ToolAction], None]


class ToolManager:
    """
    Registry of tools keyed by name, with a secondary category index.

    Args:
        default_config: Config applied on registration to every field the
            tool did not set explicitly (default: ToolConfig defaults).

    Example:
        >>> manager = ToolManager()
        >>> manager.register_tool(books_tool)
        >>> kind, tool = manager.resolve("searchBooks")
    """

    def __init__(self, default_config: Optional[dict[str, Any]] = None) -> None:
        self._tools: dict[str, Tool] = {}
        self._registry: dict[str, dict[str, Tool]] = {}
        self._watchers: list[Watcher] = []
        self._default_config: dict[str, Any] = (
            ToolConfig(**default_config).model_dump()
            if default_config is not None
            else ToolConfig().model_dump()
        )

    # =========================================================================
    # Registration
    # =========================================================================

    def register_tool(self, tool: Tool) -> bool:
        """
        Register a tool.

        A name that is already registered is left untouched and the call
        is a no-op.

        Returns:
            True if the tool was added, False if the name was taken.
        """
        metadata = tool.get_metadata()

        if metadata.name in self._tools:
            logger.warning(f"Tool '{metadata.name}' is already registered; ignoring")
            return False

        tool.apply_defaults(self._default_config)

        self._tools[metadata.name] = tool
        self._registry.setdefault(metadata.category, {})[metadata.name] = tool

        logger.info(f"Registered tool {metadata.name} ({metadata.category} v{metadata.version})")
        self._notify_watchers(tool, ToolAction.ADD)
        return True

    def unregister_tool(self, name: str) -> bool:
        """
        Remove a tool.

        Returns:
            True if removed, False if no tool had that name.
        """
        tool = self._tools.pop(name, None)
        if tool is None:
            return False

        category = tool.get_metadata().category
        bucket = self._registry.get(category)
        if bucket is not None:
            bucket.pop(name, None)
            if not bucket:
                del self._registry[category]

        logger.info(f"Unregistered tool {name}")
        self._notify_watchers(tool, ToolAction.REMOVE)
        return True

    # =========================================================================
    # Lookups
    # =========================================================================

    def get_tool(self, name: str) -> Optional[Tool]:
        return self._tools.get(name)

    def resolve(self, name: Optional[str]) -> tuple[ToolKind, Tool]:
        """
        Resolve a model-supplied tool name to a known kind and instance.

        Raises:
            ToolNotFoundError: If the name is not a known kind or no tool
                of that kind is registered.
        """
        kind = ToolKind.from_name(name)
        tool = self._tools.get(kind.value) if kind is not None else None
        if kind is None or tool is None:
            raise ToolNotFoundError(name or "")
        return kind, tool

    def get_tools_by_category(self, category: str) -> list[Tool]:
        return list(self._registry.get(category, {}).values())

    def get_tools_by_tag(self, tag: str) -> list[Tool]:
        return [t for t in self._tools.values() if tag in t.get_metadata().tags]

    def get_all_tools(self) -> list[Tool]:
        return list(self._tools.values())

    def get_enabled_tools(self) -> list[Tool]:
        return [t for t in self._tools.values() if t.is_enabled()]

    def get_tool_names(self) -> list[str]:
        return list(self._tools)

    def get_categories(self) -> list[str]:
        return list(self._registry)

    # =========================================================================
    # Configuration
    # =========================================================================

    def update_tool_config(self, name: str, changes: dict[str, Any]) -> bool:
        """
        Merge config changes into a registered tool.

        Returns:
            True if the tool exists and was updated, False otherwise.
        """
        tool = self._tools.get(name)
        if tool is None:
            return False

        tool.update_config(changes)
        self._notify_watchers(tool, ToolAction.UPDATE)
        return True

    def enable_tool(self, name: str) -> bool:
        return self.update_tool_config(name, {"enabled": True})

    def disable_tool(self, name: str) -> bool:
        return self.update_tool_config(name, {"enabled": False})

    def clear_all_caches(self) -> int:
        """Clear every tool's in-process cache; returns the number cleared."""
        for tool in self._tools.values():
            tool.clear_cache()
        logger.info(f"Cleared caches of {len(self._tools)} tools")
        return len(self._tools)

    # =========================================================================
    # Stats
    # =========================================================================

    def get_tool_stats(self) -> dict[str, dict[str, Any]]:
        """Per-tool metadata, config and usage counters keyed by name."""
        stats: dict[str, dict[str, Any]] = {}
        for name, tool in self._tools.items():
            metadata = tool.get_metadata()
            config = tool.config
            usage = tool.get_stats()
            stats[name] = {
                "category": metadata.category,
                "version": metadata.version,
                "description": metadata.description,
                "tags": list(metadata.tags),
                "enabled": config.enabled,
                "max_retries": config.max_retries,
                "timeout_seconds": config.timeout_seconds,
                "cache_enabled": config.cache_enabled,
                "cache_ttl_seconds": config.cache_ttl_seconds,
                "call_count": usage.call_count,
                "last_call_time": usage.last_call_time,
                "cache_size": usage.cache_size,
            }
        return stats

    def get_summary(self) -> dict[str, Any]:
        categories_count: dict[str, int] = {
            category: len(bucket) for category, bucket in self._registry.items()
        }
        return {
            "total_tools": len(self._tools),
            "enabled_tools": len(self.get_enabled_tools()),
            "categories": self.get_categories(),
            "categories_count": categories_count,
        }

    # =========================================================================
    # Watchers
    # =========================================================================

    def add_watcher(self, watcher: Watcher) -> None:
        if watcher not in self._watchers:
            self._watchers.append(watcher)

    def remove_watcher(self, watcher: Watcher) -> None:
        if watcher in self._watchers:
            self._watchers.remove(watcher)

    def _notify_watchers(self, tool: Tool, action: ToolAction) -> None:
        """Call every watcher; a failing watcher is logged and skipped."""
        for watcher in list(self._watchers):
            try:
                watcher(tool, action)
            except Exception:
                logger.exception(
                    f"Tool watcher failed on {action.value} of {tool.get_metadata().name}"
                )

    # =========================================================================
    # Validation
    # =========================================================================

    def validate_tool(self, tool: Any) -> ToolValidationResult:
        """
        Check a tool before registration without changing any state.

        Checks required metadata fields, name uniqueness and that the tool
        implements an async execute().
        """
        errors: list[str] = []

        get_metadata = getattr(tool, "get_metadata", None)
        metadata = get_metadata() if callable(get_metadata) else None

        if metadata is None:
            errors.append("Tool metadata is required")
        else:
            if not metadata.name:
                errors.append("Tool name is required")
            if not metadata.category:
                errors.append("Tool category is required")
            if not metadata.description:
                errors.append("Tool description is required")
            if metadata.name and metadata.name in self._tools:
                errors.append(f"Tool with name '{metadata.name}' already exists")

        execute = getattr(tool, "execute", None)
        if not callable(execute) or getattr(execute, "__isabstractmethod__", False):
            errors.append("Tool must implement execute method")
        elif not inspect.iscoroutinefunction(execute):
            errors.append("Tool execute method must be async")

        return ToolValidationResult(valid=not errors, errors=errors)
