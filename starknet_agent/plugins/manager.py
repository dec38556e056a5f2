"""
Plugin manager for the Starknet Agent system.

Installed distributions publish plugins under the ``starknet_agent.plugins``
entry point group. Each entry point resolves to a zero-argument factory
returning a ``Plugin``; the manager builds it, lets it register its tools,
then hands it the shared configuration.
"""

import importlib.metadata
import logging
from typing import Any, Dict, List, Optional

from starknet_agent.interfaces.plugins.plugins import Plugin
from starknet_agent.interfaces.plugins.plugins import (
    PluginManager as PluginManagerInterface,
)
from starknet_agent.plugins.registry import ToolRegistry

logger = logging.getLogger(__name__)

ENTRY_POINT_GROUP = "starknet_agent.plugins"


class PluginManager(PluginManagerInterface):
    """Loads plugins and routes tool calls to the shared registry."""

    def __init__(
        self,
        config: Optional[Dict[str, Any]] = None,
        tool_registry: Optional[ToolRegistry] = None,
    ):
        self.config = config or {}
        self.tool_registry = tool_registry or ToolRegistry()
        self._plugins: Dict[str, Plugin] = {}
        self._seen_entry_points = set()

    @property
    def signature_mode(self) -> bool:
        """Plugins contribute calldata-only tools instead of account tools."""
        return bool(self.config.get("signature_mode"))

    def register_plugin(self, plugin: Plugin) -> bool:
        """Let ``plugin`` register its tools, then configure it.

        A plugin that fails either step is not kept.
        """
        try:
            if self.signature_mode:
                registered = plugin.initialize_signature(self.tool_registry)
                if not registered:
                    logger.warning(f"Plugin {plugin.name} has no signature tools; skipping")
                    return False
            else:
                plugin.initialize(self.tool_registry)
            plugin.configure(self.config)
        except Exception as e:
            logger.error(f"Error registering plugin {plugin.name}: {e}")
            self._plugins.pop(plugin.name, None)
            return False

        self._plugins[plugin.name] = plugin
        logger.info(f"Registered plugin {plugin.name}")
        return True

    def load_plugins(self, allowed: Optional[List[str]] = None) -> List[str]:
        """Load the installed plugins named in ``allowed``, or all when it is None.

        Returns:
            Entry point names of the plugins registered by this call
        """
        wanted = None if allowed is None else {name.lower() for name in allowed}
        loaded = []

        for entry_point in importlib.metadata.entry_points(group=ENTRY_POINT_GROUP):
            if wanted is not None and entry_point.name.lower() not in wanted:
                continue
            key = f"{entry_point.name}:{entry_point.value}"
            if key in self._seen_entry_points:
                logger.debug(f"Plugin {entry_point.name} already loaded")
                continue
            self._seen_entry_points.add(key)

            try:
                plugin = entry_point.load()()
            except Exception as e:
                logger.error(f"Error loading plugin {entry_point.name}: {e}")
                continue
            if self.register_plugin(plugin):
                loaded.append(entry_point.name)

        return loaded

    async def discover_tools(self) -> Dict[str, List[str]]:
        """Let each plugin register the tools it can only list once connected.

        A failing plugin is logged and left out of the result.
        """
        discovered = {}
        for name, plugin in self._plugins.items():
            try:
                tools = await plugin.discover(self.tool_registry)
            except Exception as e:
                logger.error(f"Error discovering tools of plugin {name}: {e}")
                continue
            if tools:
                discovered[name] = tools
        return discovered

    def get_plugin(self, name: str) -> Optional[Plugin]:
        return self._plugins.get(name)

    def list_plugins(self) -> List[Dict[str, Any]]:
        return [
            {"name": plugin.name, "description": plugin.description}
            for plugin in self._plugins.values()
        ]

    async def execute_tool(self, tool_name: str, **kwargs) -> Dict[str, Any]:
        """Run a registered tool outside of an agent conversation."""
        tool = self.tool_registry.get_tool(tool_name)
        if not tool:
            return {"status": "error", "message": f"Tool {tool_name} not found"}
        try:
            return await tool.execute(**kwargs)
        except Exception as e:
            logger.error(f"Tool {tool_name} raised: {e}")
            return {"status": "error", "message": str(e)}

    def configure(self, config: Dict[str, Any]) -> None:
        """Merge ``config`` and push it to every tool and plugin."""
        self.config.update(config)
        self.tool_registry.configure_all_tools(config)
        for name, plugin in self._plugins.items():
            try:
                plugin.configure(self.config)
            except Exception as e:
                logger.error(f"Error configuring plugin {name}: {e}")
