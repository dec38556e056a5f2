"""
Tool registry for the Starknet Agent system.

Holds every tool contributed by the loaded plugins, the agent those tools
act for, and the list of tools each agent name has been granted.
"""

import logging
from typing import Any, Dict, List, Optional

from starknet_agent.interfaces.plugins.plugins import Tool
from starknet_agent.interfaces.plugins.plugins import (
    ToolRegistry as ToolRegistryInterface,
)

logger = logging.getLogger(__name__)


class ToolRegistry(ToolRegistryInterface):
    """Registry of plugin tools and per-agent grants."""

    def __init__(self, config: Dict[str, Any] = None):
        self._config = config or {}
        self._tools: Dict[str, Tool] = {}
        self._grants: Dict[str, List[str]] = {}
        self._agent = None

    def register_tool(self, tool: Tool) -> bool:
        """Configure ``tool`` and add it, binding it to the current agent if any."""
        try:
            tool.configure(self._config)
            if self._agent is not None:
                tool.bind(self._agent)
        except Exception as e:
            logger.error(f"Error registering tool {tool.name}: {e}")
            return False

        if tool.name in self._tools:
            logger.warning(f"Replacing already registered tool: {tool.name}")
        self._tools[tool.name] = tool
        logger.debug(f"Registered tool {tool.name} (plugin: {tool.plugin})")
        return True

    def get_tool(self, tool_name: str) -> Optional[Tool]:
        return self._tools.get(tool_name)

    def bind_agent(self, agent: Any) -> None:
        """Tools registered later are bound on registration."""
        self._agent = agent
        for tool in self._tools.values():
            tool.bind(agent)

    def assign_tool_to_agent(self, agent_name: str, tool_name: str) -> bool:
        if tool_name not in self._tools:
            logger.error(
                f"Cannot grant unknown tool {tool_name} to {agent_name}; "
                f"registered: {self.list_all_tools()}"
            )
            return False
        granted = self._grants.setdefault(agent_name, [])
        if tool_name not in granted:
            granted.append(tool_name)
        return True

    def assign_plugin_tools(self, agent_name: str, plugins: List[str]) -> List[str]:
        wanted = {p.lower() for p in plugins}
        assigned = []
        covered = set()
        for name, tool in self._tools.items():
            if tool.plugin in wanted and self.assign_tool_to_agent(agent_name, name):
                assigned.append(name)
                covered.add(tool.plugin)

        missing = sorted(wanted - covered)
        if missing:
            logger.warning(
                f"No tools registered for plugins {missing} requested by agent {agent_name}"
            )
        logger.info(f"Agent {agent_name} granted tools: {assigned}")
        return assigned

    def get_agent_tools(self, agent_name: str) -> List[Dict[str, Any]]:
        return [
            {
                "name": name,
                "description": self._tools[name].description,
                "parameters": self._tools[name].get_schema(),
            }
            for name in self._grants.get(agent_name, [])
            if name in self._tools
        ]

    def list_all_tools(self) -> List[str]:
        return list(self._tools)

    def configure_all_tools(self, config: Dict[str, Any]) -> None:
        """Merge ``config`` into the registry settings and reconfigure every tool.

        A tool that fails to configure is kept; failures are logged together.
        """
        self._config.update(config)
        failures = []
        for name, tool in self._tools.items():
            try:
                tool.configure(self._config)
            except Exception as e:
                failures.append(f"{name} ({e})")

        if failures:
            logger.error(f"Tools failed to configure: {', '.join(failures)}")
