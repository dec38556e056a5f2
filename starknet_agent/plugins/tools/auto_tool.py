"""
Base class for tools contributed by plugins.

Subclasses supply ``execute`` and usually ``get_schema``. Passing a registry
registers the tool as soon as it is built.
"""
from typing import Any, Dict, Optional

from starknet_agent.interfaces.plugins.plugins import Tool


class AutoTool(Tool):
    def __init__(
        self,
        name: str,
        description: str,
        registry=None,
        plugin: Optional[str] = None,
    ):
        if not name or not name.strip():
            raise ValueError("Tool name cannot be empty")
        if not description or not description.strip():
            raise ValueError("Tool description cannot be empty")
        self._name = name
        self._description = description
        self._plugin = plugin.lower() if plugin else None
        self._config: Dict[str, Any] = {}
        self.agent: Any = None

        if registry is not None:
            registry.register_tool(self)

    @property
    def name(self) -> str:
        return self._name

    @property
    def description(self) -> str:
        return self._description

    @property
    def plugin(self) -> Optional[str]:
        return self._plugin

    def bind(self, agent: Any) -> None:
        self.agent = agent

    def configure(self, config: Dict[str, Any]) -> None:
        if config is None:
            raise TypeError("Config cannot be None")
        self._config = config

    def get_schema(self) -> Dict[str, Any]:
        return {"type": "object", "properties": {}}

    async def execute(self, **params) -> Dict[str, Any]:
        raise NotImplementedError(f"Tool {self.name} does not implement execute")
