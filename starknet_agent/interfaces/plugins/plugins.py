"""
Contracts between the agent and the plugins that give it tools.

A plugin contributes tools to a registry. Each tool names the plugin it
belongs to, so an agent config listing plugin names can be turned into the
set of tools the agent may call. Tools that act with the agent's account are
bound to that agent before they run.
"""
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional


class Tool(ABC):
    """A callable action exposed to the model as a function."""

    @property
    @abstractmethod
    def name(self) -> str:
        pass

    @property
    @abstractmethod
    def description(self) -> str:
        pass

    @property
    def plugin(self) -> Optional[str]:
        """Lower-cased name of the contributing plugin, if any."""
        return None

    def bind(self, agent: Any) -> None:
        """Attach the agent the tool acts for. Tools without an account ignore this."""

    @abstractmethod
    def configure(self, config: Dict[str, Any]) -> None:
        pass

    @abstractmethod
    def get_schema(self) -> Dict[str, Any]:
        """JSON schema of the parameters, as sent to the model."""
        pass

    @abstractmethod
    async def execute(self, **params) -> Dict[str, Any]:
        """Run the action and return a status envelope."""
        pass


class ToolRegistry(ABC):
    """Catalog of tools plus the per-agent access lists."""

    @abstractmethod
    def register_tool(self, tool: Tool) -> bool:
        pass

    @abstractmethod
    def get_tool(self, tool_name: str) -> Optional[Tool]:
        pass

    @abstractmethod
    def bind_agent(self, agent: Any) -> None:
        pass

    @abstractmethod
    def assign_tool_to_agent(self, agent_name: str, tool_name: str) -> bool:
        pass

    @abstractmethod
    def assign_plugin_tools(self, agent_name: str, plugins: List[str]) -> List[str]:
        """Grant every tool whose plugin is listed. Returns the granted names."""
        pass

    @abstractmethod
    def get_agent_tools(self, agent_name: str) -> List[Dict[str, Any]]:
        """Name, description and parameter schema of each granted tool."""
        pass

    @abstractmethod
    def list_all_tools(self) -> List[str]:
        pass

    @abstractmethod
    def configure_all_tools(self, config: Dict[str, Any]) -> None:
        pass


class Plugin(ABC):
    """A package of tools for one protocol or service."""

    @property
    @abstractmethod
    def name(self) -> str:
        pass

    @property
    @abstractmethod
    def description(self) -> str:
        pass

    @abstractmethod
    def initialize(self, tool_registry: ToolRegistry) -> bool:
        """Register the tools that act with the agent's account."""
        pass

    def initialize_signature(self, tool_registry: ToolRegistry) -> bool:
        """Register calldata-only tools. Plugins without them return False."""
        return False

    async def discover(self, tool_registry: ToolRegistry) -> List[str]:
        """Register tools only known once a remote service is reached.

        Returns the names of the tools registered.
        """
        return []

    def configure(self, config: Dict[str, Any]) -> None:
        pass


class PluginManager(ABC):
    """Discovers plugins and registers their tools."""

    @abstractmethod
    def load_plugins(self, allowed: Optional[List[str]] = None) -> List[str]:
        """Load installed plugins, restricted to ``allowed`` names when given."""
        pass

    @abstractmethod
    def register_plugin(self, plugin: Plugin) -> bool:
        pass

    @abstractmethod
    async def discover_tools(self) -> Dict[str, List[str]]:
        """Run every plugin's discovery; maps plugin names to new tools."""
        pass

    @abstractmethod
    def get_plugin(self, name: str) -> Optional[Plugin]:
        pass

    @abstractmethod
    def list_plugins(self) -> List[Dict[str, Any]]:
        pass

    @abstractmethod
    async def execute_tool(self, tool_name: str, **kwargs) -> Dict[str, Any]:
        pass

    @abstractmethod
    def configure(self, config: Dict[str, Any]) -> None:
        pass
