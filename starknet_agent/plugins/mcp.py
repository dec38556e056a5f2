"""
Model Context Protocol server tools.

Servers listed under ``mcpServers`` in the agent JSON are launched over
stdio. Their tools are listed once the agent first runs and registered
under the ``mcp`` plugin. Every call opens a fresh session, so a tool keeps
working when callers run each request in a new event loop.
"""
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncContextManager, AsyncIterator, Callable, Dict, List, Optional

from mcp import ClientSession, StdioServerParameters
from mcp.client.stdio import stdio_client

from starknet_agent.domains.agent import McpServerConfig
from starknet_agent.interfaces.plugins.plugins import Plugin, ToolRegistry
from starknet_agent.plugins.tools.auto_tool import AutoTool
from starknet_agent.plugins.tools.starknet_tool import tool_failure, tool_success

logger = logging.getLogger(__name__)

MCP_PLUGIN_NAME = "mcp"

SessionFactory = Callable[[McpServerConfig], AsyncContextManager[ClientSession]]


@asynccontextmanager
async def open_session(server: McpServerConfig) -> AsyncIterator[ClientSession]:
    """Launch ``server`` and yield an initialized client session."""
    params = StdioServerParameters(
        command=server.command, args=server.args, env=server.env or None
    )
    async with stdio_client(params) as (read_stream, write_stream):
        async with ClientSession(read_stream, write_stream) as session:
            await session.initialize()
            yield session


def _to_envelope(result: Any) -> Dict[str, Any]:
    text = "\n".join(
        item.text for item in result.content if getattr(item, "type", None) == "text"
    )
    if result.isError:
        return tool_failure(text or "MCP tool reported an error")
    envelope = tool_success(result=text)
    structured = getattr(result, "structuredContent", None)
    if structured:
        envelope["data"] = structured
    return envelope


class McpTool(AutoTool):
    """One tool of an MCP server."""

    def __init__(
        self,
        server_name: str,
        server: McpServerConfig,
        name: str,
        description: Optional[str],
        input_schema: Optional[Dict[str, Any]],
        session_factory: SessionFactory = open_session,
    ):
        super().__init__(
            name,
            description or f"{name} (MCP server {server_name})",
            plugin=MCP_PLUGIN_NAME,
        )
        self.server_name = server_name
        self.server = server
        self.input_schema = input_schema or {"type": "object", "properties": {}}
        self._open_session = session_factory

    def get_schema(self) -> Dict[str, Any]:
        return self.input_schema

    async def execute(self, **params) -> Dict[str, Any]:
        try:
            async with self._open_session(self.server) as session:
                result = await session.call_tool(self.name, arguments=params)
        except Exception as e:
            logger.error(f"MCP tool {self.name} on server {self.server_name} failed: {e}")
            return tool_failure(e)
        return _to_envelope(result)


class McpPlugin(Plugin):
    def __init__(
        self,
        servers: Dict[str, McpServerConfig],
        session_factory: SessionFactory = open_session,
    ):
        self.servers = servers
        self._open_session = session_factory

    @property
    def name(self) -> str:
        return MCP_PLUGIN_NAME

    @property
    def description(self) -> str:
        return "Tools served by the agent's MCP servers"

    def initialize(self, tool_registry: ToolRegistry) -> bool:
        # Nothing is known about the servers' tools before they are reached
        return True

    async def discover(self, tool_registry: ToolRegistry) -> List[str]:
        """List every server's tools and register them.

        A server that cannot be reached is logged and skipped.
        """
        registered = []
        for server_name, server in self.servers.items():
            try:
                async with self._open_session(server) as session:
                    listing = await session.list_tools()
            except Exception as e:
                logger.error(f"Could not list tools of MCP server {server_name}: {e}")
                continue

            names = [
                tool.name
                for tool in listing.tools
                if tool_registry.register_tool(
                    McpTool(
                        server_name,
                        server,
                        tool.name,
                        tool.description,
                        tool.inputSchema,
                        session_factory=self._open_session,
                    )
                )
            ]
            logger.info(f"MCP server {server_name} provided tools: {names}")
            registered.extend(names)
        return registered
