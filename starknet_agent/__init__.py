"""
Starknet Agent - An AI agent framework with pluggable tools and document retrieval.

This package provides a modular framework for building language-model agents
that act through plugin tools, with a background pipeline that ingests
documents for retrieval.
"""

# Client interface (main entry point)
from starknet_agent.client.starknet_agent import StarknetAgent

# Factory for creating agent systems
from starknet_agent.factories.agent_factory import StarknetAgentFactory

# Useful tools and utilities
from starknet_agent.plugins.manager import PluginManager
from starknet_agent.plugins.registry import ToolRegistry
from starknet_agent.plugins.tools.auto_tool import AutoTool
from starknet_agent.plugins.tools.starknet_tool import SignatureTool, StarknetTool
from starknet_agent.interfaces.plugins.plugins import Plugin, Tool

# Package metadata
__all__ = [
    # Main client interfaces
    "StarknetAgent",
    # Factories
    "StarknetAgentFactory",
    # Tools
    "PluginManager",
    "ToolRegistry",
    "AutoTool",
    "StarknetTool",
    "SignatureTool",
    "Plugin",
    "Tool",
]
