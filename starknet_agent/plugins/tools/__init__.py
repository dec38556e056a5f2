"""
Tools for the Starknet Agent system.

This package contains the base AutoTool class and the StarknetTool and
SignatureTool wrappers plugins use to expose their actions.
"""

from starknet_agent.plugins.tools.auto_tool import AutoTool
from starknet_agent.plugins.tools.starknet_tool import (
    SignatureTool,
    StarknetTool,
    tool_failure,
    tool_success,
)
