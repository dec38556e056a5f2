"""
Domain models for agent configuration.

This module defines the agent JSON configuration, its execution modes and
the helpers that turn a raw JSON document into a validated configuration.
"""

import json
import logging
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, Field, field_validator, model_validator

logger = logging.getLogger(__name__)

DEFAULT_MAX_ITERATIONS = 10
DEFAULT_SHORT_TERM_MEMORY_SIZE = 5
# camelCase spellings of the tool iteration limit found in agent files
ITERATION_KEYS = ("maxIteration", "maxIterations")


def _first_key(data: Dict[str, Any], keys: Tuple[str, ...]) -> Any:
    for key in keys:
        if key in data:
            return data[key]
    return None


class AgentMode(str, Enum):
    """Execution modes an agent can run in."""

    INTERACTIVE = "interactive"
    AUTONOMOUS = "autonomous"
    HYBRID = "hybrid"


def parse_agent_mode(mode_config: Any) -> AgentMode:
    """Parse an agent mode from a string or a mode object.

    Accepts a plain string, an object with a ``mode`` key, or the legacy
    object of boolean flags (``interactive``/``autonomous``/``hybrid``).
    Anything else falls back to interactive mode.
    """
    valid = [m.value for m in AgentMode]

    if isinstance(mode_config, AgentMode):
        return mode_config

    if isinstance(mode_config, str):
        mode = mode_config.lower()
        if mode in valid:
            return AgentMode(mode)
        logger.warning(
            f'Invalid mode string "{mode}" - defaulting to "{AgentMode.INTERACTIVE.value}"'
        )
        return AgentMode.INTERACTIVE

    if isinstance(mode_config, dict):
        mode = mode_config.get("mode")
        if isinstance(mode, str) and mode.lower() in valid:
            return AgentMode(mode.lower())

        if any(flag in mode_config for flag in valid):
            if mode_config.get("hybrid") is True:
                return AgentMode.HYBRID
            if mode_config.get("autonomous") is True:
                return AgentMode.AUTONOMOUS
            return AgentMode.INTERACTIVE

    logger.warning(
        f'Could not determine agent mode - defaulting to "{AgentMode.INTERACTIVE.value}"'
    )
    return AgentMode.INTERACTIVE


def create_context_from_json(data: Optional[Dict[str, Any]]) -> str:
    """Build the agent context text from its JSON configuration."""
    if not data:
        raise ValueError(
            "Error while trying to parse your context from the config file."
        )

    parts: List[str] = []
    sep = "]\n["

    objectives = data.get("objectives")
    if isinstance(objectives, list):
        parts.append(f"Your objectives : [{sep.join(str(o) for o in objectives)}]")

    if data.get("name"):
        parts.append(f"Your name : [{data['name']}]")
    if data.get("bio"):
        parts.append(f"Your Bio : [{data['bio']}]")

    knowledge = data.get("knowledge")
    if isinstance(knowledge, list):
        parts.append(f"Your knowledge : [{sep.join(str(k) for k in knowledge)}]")

    return "\n".join(parts)


class AgentPrompt(BaseModel):
    """Persona fields the agent context is built from."""

    bio: str = Field("", description="Short biography of the agent")
    lore: List[str] = Field(default_factory=list, description="Background lore")
    objectives: List[str] = Field(
        default_factory=list, description="Objectives the agent works toward"
    )
    knowledge: List[str] = Field(
        default_factory=list, description="Facts the agent should know"
    )


class MemoryConfig(BaseModel):
    """Short-term conversational memory settings."""

    enabled: bool = Field(False, description="Whether memory is enabled")
    short_term_memory_size: int = Field(
        DEFAULT_SHORT_TERM_MEMORY_SIZE,
        description="Number of recent exchanges kept per user",
    )

    @field_validator("short_term_memory_size")
    @classmethod
    def size_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("short_term_memory_size must be at least 1")
        return v


class McpServerConfig(BaseModel):
    """Command line used to launch an MCP server."""

    command: str = Field(..., description="Executable to run")
    args: List[str] = Field(..., description="Command arguments")
    env: Dict[str, str] = Field(default_factory=dict, description="Extra env vars")

    @field_validator("command")
    @classmethod
    def command_not_empty(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("MCP server must have a valid command string")
        return v


class AgentConfig(BaseModel):
    """Validated agent configuration loaded from JSON."""

    name: str = Field(..., description="Agent name")
    prompt: AgentPrompt = Field(
        default_factory=AgentPrompt, description="Persona used to build the context"
    )
    interval: int = Field(..., description="Seconds between autonomous cycles")
    chat_id: str = Field(..., description="Conversation identifier")
    plugins: List[str] = Field(
        default_factory=list, description="Names of the plugins the agent may use"
    )
    memory: MemoryConfig = Field(default_factory=MemoryConfig)
    mcp_servers: Dict[str, McpServerConfig] = Field(default_factory=dict)
    mode: AgentMode = Field(AgentMode.INTERACTIVE, description="Execution mode")
    max_iterations: int = Field(
        DEFAULT_MAX_ITERATIONS, description="Maximum tool-calling rounds per request"
    )

    @model_validator(mode="before")
    @classmethod
    def normalize_raw(cls, data: Any) -> Any:
        """Accept the camelCase keys and legacy shapes found in agent files."""
        if not isinstance(data, dict):
            return data
        data = dict(data)

        if "chat_id" not in data and "chatId" in data:
            data["chat_id"] = data.pop("chatId")
        if "mcp_servers" not in data and "mcpServers" in data:
            data["mcp_servers"] = data.pop("mcpServers")

        raw_mode = data.get("mode")
        if "max_iterations" not in data:
            limit = _first_key(data, ITERATION_KEYS)
            if limit is None and isinstance(raw_mode, dict):
                limit = _first_key(raw_mode, ("max_iterations",) + ITERATION_KEYS)
            if isinstance(limit, int):
                data["max_iterations"] = limit
        for key in ITERATION_KEYS:
            data.pop(key, None)
        if raw_mode is not None:
            data["mode"] = parse_agent_mode(raw_mode)

        memory = data.get("memory")
        if isinstance(memory, bool):
            data["memory"] = {"enabled": memory}
        elif isinstance(memory, dict) and "shortTermMemorySize" in memory:
            memory = dict(memory)
            memory["short_term_memory_size"] = memory.pop("shortTermMemorySize")
            data["memory"] = memory

        if "prompt" not in data:
            data["prompt"] = {
                key: data[key]
                for key in ("bio", "lore", "objectives", "knowledge")
                if key in data
            }
        return data

    @field_validator("name", "chat_id")
    @classmethod
    def not_empty(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Field cannot be empty")
        return v

    @field_validator("interval")
    @classmethod
    def interval_positive(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("interval must be a positive number of seconds")
        return v

    @field_validator("plugins")
    @classmethod
    def lowercase_plugins(cls, v: List[str]) -> List[str]:
        if not v:
            logger.warning("No plugins specified in agent's config")
        return [p.lower() for p in v]

    @field_validator("max_iterations")
    @classmethod
    def iterations_not_negative(cls, v: int) -> int:
        if v < 0:
            raise ValueError("max_iterations cannot be negative; use 0 for no limit")
        return v

    def context(self) -> str:
        """Return the context text for this agent."""
        return create_context_from_json(
            {
                "name": self.name,
                "bio": self.prompt.bio,
                "objectives": self.prompt.objectives,
                "knowledge": self.prompt.knowledge,
            }
        )


def load_agent_config(path: str) -> AgentConfig:
    """Load and validate an agent configuration file."""
    with open(path, "r") as f:
        data = json.load(f)
    if not data:
        raise ValueError(f"Failed to parse JSON from {path}")
    if "mode" not in data:
        raise ValueError("Mode configuration is mandatory but missing in config file")
    return AgentConfig.model_validate(data)
