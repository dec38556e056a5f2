"""
Tool wrappers used by plugins to expose their actions to an agent.

A ``StarknetTool`` wraps an async action ``func(agent, params)`` that calls
into a vendor SDK. A ``SignatureTool`` wraps ``func(params)`` and returns
unsigned calldata for an external signer instead of acting with the
agent's account. Both validate parameters against a pydantic model and
never raise: failures come back as ``{"status": "failure", "error": ...}``.
"""
import inspect
import json
import logging
from typing import Any, Awaitable, Callable, Dict, Optional, Type

from pydantic import BaseModel, ValidationError

from starknet_agent.plugins.tools.auto_tool import AutoTool

logger = logging.getLogger(__name__)


def tool_failure(error: Any) -> Dict[str, Any]:
    """Build the failure envelope returned by every tool."""
    return {"status": "failure", "error": str(error)}


def tool_success(**data: Any) -> Dict[str, Any]:
    return {"status": "success", **data}


def _normalize_output(output: Any) -> Dict[str, Any]:
    if isinstance(output, dict):
        return output
    if isinstance(output, BaseModel):
        return output.model_dump()
    if isinstance(output, str):
        try:
            decoded = json.loads(output)
        except ValueError:
            return tool_success(result=output)
        if isinstance(decoded, dict):
            return decoded
        return tool_success(result=decoded)
    return tool_success(result=output)


def _validation_message(error: ValidationError) -> str:
    parts = []
    for err in error.errors():
        location = ".".join(str(p) for p in err.get("loc", ())) or "params"
        parts.append(f"{location}: {err.get('msg')}")
    return "Invalid parameters: " + "; ".join(parts)


class _SchemaTool(AutoTool):
    """Common parameter handling for plugin tools."""

    def __init__(
        self,
        name: str,
        description: str,
        func: Callable[..., Awaitable[Any]],
        schema: Optional[Type[BaseModel]] = None,
        plugin: Optional[str] = None,
    ):
        if not callable(func):
            raise ValueError(f"Tool {name} must have a callable execute function")
        super().__init__(name, description, plugin=plugin)
        self.func = func
        self.schema = schema

    def get_schema(self) -> Dict[str, Any]:
        if self.schema is None:
            return {"type": "object", "properties": {}}
        schema = self.schema.model_json_schema()
        schema.pop("title", None)
        return schema

    def _parse(self, params: Dict[str, Any]) -> Any:
        if self.schema is None:
            return params
        return self.schema.model_validate(params)

    async def _call(self, *args: Any) -> Dict[str, Any]:
        result = self.func(*args)
        if inspect.isawaitable(result):
            result = await result
        return _normalize_output(result)


class StarknetTool(_SchemaTool):
    """Tool that performs an action with the agent's account."""

    def __init__(
        self,
        name: str,
        plugin: str,
        description: str,
        func: Callable[..., Awaitable[Any]],
        schema: Optional[Type[BaseModel]] = None,
    ):
        super().__init__(name, description, func, schema, plugin=plugin)

    async def execute(self, **params) -> Dict[str, Any]:
        if self.agent is None:
            return tool_failure(f"Tool {self.name} is not bound to an agent")
        try:
            parsed = self._parse(params)
        except ValidationError as e:
            return tool_failure(_validation_message(e))

        try:
            return await self._call(self.agent, parsed)
        except Exception as e:
            logger.error(f"Tool {self.name} failed: {e}")
            return tool_failure(e)


class SignatureTool(_SchemaTool):
    """Tool that prepares calldata for an external signer."""

    def __init__(
        self,
        name: str,
        category: str,
        description: str,
        func: Callable[..., Awaitable[Any]],
        schema: Optional[Type[BaseModel]] = None,
    ):
        super().__init__(name, description, func, schema, plugin=category)
        self.category = category

    async def execute(self, **params) -> Dict[str, Any]:
        try:
            parsed = self._parse(params)
        except ValidationError as e:
            return tool_failure(_validation_message(e))

        try:
            return await self._call(parsed)
        except Exception as e:
            logger.error(f"Signature tool {self.name} failed: {e}")
            return tool_failure(e)
