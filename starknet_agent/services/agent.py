"""
Agent service implementation.

An agent pairs a validated agent configuration with a language model and the
tools of its plugins. Requests stream through a tool-calling loop bounded by
the agent's ``max_iterations``, where 0 means unbounded.
"""

import asyncio
import datetime as main_datetime
from datetime import datetime
import json
import logging
import uuid
from collections import deque
from typing import Any, AsyncGenerator, Deque, Dict, List, Optional, Tuple

from starknet_agent.domains.agent import AgentConfig, AgentMode
from starknet_agent.domains.records import MessageRecord, SenderType
from starknet_agent.interfaces.plugins.plugins import PluginManager
from starknet_agent.interfaces.providers.llm import LLMProvider
from starknet_agent.interfaces.repositories.agent import AgentRepository
from starknet_agent.interfaces.services.agent import AgentService as AgentServiceInterface
from starknet_agent.plugins.registry import ToolRegistry
from starknet_agent.services.token_tracking import TokenTracker

logger = logging.getLogger(__name__)

ERROR_REPLY = "I apologize, but I encountered an error processing your request."
AUTONOMOUS_PROMPT = (
    "Continue working toward your objectives. Decide on the next action, "
    "use your tools when needed and report what you did."
)
AUTONOMOUS_USER = "autonomous"


def max_iterations_notice(limit: int) -> str:
    return f"\n[Stopped after reaching the maximum of {limit} tool iterations.]"


class AgentService(AgentServiceInterface):
    """Runs a single configured agent."""

    def __init__(
        self,
        agent_config: AgentConfig,
        llm_provider: LLMProvider,
        tool_registry: Optional[ToolRegistry] = None,
        account_credentials: Optional[Dict[str, str]] = None,
        rpc_url: str = "",
        model_credentials: Optional[Dict[str, Optional[str]]] = None,
        agent_id: Optional[str] = None,
        repository: Optional[AgentRepository] = None,
        model: Optional[str] = None,
        token_tracker: Optional[TokenTracker] = None,
        plugin_manager: Optional[PluginManager] = None,
    ):
        """Initialize the agent.

        Args:
            agent_config: Validated agent configuration
            llm_provider: Provider for language model interactions
            tool_registry: Registry holding the agent's tools
            account_credentials: Starknet account address and private key
            rpc_url: Starknet RPC endpoint
            model_credentials: Model provider settings exposed to tools
            agent_id: Identifier scoping stored documents; defaults to the agent name
            repository: Optional store for conversation history
            model: Model name for the LLM provider
            token_tracker: Token usage accumulator
            plugin_manager: Manager of the plugins that supplied the tools
        """
        self.agent_config = agent_config
        self.llm_provider = llm_provider
        self.tool_registry = tool_registry or ToolRegistry()
        self.account_credentials = account_credentials or {}
        self.rpc_url = rpc_url
        self.model_credentials = model_credentials or {}
        self.agent_id = agent_id or agent_config.name
        self.repository = repository
        self.model = model
        self.token_tracker = token_tracker or TokenTracker()
        self.plugin_manager = plugin_manager

        self._memory: Dict[str, Deque[Tuple[str, str]]] = {}
        self._stop_event: Optional[asyncio.Event] = None
        self.running = False
        self._tools_discovered = False

        self.tool_registry.bind_agent(self)

    @property
    def name(self) -> str:
        return self.agent_config.name

    def get_account_credentials(self) -> Dict[str, str]:
        return {
            "account_public_key": self.account_credentials.get("account_address", ""),
            "account_private_key": self.account_credentials.get("private_key", ""),
        }

    def get_model_credentials(self) -> Dict[str, Optional[str]]:
        return dict(self.model_credentials)

    def get_provider(self) -> str:
        return self.rpc_url

    def get_agent_config(self) -> AgentConfig:
        return self.agent_config

    def get_agent_id(self) -> str:
        return self.agent_id

    def get_system_prompt(self) -> str:
        system_prompt = self.agent_config.context()
        if self.agent_config.prompt.lore:
            system_prompt += "\nYour lore : [" + "]\n[".join(self.agent_config.prompt.lore) + "]"
        system_prompt += f"\n\nThe current time is {datetime.now(tz=main_datetime.timezone.utc)}."
        return system_prompt

    def get_tools(self) -> List[Dict[str, Any]]:
        """Get OpenAI function schemas for this agent's tools."""
        return [
            {
                "type": "function",
                "function": {
                    "name": tool["name"],
                    "description": tool.get("description", ""),
                    "parameters": tool.get("parameters", {}),
                },
            }
            for tool in self.tool_registry.get_agent_tools(self.name)
        ]

    async def execute_tool(
        self, tool_name: str, parameters: Dict[str, Any]
    ) -> Dict[str, Any]:
        """Execute a tool on behalf of this agent."""
        tool = self.tool_registry.get_tool(tool_name)
        if not tool:
            logger.warning(f"Tool '{tool_name}' not found for execution.")
            return {"status": "error", "message": f"Tool '{tool_name}' not found"}

        agent_tools = self.tool_registry.get_agent_tools(self.name)
        if not any(t.get("name") == tool_name for t in agent_tools):
            logger.warning(
                f"Agent '{self.name}' attempted to use unassigned tool '{tool_name}'."
            )
            return {
                "status": "error",
                "message": f"Agent '{self.name}' doesn't have access to tool '{tool_name}'",
            }

        try:
            logger.info(
                f"Executing tool '{tool_name}' for agent '{self.name}' with params: {parameters}"
            )
            result = await tool.execute(**parameters)
            logger.info(
                f"Tool '{tool_name}' execution result status: {result.get('status')}"
            )
            return result
        except Exception as e:
            logger.exception(f"Error executing tool '{tool_name}': {e}")
            return {"status": "error", "message": f"Error executing tool: {str(e)}"}

    async def discover_tools(self) -> List[str]:
        """Grant this agent the tools its plugins can only list once connected.

        Runs once per agent; returns the names of the tools granted.
        """
        if self._tools_discovered or self.plugin_manager is None:
            return []
        self._tools_discovered = True
        discovered = await self.plugin_manager.discover_tools()
        if not discovered:
            return []
        return self.tool_registry.assign_plugin_tools(self.name, list(discovered))

    def _history_messages(self, user_id: str) -> List[Dict[str, Any]]:
        history = self._memory.get(user_id)
        if not self.agent_config.memory.enabled or not history:
            return []
        messages = []
        for question, answer in history:
            messages.append({"role": "user", "content": question})
            messages.append({"role": "assistant", "content": answer})
        return messages

    def _remember(self, user_id: str, message: str, answer: str) -> None:
        if not self.agent_config.memory.enabled:
            return
        history = self._memory.setdefault(
            user_id, deque(maxlen=self.agent_config.memory.short_term_memory_size)
        )
        history.append((message, answer))

    def get_memory(self, user_id: str) -> List[Tuple[str, str]]:
        return list(self._memory.get(user_id, []))

    def clear_memory(self, user_id: Optional[str] = None) -> None:
        if user_id is None:
            self._memory.clear()
        else:
            self._memory.pop(user_id, None)

    def _persist(self, message: str, answer: str) -> None:
        if not self.repository:
            return
        try:
            chat_id = self.agent_config.chat_id
            conversation = self.repository.get_conversation(self.agent_id, chat_id)
            if not conversation:
                conversation = self.repository.create_conversation(self.agent_id, chat_id)
            for content, sender in ((message, SenderType.USER), (answer, SenderType.AGENT)):
                self.repository.add_message(
                    MessageRecord(
                        message_id=str(uuid.uuid4()),
                        conversation_id=conversation.conversation_id,
                        content=content,
                        sender_type=sender,
                        status="success",
                    )
                )
        except Exception as e:
            logger.error(f"Failed to persist conversation for agent '{self.name}': {e}")

    async def process(
        self, user_id: str, message: str, prompt: Optional[str] = None
    ) -> AsyncGenerator[str, None]:
        """Process a message and stream the reply, running tools as requested."""
        final_text = ""
        try:
            user_content = message
            if prompt:
                user_content = f"ADDITIONAL PROMPT:\n{prompt}\n\n{message}"
            user_content += f"\n\nUSER IDENTIFIER: {user_id}"

            messages: List[Dict[str, Any]] = [
                {"role": "system", "content": self.get_system_prompt()}
            ]
            messages.extend(self._history_messages(user_id))
            messages.append({"role": "user", "content": user_content})

            await self.discover_tools()
            tools = self.get_tools()
            max_iterations = self.agent_config.max_iterations
            iterations = 0

            while True:
                accumulated_text = ""
                tool_calls: Dict[int, Dict[str, Any]] = {}
                usage_seen = False

                async for event in self.llm_provider.chat_stream(
                    messages=messages,
                    model=self.model,
                    tools=tools if tools else None,
                ):
                    etype = event.get("type")
                    if etype == "content":
                        delta = event.get("delta", "")
                        accumulated_text += delta
                        yield delta
                    elif etype == "tool_call_delta":
                        index_raw = event.get("index")
                        try:
                            index = int(index_raw) if index_raw is not None else 0
                        except (TypeError, ValueError):
                            index = 0
                        entry = tool_calls.setdefault(
                            index, {"id": None, "name": None, "arguments": ""}
                        )
                        if event.get("id") and not entry.get("id"):
                            entry["id"] = event["id"]
                        if event.get("name") and not entry.get("name"):
                            entry["name"] = event["name"]
                        entry["arguments"] += event.get("arguments_delta", "")
                    elif etype == "usage":
                        usage_seen = True
                        self.token_tracker.track_call(event.get("usage"), self.model or "default")
                    elif etype == "error":
                        raise RuntimeError(event.get("error", "model stream error"))

                if not usage_seen:
                    self.token_tracker.track_full_usage(
                        messages, accumulated_text, self.model or "default"
                    )

                named_calls = {
                    idx: tc for idx, tc in tool_calls.items() if (tc.get("name") or "").strip()
                }
                if len(named_calls) < len(tool_calls):
                    logger.warning("Skipping unnamed tool calls; cannot send empty function name.")

                if not named_calls:
                    final_text = accumulated_text
                    break

                if max_iterations and iterations >= max_iterations:
                    logger.warning(
                        f"Agent '{self.name}' reached max iterations ({max_iterations})"
                    )
                    notice = max_iterations_notice(max_iterations)
                    final_text = accumulated_text + notice
                    yield notice
                    break
                iterations += 1

                call_ids = {idx: tc.get("id") or f"call_{idx}" for idx, tc in named_calls.items()}
                messages.append(
                    {
                        "role": "assistant",
                        "content": None,
                        "tool_calls": [
                            {
                                "id": call_ids[idx],
                                "type": "function",
                                "function": {
                                    "name": tc["name"].strip(),
                                    "arguments": tc.get("arguments") or "{}",
                                },
                            }
                            for idx, tc in named_calls.items()
                        ],
                    }
                )

                for idx, tc in named_calls.items():
                    try:
                        args = json.loads(tc.get("arguments") or "{}")
                    except json.JSONDecodeError:
                        args = {}
                    tool_result = await self.execute_tool(tc["name"].strip(), args)
                    messages.append(
                        {
                            "role": "tool",
                            "tool_call_id": call_ids[idx],
                            "content": json.dumps(tool_result, default=str),
                        }
                    )
        except Exception as e:
            logger.exception(f"Error processing request for agent '{self.name}': {e}")
            final_text = ERROR_REPLY
            yield ERROR_REPLY
            return

        self._remember(user_id, message, final_text)
        self._persist(message, final_text)

    async def run_autonomous(self, max_cycles: Optional[int] = None) -> List[str]:
        """Prompt the agent toward its objectives until stopped.

        Args:
            max_cycles: Number of cycles to run; unlimited when None

        Returns:
            The reply of each completed cycle
        """
        if self.agent_config.mode == AgentMode.INTERACTIVE:
            raise ValueError(
                f"Agent '{self.name}' runs in interactive mode and cannot run autonomously"
            )

        self._stop_event = asyncio.Event()
        self.running = True
        responses: List[str] = []
        logger.info(f"Starting autonomous loop for agent '{self.name}'")

        try:
            cycles = 0
            while not self._stop_event.is_set():
                if max_cycles is not None and cycles >= max_cycles:
                    break
                reply = ""
                async for chunk in self.process(AUTONOMOUS_USER, AUTONOMOUS_PROMPT):
                    reply += chunk
                responses.append(reply)
                cycles += 1
                logger.info(f"Agent '{self.name}' completed autonomous cycle {cycles}")

                if max_cycles is not None and cycles >= max_cycles:
                    break
                try:
                    await asyncio.wait_for(
                        self._stop_event.wait(), timeout=self.agent_config.interval
                    )
                except asyncio.TimeoutError:
                    pass
        finally:
            self.running = False
            logger.info(f"Autonomous loop stopped for agent '{self.name}'")

        return responses

    def stop(self) -> None:
        if self._stop_event is not None:
            self._stop_event.set()
        self.running = False
