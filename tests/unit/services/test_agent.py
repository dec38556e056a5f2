"""
Tests for the AgentService implementation.

This module covers credentials, prompts, tool access, the streaming
tool-calling loop, memory, persistence and the autonomous loop.
"""

import json

import pytest
from unittest.mock import MagicMock

from starknet_agent.domains.agent import AgentConfig
from starknet_agent.domains.records import ConversationRecord, SenderType
from starknet_agent.plugins.manager import PluginManager
from starknet_agent.plugins.registry import ToolRegistry
from starknet_agent.plugins.tools.starknet_tool import StarknetTool
from starknet_agent.services.agent import (
    AUTONOMOUS_PROMPT,
    ERROR_REPLY,
    AgentService,
    max_iterations_notice,
)


class ScriptedProvider:
    """LLM provider replaying one list of stream events per call."""

    def __init__(self, *rounds):
        self.rounds = list(rounds)
        self.calls = []

    async def chat_stream(self, messages, model=None, tools=None):
        self.calls.append({"messages": [dict(m) for m in messages], "model": model, "tools": tools})
        events = self.rounds.pop(0) if self.rounds else [{"type": "content", "delta": "done"}]
        for event in events:
            yield event


def text(*deltas):
    return [{"type": "content", "delta": d} for d in deltas]


def tool_call(name, arguments, call_id="call-1", index=0):
    return [
        {"type": "tool_call_delta", "index": index, "id": call_id, "name": name, "arguments_delta": ""},
        {"type": "tool_call_delta", "index": index, "arguments_delta": arguments},
    ]


async def balance_action(agent, params):
    return {
        "status": "success",
        "address": agent.get_account_credentials()["account_public_key"],
        "token": params.get("token"),
    }


def make_config(**overrides):
    data = {
        "name": "Artemis",
        "bio": "A Starknet assistant",
        "lore": ["Born on layer two"],
        "objectives": ["Help users"],
        "knowledge": ["Cairo"],
        "interval": 1,
        "chatId": "artemis-chat",
        "plugins": ["token"],
        "mode": "hybrid",
    }
    data.update(overrides)
    return AgentConfig.model_validate(data)


def make_agent(provider, config=None, assign=True, **kwargs):
    registry = ToolRegistry()
    registry.register_tool(StarknetTool("get_balance", "token", "Read a balance", balance_action))
    config = config or make_config()
    if assign:
        registry.assign_plugin_tools(config.name, config.plugins)
    return AgentService(
        agent_config=config,
        llm_provider=provider,
        tool_registry=registry,
        account_credentials={"account_address": "0xabc", "private_key": "0x1"},
        rpc_url="http://localhost:5050",
        model_credentials={"api_key": "sk-test"},
        model="gpt-test",
        **kwargs,
    )


async def collect(agent, user_id="user-1", message="hello", prompt=None):
    return "".join([chunk async for chunk in agent.process(user_id, message, prompt)])


class TestAgentAccessors:
    def test_credentials_and_provider(self):
        agent = make_agent(ScriptedProvider())
        assert agent.get_account_credentials() == {
            "account_public_key": "0xabc",
            "account_private_key": "0x1",
        }
        assert agent.get_model_credentials() == {"api_key": "sk-test"}
        assert agent.get_provider() == "http://localhost:5050"
        assert agent.get_agent_id() == "Artemis"
        assert agent.get_agent_config().chat_id == "artemis-chat"

    def test_explicit_agent_id(self):
        agent = make_agent(ScriptedProvider(), agent_id="agent-42")
        assert agent.get_agent_id() == "agent-42"
        assert agent.name == "Artemis"

    def test_system_prompt(self):
        prompt = make_agent(ScriptedProvider()).get_system_prompt()
        assert "Your name : [Artemis]" in prompt
        assert "Your lore : [Born on layer two]" in prompt
        assert "The current time is" in prompt

    def test_get_tools(self):
        tools = make_agent(ScriptedProvider()).get_tools()
        assert tools[0]["type"] == "function"
        assert tools[0]["function"]["name"] == "get_balance"


class TestExecuteTool:
    @pytest.mark.asyncio
    async def test_executes_with_agent_credentials(self):
        agent = make_agent(ScriptedProvider())
        result = await agent.execute_tool("get_balance", {"token": "STRK"})
        assert result == {"status": "success", "address": "0xabc", "token": "STRK"}

    @pytest.mark.asyncio
    async def test_unknown_tool(self):
        result = await make_agent(ScriptedProvider()).execute_tool("missing", {})
        assert result["status"] == "error"
        assert "not found" in result["message"]

    @pytest.mark.asyncio
    async def test_unassigned_tool(self):
        agent = make_agent(ScriptedProvider(), assign=False)
        result = await agent.execute_tool("get_balance", {})
        assert "doesn't have access" in result["message"]

    @pytest.mark.asyncio
    async def test_tool_exception(self):
        agent = make_agent(ScriptedProvider())
        broken = MagicMock()
        broken.execute.side_effect = RuntimeError("boom")
        agent.tool_registry.get_tool = MagicMock(return_value=broken)
        result = await agent.execute_tool("get_balance", {})
        assert result == {"status": "error", "message": "Error executing tool: boom"}


class TestProcess:
    @pytest.mark.asyncio
    async def test_streams_text(self):
        provider = ScriptedProvider(text("Hel", "lo"))
        agent = make_agent(provider)

        assert await collect(agent, prompt="Be brief") == "Hello"

        call = provider.calls[0]
        assert call["model"] == "gpt-test"
        assert call["messages"][0]["role"] == "system"
        user = call["messages"][-1]["content"]
        assert user.startswith("ADDITIONAL PROMPT:\nBe brief\n\nhello")
        assert user.endswith("USER IDENTIFIER: user-1")

    @pytest.mark.asyncio
    async def test_tool_round_trip(self):
        provider = ScriptedProvider(
            tool_call("get_balance", '{"token": "ETH"}'),
            text("You hold ETH."),
        )
        agent = make_agent(provider)

        assert await collect(agent) == "You hold ETH."

        second = provider.calls[1]["messages"]
        assistant, tool_message = second[-2], second[-1]
        assert assistant["tool_calls"][0]["id"] == "call-1"
        assert assistant["tool_calls"][0]["function"]["name"] == "get_balance"
        assert tool_message["tool_call_id"] == "call-1"
        assert json.loads(tool_message["content"])["token"] == "ETH"

    @pytest.mark.asyncio
    async def test_invalid_tool_arguments_default_to_empty(self):
        provider = ScriptedProvider(tool_call("get_balance", "{not json"), text("ok"))
        agent = make_agent(provider)
        await collect(agent)
        tool_message = provider.calls[1]["messages"][-1]
        assert json.loads(tool_message["content"])["token"] is None

    @pytest.mark.asyncio
    async def test_unnamed_tool_calls_are_skipped(self):
        provider = ScriptedProvider(
            text("plain") + [{"type": "tool_call_delta", "index": 0, "arguments_delta": "{}"}]
        )
        agent = make_agent(provider)
        assert await collect(agent) == "plain"
        assert len(provider.calls) == 1

    @pytest.mark.asyncio
    async def test_max_iterations(self):
        config = make_config(max_iterations=1)
        provider = ScriptedProvider(
            tool_call("get_balance", "{}"),
            tool_call("get_balance", "{}", call_id="call-2"),
        )
        agent = make_agent(provider, config=config)

        reply = await collect(agent)

        assert reply == max_iterations_notice(1)
        assert len(provider.calls) == 2

    @pytest.mark.asyncio
    async def test_zero_max_iterations_means_no_limit(self):
        config = make_config(maxIteration=0)
        provider = ScriptedProvider(
            *[tool_call("get_balance", "{}", call_id=f"call-{i}") for i in range(12)],
            text("Checked twelve times."),
        )
        agent = make_agent(provider, config=config)

        reply = await collect(agent)

        assert reply == "Checked twelve times."
        assert len(provider.calls) == 13

    @pytest.mark.asyncio
    async def test_stream_error_yields_apology(self):
        provider = ScriptedProvider([{"type": "error", "error": "upstream down"}])
        agent = make_agent(provider)
        assert await collect(agent) == ERROR_REPLY

    @pytest.mark.asyncio
    async def test_usage_event_is_tracked(self):
        provider = ScriptedProvider(
            text("hi")
            + [{"type": "usage", "usage": {"input_tokens": 11, "output_tokens": 2, "total_tokens": 13}}]
        )
        agent = make_agent(provider)
        await collect(agent)
        assert agent.token_tracker.get_session_token_usage()["total_tokens"] == 13

    @pytest.mark.asyncio
    async def test_usage_is_estimated_without_usage_event(self):
        agent = make_agent(ScriptedProvider(text("hello there")))
        await collect(agent)
        usage = agent.token_tracker.get_session_token_usage()
        assert usage["prompt_tokens"] > 0
        assert usage["response_tokens"] == 3


class TestMemory:
    @pytest.mark.asyncio
    async def test_memory_disabled_by_default(self):
        agent = make_agent(ScriptedProvider(text("a"), text("b")))
        await collect(agent, message="first")
        assert agent.get_memory("user-1") == []

    @pytest.mark.asyncio
    async def test_memory_is_replayed_per_user(self):
        config = make_config(memory={"enabled": True, "shortTermMemorySize": 1})
        provider = ScriptedProvider(text("one"), text("two"), text("three"))
        agent = make_agent(provider, config=config)

        await collect(agent, message="first")
        await collect(agent, message="second")
        await collect(agent, user_id="user-2", message="other")

        second_call = provider.calls[1]["messages"]
        assert second_call[1] == {"role": "user", "content": "first"}
        assert second_call[2] == {"role": "assistant", "content": "one"}
        assert agent.get_memory("user-1") == [("second", "two")]
        assert len(provider.calls[2]["messages"]) == 2

        agent.clear_memory("user-1")
        assert agent.get_memory("user-1") == []
        assert agent.get_memory("user-2") == [("other", "three")]
        agent.clear_memory()
        assert agent.get_memory("user-2") == []


class TestPersistence:
    @pytest.mark.asyncio
    async def test_messages_are_persisted(self):
        repository = MagicMock()
        repository.get_conversation.return_value = None
        repository.create_conversation.return_value = ConversationRecord(
            conversation_id="conv-1", agent_id="Artemis", conversation_name="artemis-chat"
        )
        agent = make_agent(ScriptedProvider(text("pong")), repository=repository)

        await collect(agent, message="ping")

        repository.create_conversation.assert_called_once_with("Artemis", "artemis-chat")
        saved = [c.args[0] for c in repository.add_message.call_args_list]
        assert [(m.content, m.sender_type) for m in saved] == [
            ("ping", SenderType.USER),
            ("pong", SenderType.AGENT),
        ]
        assert saved[0].conversation_id == "conv-1"

    @pytest.mark.asyncio
    async def test_persistence_errors_do_not_break_reply(self):
        repository = MagicMock()
        repository.get_conversation.side_effect = RuntimeError("mongo down")
        agent = make_agent(ScriptedProvider(text("still here")), repository=repository)
        assert await collect(agent) == "still here"


class TestAutonomous:
    @pytest.mark.asyncio
    async def test_interactive_agent_rejected(self):
        agent = make_agent(ScriptedProvider(), config=make_config(mode="interactive"))
        with pytest.raises(ValueError, match="interactive mode"):
            await agent.run_autonomous(max_cycles=1)

    @pytest.mark.asyncio
    async def test_runs_requested_cycles(self):
        provider = ScriptedProvider(text("cycle one"), text("cycle two"))
        agent = make_agent(provider, config=make_config(mode="autonomous", interval=1))

        replies = await agent.run_autonomous(max_cycles=1)

        assert replies == ["cycle one"]
        assert agent.running is False
        assert AUTONOMOUS_PROMPT in provider.calls[0]["messages"][-1]["content"]

    @pytest.mark.asyncio
    async def test_stop_ends_the_loop(self):
        agent = make_agent(ScriptedProvider(), config=make_config(mode="autonomous", interval=60))
        original = agent.process

        async def process_then_stop(user_id, message, prompt=None):
            async for chunk in original(user_id, message, prompt):
                yield chunk
            agent.stop()

        agent.process = process_then_stop
        replies = await agent.run_autonomous()
        assert replies == ["done"]


class DiscoveringPlugin:
    """Plugin whose only tool appears once ``discover`` runs."""

    name = "remote"
    description = "Remote tools"

    def __init__(self):
        self.discover_calls = 0

    def initialize(self, tool_registry):
        return True

    def configure(self, config):
        pass

    async def discover(self, tool_registry):
        self.discover_calls += 1

        async def echo(agent, params):
            return {"status": "success", "echo": params.get("text")}

        tool_registry.register_tool(StarknetTool("echo", "remote", "Echo text", echo))
        return ["echo"]


@pytest.mark.asyncio
async def test_discovered_tools_are_granted_on_first_request():
    registry = ToolRegistry()
    manager = PluginManager(tool_registry=registry)
    plugin = DiscoveringPlugin()
    manager.register_plugin(plugin)
    provider = ScriptedProvider(
        tool_call("echo", '{"text": "gm"}'),
        text("Echoed."),
        text("Again."),
    )
    agent = AgentService(
        agent_config=make_config(),
        llm_provider=provider,
        tool_registry=registry,
        plugin_manager=manager,
    )
    assert agent.get_tools() == []

    assert await collect(agent) == "Echoed."
    assert await collect(agent) == "Again."

    assert plugin.discover_calls == 1
    assert [t["function"]["name"] for t in provider.calls[0]["tools"]] == ["echo"]
    tool_message = provider.calls[1]["messages"][-1]
    assert json.loads(tool_message["content"])["echo"] == "gm"
