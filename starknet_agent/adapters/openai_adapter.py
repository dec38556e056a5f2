"""
OpenAI adapter for the Starknet Agent system.

Chat goes through the Responses API in streaming mode and is flattened into
the small event vocabulary the agent loop consumes. Embeddings are batched.
"""

import logging
from typing import Any, AsyncGenerator, Dict, Iterator, List, Optional, Tuple

import logfire
from openai import AsyncOpenAI

from starknet_agent.interfaces.providers.llm import LLMProvider

logger = logging.getLogger(__name__)

DEFAULT_CHAT_MODEL = "gpt-5.2"
DEFAULT_EMBEDDING_MODEL = "text-embedding-3-large"
DEFAULT_EMBEDDING_DIMENSIONS = 3072
# Per-request input cap of the embeddings endpoint
EMBEDDING_BATCH_SIZE = 2048


def _to_responses_tools(tools: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Flatten chat-style ``{"type": "function", "function": {...}}`` tools."""
    converted = []
    for tool in tools:
        if tool.get("type") != "function":
            converted.append(tool)
            continue
        spec = tool.get("function", {})
        converted.append(
            {
                "type": "function",
                "name": spec.get("name"),
                "description": spec.get("description", ""),
                "parameters": spec.get("parameters", {}),
            }
        )
    return converted


def _to_responses_input(
    messages: List[Dict[str, Any]],
) -> Tuple[Optional[str], List[Dict[str, Any]]]:
    """Split a conversation into system instructions and Responses input items."""
    instructions = None
    items: List[Dict[str, Any]] = []
    for message in messages:
        role = message.get("role")
        content = message.get("content")
        if role == "system":
            instructions = content
        elif role == "user":
            items.append({"role": "user", "content": content or ""})
        elif role == "assistant" and message.get("tool_calls"):
            for call in message["tool_calls"]:
                fn = call.get("function", {})
                items.append(
                    {
                        "type": "function_call",
                        "call_id": call.get("id", ""),
                        "name": fn.get("name", ""),
                        "arguments": fn.get("arguments", "{}"),
                    }
                )
        elif role == "assistant" and content:
            items.append({"role": "assistant", "content": content})
        elif role == "tool":
            items.append(
                {
                    "type": "function_call_output",
                    "call_id": message.get("tool_call_id", ""),
                    "output": content or "",
                }
            )
    return instructions, items


def _usage_dict(usage: Any) -> Dict[str, int]:
    return {
        key: getattr(usage, key, 0) or 0
        for key in ("input_tokens", "output_tokens", "total_tokens")
    }


def _translate_event(event: Any) -> Iterator[Dict[str, Any]]:
    kind = getattr(event, "type", None)

    if kind == "response.output_text.delta":
        if event.delta:
            yield {"type": "content", "delta": event.delta}
    elif kind == "response.output_item.added":
        item = getattr(event, "item", None)
        if getattr(item, "type", None) == "function_call":
            # Announces the call id and name; arguments follow as deltas
            yield {
                "type": "tool_call_delta",
                "id": item.call_id,
                "index": getattr(event, "output_index", 0),
                "name": item.name,
                "arguments_delta": "",
            }
    elif kind == "response.function_call_arguments.delta":
        yield {
            "type": "tool_call_delta",
            "id": getattr(event, "call_id", None),
            "index": getattr(event, "output_index", 0),
            "name": getattr(event, "name", None),
            "arguments_delta": event.delta or "",
        }
    elif kind == "response.completed":
        usage = getattr(getattr(event, "response", None), "usage", None)
        if usage:
            yield {"type": "usage", "usage": _usage_dict(usage)}
        yield {"type": "message_end", "finish_reason": "stop"}


class OpenAIAdapter(LLMProvider):
    def __init__(
        self,
        api_key: str,
        model: Optional[str] = None,
        embedding_model: Optional[str] = None,
        embedding_dimensions: Optional[int] = None,
        logfire_api_key: Optional[str] = None,
    ):
        if not api_key:
            raise ValueError("OpenAI API key is required.")
        self.client = AsyncOpenAI(api_key=api_key)
        self.text_model = model or DEFAULT_CHAT_MODEL
        self.embedding_model = embedding_model or DEFAULT_EMBEDDING_MODEL
        self.embedding_dimensions = embedding_dimensions or DEFAULT_EMBEDDING_DIMENSIONS

        self.logfire = False
        if logfire_api_key:
            try:
                logfire.configure(token=logfire_api_key)
                logfire.instrument_openai(self.client)
                self.logfire = True
                logger.info("Logfire tracing enabled for OpenAI calls")
            except Exception as e:
                logger.error(f"Failed to configure Logfire: {e}")

    async def chat_stream(
        self,
        messages: List[Dict[str, Any]],
        model: Optional[str] = None,
        tools: Optional[List[Dict[str, Any]]] = None,
    ) -> AsyncGenerator[Dict[str, Any], None]:
        instructions, items = _to_responses_input(messages)
        request: Dict[str, Any] = {
            "model": model or self.text_model,
            "input": items,
            "stream": True,
            "reasoning": {"effort": "low"},
        }
        if instructions:
            request["instructions"] = instructions
        if tools:
            request["tools"] = _to_responses_tools(tools)

        try:
            stream = await self.client.responses.create(**request)
            async for event in stream:
                try:
                    translated = list(_translate_event(event))
                except AttributeError as e:
                    logger.debug(f"Skipping malformed stream event: {e}")
                    continue
                for out in translated:
                    yield out
        except Exception as e:
            logger.exception(f"Chat stream failed: {e}")
            yield {"type": "error", "error": str(e)}
            return

        yield {"type": "message_end", "finish_reason": "end_of_stream"}

    async def embed_text(
        self, text: str, model: Optional[str] = None, dimensions: Optional[int] = None
    ) -> List[float]:
        if not text:
            logger.error("Attempted to embed empty text.")
            raise ValueError("Text cannot be empty")
        vectors = await self.embed_texts([text], model=model, dimensions=dimensions)
        return vectors[0]

    async def embed_texts(
        self,
        texts: List[str],
        model: Optional[str] = None,
        dimensions: Optional[int] = None,
    ) -> List[List[float]]:
        """Embed ``texts`` in batches, keeping input order.

        Newlines are replaced by spaces and empty strings by a single space,
        since the endpoint rejects empty input.
        """
        if not texts:
            return []

        vectors: List[List[float]] = []
        for start in range(0, len(texts), EMBEDDING_BATCH_SIZE):
            batch = [
                t.replace("\n", " ") or " "
                for t in texts[start : start + EMBEDDING_BATCH_SIZE]
            ]
            try:
                response = await self.client.embeddings.create(
                    input=batch,
                    model=model or self.embedding_model,
                    dimensions=dimensions or self.embedding_dimensions,
                )
            except Exception as e:
                logger.exception(f"Error generating embeddings: {e}")
                raise
            vectors.extend(d.embedding for d in sorted(response.data, key=lambda d: d.index))

        if len(vectors) != len(texts):
            raise ValueError(
                f"Expected {len(texts)} embeddings from OpenAI, received {len(vectors)}"
            )
        return vectors
