from abc import ABC, abstractmethod
from typing import Any, AsyncGenerator, Dict, List, Optional


class LLMProvider(ABC):
    """Chat model and embedding backend used by agents and the vector store."""

    @abstractmethod
    async def chat_stream(
        self,
        messages: List[Dict[str, Any]],
        model: Optional[str] = None,
        tools: Optional[List[Dict[str, Any]]] = None,
    ) -> AsyncGenerator[Dict[str, Any], None]:
        """Stream one model turn over a chat-style message list.

        Event dicts, keyed by ``type``:

        - ``content``: ``delta`` text
        - ``tool_call_delta``: ``id``, ``index``, ``name``, ``arguments_delta``;
          fragments sharing an ``index`` belong to one call
        - ``usage``: ``usage`` token counts
        - ``message_end``: ``finish_reason``
        - ``error``: ``error`` message; nothing follows it
        """
        pass

    @abstractmethod
    async def embed_text(
        self, text: str, model: Optional[str] = None, dimensions: Optional[int] = None
    ) -> List[float]:
        pass

    @abstractmethod
    async def embed_texts(
        self,
        texts: List[str],
        model: Optional[str] = None,
        dimensions: Optional[int] = None,
    ) -> List[List[float]]:
        """One vector per text, in input order."""
        pass
