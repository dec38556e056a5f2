"""
Token usage accounting for model calls.

Counters accumulate for the lifetime of a tracker. Usage is read from the
payload a provider returns; when none is present the response text is used
to estimate a count.
"""
import json
import logging
import math
import re
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)

TOKENS_PER_WORD = 1.3
TOKENS_PER_SPECIAL_CHAR = 0.5

_SPECIAL_CHARS = re.compile(r"[^a-zA-Z0-9\s]")


def estimate_tokens_from_text(text: str) -> int:
    """Rough token count: 1.3 per word plus 0.5 per special character."""
    if not text:
        return 0
    word_count = len(text.split())
    special_chars = len(_SPECIAL_CHARS.findall(text))
    return math.ceil(
        word_count * TOKENS_PER_WORD + special_chars * TOKENS_PER_SPECIAL_CHAR
    )


def _read(source: Any, key: str) -> Any:
    if isinstance(source, dict):
        return source.get(key)
    return getattr(source, key, None)


def _usage_from(result: Any) -> Optional[Dict[str, int]]:
    """Extract prompt/response/total counts from a known usage layout."""
    usage = None
    for key in ("usage_metadata", "usage"):
        usage = _read(result, key)
        if usage is not None:
            break
    if usage is None:
        metadata = _read(result, "response_metadata")
        if metadata is not None:
            usage = _read(metadata, "token_usage") or _read(metadata, "usage")
    if usage is None:
        usage = result

    # Responses API / Anthropic layout
    prompt = _read(usage, "input_tokens")
    response = _read(usage, "output_tokens")
    if prompt is None and response is None:
        # Chat Completions layout
        prompt = _read(usage, "prompt_tokens")
        response = _read(usage, "completion_tokens")
    if prompt is None and response is None:
        return None

    prompt = int(prompt or 0)
    response = int(response or 0)
    total = int(_read(usage, "total_tokens") or 0) or prompt + response
    return {"prompt_tokens": prompt, "response_tokens": response, "total_tokens": total}


def _text_from(result: Any) -> str:
    if isinstance(result, str):
        return result
    if isinstance(result, list):
        return " ".join(_text_from(item) for item in result if item is not None)
    content = _read(result, "content")
    if content is None:
        content = _read(result, "output_text")
    if content is not None:
        return content if isinstance(content, str) else json.dumps(content, default=str)
    try:
        return json.dumps(result, default=str)
    except (TypeError, ValueError):
        return str(result)


class TokenTracker:
    """Accumulates token usage across model calls."""

    def __init__(self):
        self.reset_session_counters()

    def reset_session_counters(self) -> None:
        self.session_prompt_tokens = 0
        self.session_response_tokens = 0
        self.session_total_tokens = 0

    def get_session_token_usage(self) -> Dict[str, int]:
        return {
            "prompt_tokens": self.session_prompt_tokens,
            "response_tokens": self.session_response_tokens,
            "total_tokens": self.session_total_tokens,
        }

    def _add(self, usage: Dict[str, int]) -> Dict[str, int]:
        self.session_prompt_tokens += usage["prompt_tokens"]
        self.session_response_tokens += usage["response_tokens"]
        self.session_total_tokens += usage["total_tokens"]
        return usage

    def track_call(self, result: Any, model_name: str = "unknown_model") -> Dict[str, int]:
        """Record the usage of one model call and return it."""
        if result is None:
            logger.warning(
                f"track_call received no result for model [{model_name}]. Returning zero tokens."
            )
            return {"prompt_tokens": 0, "response_tokens": 0, "total_tokens": 0}

        usage = _usage_from(result) if not isinstance(result, (str, list)) else None
        if usage is not None:
            logger.debug(f"Token usage for model [{model_name}]: {usage}")
            return self._add(usage)

        logger.warning(
            f"No token usage information available for model [{model_name}], using fallback estimation."
        )
        response_tokens = estimate_tokens_from_text(_text_from(result))
        return self._add(
            {
                "prompt_tokens": 0,
                "response_tokens": response_tokens,
                "total_tokens": response_tokens,
            }
        )

    def track_full_usage(
        self, prompt: Any, result: Any, model_name: str = "unknown_model"
    ) -> Dict[str, int]:
        """Record a call whose prompt is known, estimating what the result lacks."""
        usage = _usage_from(result) if result is not None and not isinstance(result, (str, list)) else None
        if usage is not None and usage["prompt_tokens"]:
            return self._add(usage)

        prompt_text = prompt if isinstance(prompt, str) else json.dumps(prompt, default=str)
        prompt_tokens = estimate_tokens_from_text(prompt_text)
        if usage is not None:
            response_tokens = usage["response_tokens"]
        else:
            response_tokens = estimate_tokens_from_text(_text_from(result)) if result is not None else 0

        logger.debug(
            f"Estimated token usage for model [{model_name}]: prompt ~{prompt_tokens}, response {response_tokens}"
        )
        return self._add(
            {
                "prompt_tokens": prompt_tokens,
                "response_tokens": response_tokens,
                "total_tokens": prompt_tokens + response_tokens,
            }
        )
