# Claude client for article generation
# Every call is traced in LangSmith with token usage and cost attached to the run

import json
import logging
import re
from typing import Any, Optional

from anthropic import AsyncAnthropic
from langsmith import traceable
from langsmith.run_helpers import get_current_run_tree

from batch_article_agent.errors import ConfigurationError

logger = logging.getLogger(__name__)

# ===== Pricing (USD per 1M tokens) =====
COST_PER_1M = {
    "claude-sonnet-4-20250514": {"input": 3.0, "output": 15.0, "cache_read": 0.3},
    "claude-3-5-haiku-20241022": {"input": 0.8, "output": 4.0, "cache_read": 0.08},
}
_FALLBACK_PRICING = {"input": 1.0, "output": 1.0, "cache_read": 0.1}

_FENCED_BLOCK = re.compile(r"```(?:json)?\s*(.*?)```", re.DOTALL)


def calculate_cost(model: str, input_tokens: int, output_tokens: int, cache_read: int = 0) -> float:
    """USD cost of one call; unknown models use a flat fallback price."""
    price = COST_PER_1M.get(model, _FALLBACK_PRICING)
    return (
        input_tokens * price["input"]
        + output_tokens * price["output"]
        + cache_read * price["cache_read"]
    ) / 1_000_000


def get_claude_client(api_key: Optional[str]) -> AsyncAnthropic:
    """Build an async client; the SDK retries 429/529 responses itself."""
    if not api_key:
        raise ConfigurationError("ANTHROPIC_API_KEY not set")
    return AsyncAnthropic(api_key=api_key, max_retries=3)


def _annotate_trace(name: Optional[str] = None, cost: Optional[float] = None) -> None:
    run = get_current_run_tree()
    if run is None:
        return
    if name:
        run.name = name
    if cost is not None:
        run.extra["total_cost"] = cost


@traceable(run_type="llm", name="Claude API")
async def call_claude(
    system_prompt: str,
    user_message: str,
    client: Optional[AsyncAnthropic] = None,
    api_key: Optional[str] = None,
    model: str = "claude-sonnet-4-20250514",
    max_tokens: int = 4096,
    trace_name: str | None = None,
) -> dict:
    """Send one system + user message pair to Claude.

    Args:
        system_prompt: System prompt text
        user_message: User message text
        client: Shared client; one is created from ``api_key`` when omitted
        trace_name: Name shown for this call in LangSmith

    Returns:
        dict with text, usage_metadata, model, cost_usd
    """
    _annotate_trace(name=trace_name)
    client = client or get_claude_client(api_key)

    response = await client.messages.create(
        model=model,
        max_tokens=max_tokens,
        system=system_prompt,
        messages=[{"role": "user", "content": user_message}],
    )

    text = "".join(block.text for block in response.content if hasattr(block, "text"))
    if getattr(response, "stop_reason", None) == "max_tokens":
        logger.warning("Claude response truncated (max_tokens=%d)", max_tokens)

    usage = response.usage
    cache_read = getattr(usage, "cache_read_input_tokens", 0) or 0
    cost = calculate_cost(model, usage.input_tokens, usage.output_tokens, cache_read)
    logger.debug(
        "Claude %s: in=%d out=%d cache_read=%d cost=$%.4f",
        model,
        usage.input_tokens,
        usage.output_tokens,
        cache_read,
        cost,
    )
    _annotate_trace(cost=cost)

    return {
        "text": text,
        "usage_metadata": {
            "input_tokens": usage.input_tokens,
            "output_tokens": usage.output_tokens,
            "total_tokens": usage.input_tokens + usage.output_tokens,
            "cache_read_tokens": cache_read,
            "total_cost": cost,
        },
        "model": model,
        "cost_usd": cost,
    }


# ===== Response parsing =====


def extract_json_from_response(response: str) -> str:
    """Pull the JSON payload out of a model reply.

    Tries, in order: the whole reply, a fenced code block, then the widest
    ``{...}`` or ``[...]`` span.  Returns the stripped reply when nothing
    matches so the caller's parse error shows what came back.
    """
    text = response.strip()
    if text and text[0] in "{[" and text[-1] in "}]":
        return text

    fenced = _FENCED_BLOCK.search(text)
    if fenced:
        return fenced.group(1).strip()

    for opener, closer in ("{}", "[]"):
        start, end = text.find(opener), text.rfind(closer)
        if start != -1 and end > start:
            return text[start : end + 1]

    return text


def parse_json_response(response: str) -> Any:
    """Parse the JSON payload of a model response.

    Raises:
        ValueError: if no valid JSON can be found.
    """
    try:
        return json.loads(extract_json_from_response(response))
    except json.JSONDecodeError as exc:
        raise ValueError(f"Model response is not valid JSON: {exc}") from exc
