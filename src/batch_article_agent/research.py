"""Fact-checking: claim extraction, web search (Tavily) and verification.

Fact-checking never fails an article on its own: search or verification
problems downgrade the affected claim to ``unverified`` and are logged.
"""

import logging
import re
from dataclasses import dataclass, field
from typing import Awaitable, Callable

import anthropic
import httpx

from batch_article_agent.client import parse_json_response
from batch_article_agent.prompts import claims_prompt, verify_prompt
from batch_article_agent.state import FactCheckResult, FactCheckSource, FactCheckSummary

logger = logging.getLogger(__name__)

TAVILY_API_URL = "https://api.tavily.com/search"

# (system_prompt, user_message, trace_name) -> call_claude-style result dict
LLMCall = Callable[..., Awaitable[dict]]

_VALID_VERDICTS = {"correct", "incorrect", "partially-correct", "unverified"}
_VALID_CONFIDENCE = {"high", "medium", "low"}

# Reply shapes and API failures that downgrade a step to its fallback
_LLM_ERRORS = (anthropic.APIError, ValueError, TypeError, AttributeError, KeyError)


@dataclass
class SearchResult:
    query: str
    sources: list[FactCheckSource] = field(default_factory=list)
    answer: str = ""


class TavilyClient:
    """Minimal async wrapper around the Tavily search endpoint."""

    def __init__(self, api_key: str, timeout: float = 30.0, max_results: int = 5) -> None:
        self.api_key = api_key
        self.timeout = timeout
        self.max_results = max_results

    async def search(self, query: str) -> SearchResult:
        payload = {
            "api_key": self.api_key,
            "query": query,
            "search_depth": "advanced",
            "include_answer": True,
            "include_raw_content": False,
            "max_results": self.max_results,
        }
        logger.debug("Tavily search: %s", query)
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            resp = await client.post(TAVILY_API_URL, json=payload)
            if not resp.is_success:
                logger.error("Tavily API error %s: %s", resp.status_code, resp.text[:200])
            resp.raise_for_status()
            data = resp.json()

        if not isinstance(data, dict):
            raise ValueError(f"Unexpected Tavily response: {type(data).__name__}")
        sources = [
            FactCheckSource(
                title=r.get("title", ""),
                url=r.get("url", ""),
                snippet=(r.get("content") or "")[:200],
                score=r.get("score"),
            )
            for r in data.get("results") or []
            if isinstance(r, dict)
        ]
        return SearchResult(query=query, sources=sources, answer=data.get("answer") or "")


def extract_claims_simple(content: str, limit: int = 3) -> list[str]:
    """Fallback: sentences that contain a number and are of a sane length."""
    claims: list[str] = []
    for sentence in re.split(r"[。.！!？?]", content):
        sentence = sentence.strip()
        if re.search(r"\d", sentence) and 20 < len(sentence) < 200:
            claims.append(sentence)
            if len(claims) >= limit:
                break
    return claims


async def extract_claims(llm: LLMCall, article: str, keyword: str, max_claims: int = 5) -> list[str]:
    """Ask the model for checkable claims, falling back to a regex scan."""
    system_prompt, user_message = claims_prompt(article, keyword)
    try:
        result = await llm(system_prompt, user_message, trace_name="extract_claims")
        claims = parse_json_response(result["text"]).get("claims", [])
        if not isinstance(claims, list):
            raise ValueError(f"claims is {type(claims).__name__}, not a list")
    except _LLM_ERRORS as exc:
        logger.warning("Claim extraction failed for %r, using fallback: %s", keyword, exc)
        claims = extract_claims_simple(article)
    return [str(c).strip() for c in claims if str(c).strip()][:max_claims]


def _format_evidence(search: SearchResult) -> str:
    lines = [f"{i}. {s.title}\n   URL: {s.url}\n   {s.snippet}" for i, s in enumerate(search.sources, 1)]
    if search.answer:
        lines.append(f"\nSearch summary: {search.answer}")
    return "\n".join(lines) or "(no results)"


async def verify_claim(llm: LLMCall, claim: str, search: SearchResult) -> FactCheckResult:
    system_prompt, user_message = verify_prompt(claim, _format_evidence(search))
    try:
        result = await llm(system_prompt, user_message, trace_name="verify_claim")
        parsed = parse_json_response(result["text"])
        verdict = parsed.get("verdict", "unverified")
        confidence = parsed.get("confidence", "low")
        return FactCheckResult(
            claim=claim,
            verdict=verdict if verdict in _VALID_VERDICTS else "unverified",
            confidence=confidence if confidence in _VALID_CONFIDENCE else "low",
            explanation=parsed.get("explanation", ""),
            suggested_correction=parsed.get("suggested_correction") or None,
            sources=search.sources,
        )
    except _LLM_ERRORS as exc:
        logger.warning("Claim verification failed: %s", exc)
        return FactCheckResult(
            claim=claim,
            verdict="unverified",
            explanation="Automatic verification failed; check manually.",
            sources=search.sources,
        )


async def fact_check_article(
    llm: LLMCall,
    article: str,
    keyword: str,
    tavily: TavilyClient | None,
    max_claims: int = 5,
) -> FactCheckSummary:
    """Extract claims, search each one and verify it against the results."""
    claims = await extract_claims(llm, article, keyword, max_claims=max_claims)
    results: list[FactCheckResult] = []

    for claim in claims:
        if tavily is None:
            results.append(
                FactCheckResult(
                    claim=claim,
                    verdict="unverified",
                    explanation="Web search is not configured (TAVILY_API_KEY).",
                )
            )
            continue
        try:
            search = await tavily.search(claim)
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning("Search failed for claim %r: %s", claim, exc)
            results.append(
                FactCheckResult(claim=claim, verdict="unverified", explanation="Web search failed.")
            )
            continue
        results.append(await verify_claim(llm, claim, search))

    summary = FactCheckSummary(results=results)
    logger.info(
        "Fact-check for %r: %d claims, %d verified, %d incorrect",
        keyword,
        summary.total_claims,
        summary.verified_claims,
        summary.incorrect_claims,
    )
    return summary
