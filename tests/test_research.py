# Tests for fact-checking: claim extraction, Tavily search, verification

import json
from unittest.mock import AsyncMock, MagicMock, patch

import anthropic
import httpx
import pytest

from batch_article_agent.research import (
    SearchResult,
    TavilyClient,
    extract_claims,
    extract_claims_simple,
    fact_check_article,
    verify_claim,
)
from batch_article_agent.state import FactCheckSource


def _llm(*texts):
    """Fake ArticleServices.llm returning the given texts in order."""
    return AsyncMock(side_effect=[{"text": t, "cost_usd": 0.0} for t in texts])


def _api_error():
    return anthropic.APIConnectionError(
        request=httpx.Request("POST", "https://api.anthropic.com/v1/messages")
    )


ARTICLE = (
    "Python was first released in 1991 by Guido van Rossum. "
    "It is popular. "
    "More than 8 million developers use it every single day worldwide."
)


class TestExtractClaims:
    def test_simple_extraction_needs_digits_and_length(self):
        claims = extract_claims_simple(ARTICLE)
        assert claims == [
            "Python was first released in 1991 by Guido van Rossum",
            "More than 8 million developers use it every single day worldwide",
        ]

    def test_simple_extraction_limit(self):
        text = ". ".join(f"Sentence number {i} has enough characters" for i in range(10))
        assert len(extract_claims_simple(text)) == 3

    @pytest.mark.asyncio
    async def test_llm_claims(self):
        llm = _llm(json.dumps({"claims": ["claim one", " ", "claim two", "claim three"]}))
        claims = await extract_claims(llm, ARTICLE, "python", max_claims=2)
        assert claims == ["claim one", "claim two"]

    @pytest.mark.asyncio
    async def test_falls_back_to_regex_on_bad_response(self):
        llm = _llm("I could not find any claims.")
        claims = await extract_claims(llm, ARTICLE, "python")
        assert claims[0].startswith("Python was first released in 1991")

    @pytest.mark.asyncio
    async def test_falls_back_to_regex_when_claims_is_not_a_list(self):
        claims = await extract_claims(_llm(json.dumps({"claims": 5})), ARTICLE, "python")
        assert claims[0].startswith("Python was first released in 1991")

    @pytest.mark.asyncio
    async def test_falls_back_to_regex_on_api_error(self):
        llm = AsyncMock(side_effect=_api_error())
        claims = await extract_claims(llm, ARTICLE, "python")
        assert claims[0].startswith("Python was first released in 1991")


class TestVerifyClaim:
    @pytest.mark.asyncio
    async def test_verdict_parsed(self):
        search = SearchResult(query="q", sources=[FactCheckSource(title="Docs", url="https://x")])
        llm = _llm(
            json.dumps(
                {
                    "verdict": "incorrect",
                    "confidence": "high",
                    "explanation": "Released in 1991, not 1989.",
                    "suggested_correction": "1991",
                }
            )
        )
        result = await verify_claim(llm, "Python was released in 1989", search)
        assert result.verdict == "incorrect"
        assert result.confidence == "high"
        assert result.suggested_correction == "1991"
        assert result.sources[0].url == "https://x"

    @pytest.mark.asyncio
    async def test_unknown_verdict_becomes_unverified(self):
        llm = _llm(json.dumps({"verdict": "probably", "confidence": "very"}))
        result = await verify_claim(llm, "c", SearchResult(query="c"))
        assert result.verdict == "unverified"
        assert result.confidence == "low"

    @pytest.mark.asyncio
    async def test_bad_response_becomes_unverified(self):
        result = await verify_claim(_llm("garbage"), "c", SearchResult(query="c"))
        assert result.verdict == "unverified"
        assert "manually" in result.explanation

    @pytest.mark.asyncio
    async def test_api_error_becomes_unverified(self):
        llm = AsyncMock(side_effect=_api_error())
        result = await verify_claim(llm, "c", SearchResult(query="c"))
        assert result.verdict == "unverified"
        assert "manually" in result.explanation


class TestFactCheckArticle:
    @pytest.mark.asyncio
    async def test_without_search_client_all_claims_unverified(self):
        llm = _llm(json.dumps({"claims": ["a", "b"]}))
        summary = await fact_check_article(llm, ARTICLE, "python", tavily=None)
        assert summary.total_claims == 2
        assert summary.unverified_claims == 2
        assert summary.needs_review
        assert llm.await_count == 1

    @pytest.mark.asyncio
    async def test_search_and_verify_each_claim(self):
        llm = _llm(
            json.dumps({"claims": ["a", "b"]}),
            json.dumps({"verdict": "correct", "confidence": "high"}),
            json.dumps({"verdict": "correct", "confidence": "high"}),
        )
        tavily = MagicMock()
        tavily.search = AsyncMock(return_value=SearchResult(query="q"))

        summary = await fact_check_article(llm, ARTICLE, "python", tavily=tavily)

        assert summary.verified_claims == 2
        assert summary.overall_score == 100
        assert tavily.search.await_count == 2

    @pytest.mark.asyncio
    async def test_search_failure_marks_claim_unverified(self):
        llm = _llm(json.dumps({"claims": ["a"]}))
        tavily = MagicMock()
        tavily.search = AsyncMock(side_effect=httpx.ConnectError("down"))

        summary = await fact_check_article(llm, ARTICLE, "python", tavily=tavily)

        assert summary.results[0].verdict == "unverified"
        assert summary.results[0].explanation == "Web search failed."

    @pytest.mark.asyncio
    async def test_unreadable_search_response_marks_claim_unverified(self):
        llm = _llm(json.dumps({"claims": ["a"]}))
        tavily = MagicMock()
        tavily.search = AsyncMock(side_effect=ValueError("Expecting value: line 1 column 1"))

        summary = await fact_check_article(llm, ARTICLE, "python", tavily=tavily)

        assert summary.total_claims == 1
        assert summary.results[0].verdict == "unverified"
        assert summary.results[0].explanation == "Web search failed."


class TestTavilyClient:
    @pytest.mark.asyncio
    async def test_search_parses_results(self):
        payload = {
            "answer": "1991",
            "results": [
                {"title": "History", "url": "https://python.org", "content": "x" * 300, "score": 0.9}
            ],
        }
        response = httpx.Response(
            200, json=payload, request=httpx.Request("POST", "https://api.tavily.com/search")
        )
        with patch("httpx.AsyncClient.post", new=AsyncMock(return_value=response)) as post:
            result = await TavilyClient("tvly-key").search("python release year")

        assert result.answer == "1991"
        assert result.sources[0].title == "History"
        assert len(result.sources[0].snippet) == 200
        assert post.call_args.kwargs["json"]["query"] == "python release year"
        assert post.call_args.kwargs["json"]["api_key"] == "tvly-key"

    @pytest.mark.asyncio
    async def test_http_error_is_raised(self):
        response = httpx.Response(
            401, text="bad key", request=httpx.Request("POST", "https://api.tavily.com/search")
        )
        with patch("httpx.AsyncClient.post", new=AsyncMock(return_value=response)):
            with pytest.raises(httpx.HTTPStatusError):
                await TavilyClient("bad").search("q")

    @pytest.mark.asyncio
    async def test_non_json_body_raises_value_error(self):
        response = httpx.Response(
            200,
            text="<html>maintenance</html>",
            request=httpx.Request("POST", "https://api.tavily.com/search"),
        )
        with patch("httpx.AsyncClient.post", new=AsyncMock(return_value=response)):
            with pytest.raises(ValueError):
                await TavilyClient("tvly-key").search("q")

    @pytest.mark.asyncio
    async def test_non_object_body_raises_value_error(self):
        response = httpx.Response(
            200, json=["unexpected"], request=httpx.Request("POST", "https://api.tavily.com/search")
        )
        with patch("httpx.AsyncClient.post", new=AsyncMock(return_value=response)):
            with pytest.raises(ValueError, match="Unexpected Tavily response"):
                await TavilyClient("tvly-key").search("q")
