# Phase nodes for the article workflow
# Each node reports its phase first, then performs one step of the pipeline

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Optional, TypedDict

from anthropic import AsyncAnthropic
from langchain_core.runnables import RunnableConfig

from batch_article_agent.client import call_claude, parse_json_response
from batch_article_agent.config import ProducerConfig
from batch_article_agent.image_generator import generate_image_async
from batch_article_agent.prompts import (
    analysis_prompt,
    image_prompt_prompt,
    outline_prompt,
    writing_prompt,
)
from batch_article_agent.research import TavilyClient, fact_check_article
from batch_article_agent.social import generate_x_posts
from batch_article_agent.state import FactCheckSummary, JobSpec, ProcessStep, XPost

if TYPE_CHECKING:
    from batch_article_agent.producer import PhaseReporter

logger = logging.getLogger(__name__)


class ArticleState(TypedDict, total=False):
    """LangGraph state: everything produced so far for one keyword"""

    spec: JobSpec
    analysis: str
    outline: dict
    markdown_content: str
    fact_check: Optional[FactCheckSummary]
    image_prompt: str
    image_url: str
    x_posts: list[XPost]


@dataclass
class ArticleServices:
    """Per-invocation collaborators, passed to nodes via ``configurable``.

    A fresh instance per job keeps cost accounting and phase reporting
    scoped to that job even though the compiled graph is shared.
    """

    config: ProducerConfig
    client: AsyncAnthropic
    report_phase: "PhaseReporter"
    tavily: Optional[TavilyClient] = None
    total_cost: float = 0.0

    async def llm(
        self,
        system_prompt: str,
        user_message: str,
        trace_name: str | None = None,
        fast: bool = False,
    ) -> dict:
        result = await call_claude(
            system_prompt,
            user_message,
            client=self.client,
            model=self.config.fast_model if fast else self.config.text_model,
            max_tokens=self.config.max_tokens,
            trace_name=trace_name,
        )
        self.total_cost += result["cost_usd"]
        return result


def _services(config: RunnableConfig) -> ArticleServices:
    return config["configurable"]["services"]


async def analyze_node(state: ArticleState, config: RunnableConfig) -> dict:
    """SEO analysis of the keyword."""
    services = _services(config)
    services.report_phase(ProcessStep.ANALYZING)
    system_prompt, user_message = analysis_prompt(state["spec"])
    result = await services.llm(system_prompt, user_message, trace_name="analyze", fast=True)
    return {"analysis": result["text"]}


async def outline_node(state: ArticleState, config: RunnableConfig) -> dict:
    services = _services(config)
    services.report_phase(ProcessStep.OUTLINING)
    system_prompt, user_message = outline_prompt(state["spec"], state.get("analysis", ""))
    result = await services.llm(system_prompt, user_message, trace_name="outline")
    outline = parse_json_response(result["text"])
    if not isinstance(outline, dict) or not outline.get("title"):
        raise ValueError("Outline response has no title")
    return {"outline": outline}


async def write_node(state: ArticleState, config: RunnableConfig) -> dict:
    services = _services(config)
    services.report_phase(ProcessStep.WRITING)
    system_prompt, user_message = writing_prompt(state["spec"], state["outline"])
    result = await services.llm(system_prompt, user_message, trace_name="write")
    content = result["text"].strip()
    if not content:
        raise ValueError("Article body is empty")
    return {"markdown_content": content}


async def fact_check_node(state: ArticleState, config: RunnableConfig) -> dict:
    services = _services(config)
    services.report_phase(ProcessStep.FACT_CHECKING)
    summary = await fact_check_article(
        services.llm,
        state["markdown_content"],
        state["spec"].keyword,
        services.tavily,
        max_claims=services.config.fact_check_max_claims,
    )
    return {"fact_check": summary}


async def image_node(state: ArticleState, config: RunnableConfig) -> dict:
    services = _services(config)
    services.report_phase(ProcessStep.GENERATING_IMAGE)
    if not services.config.generate_images:
        return {"image_url": ""}

    spec = state["spec"]
    system_prompt, user_message = image_prompt_prompt(
        state["outline"].get("title", spec.keyword),
        state["markdown_content"],
        spec.image_theme,
    )
    result = await services.llm(system_prompt, user_message, trace_name="image_prompt", fast=True)
    prompt = result["text"].strip()
    image_url = await generate_image_async(
        prompt,
        api_key=services.config.gemini_api_key,
        model=services.config.image_model,
    )
    return {"image_prompt": prompt, "image_url": image_url}


async def x_posts_node(state: ArticleState, config: RunnableConfig) -> dict:
    services = _services(config)
    services.report_phase(ProcessStep.GENERATING_X_POSTS)
    outline = state["outline"]
    posts = await generate_x_posts(
        services.llm,
        state["spec"],
        title=outline.get("title", ""),
        summary=outline.get("meta_description", ""),
        audiences=list(services.config.x_post_audiences),
    )
    return {"x_posts": posts}
