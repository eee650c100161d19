"""Article producers: generate one article from a job spec.

The orchestrator only depends on the ``ArticleProducer`` protocol: an async
``produce(spec, report_phase)`` that reports phase transitions through the
callback it is given and either returns an opaque output or raises.
"""

import asyncio
import logging
from typing import Any, Callable, Optional, Protocol

from anthropic import AsyncAnthropic

from batch_article_agent.client import get_claude_client
from batch_article_agent.config import ProducerConfig
from batch_article_agent.nodes import ArticleServices
from batch_article_agent.research import TavilyClient
from batch_article_agent.state import ArticleOutput, JobSpec, ProcessStep, XPost
from batch_article_agent.workflow import PHASE_NODES, create_workflow

logger = logging.getLogger(__name__)

PhaseReporter = Callable[[ProcessStep], None]


class ArticleProducer(Protocol):
    async def produce(self, spec: JobSpec, report_phase: PhaseReporter) -> Any:
        ...


class LLMArticleProducer:
    """Runs the LangGraph article workflow against the real AI services."""

    def __init__(
        self,
        config: ProducerConfig,
        client: Optional[AsyncAnthropic] = None,
        tavily: Optional[TavilyClient] = None,
    ) -> None:
        self.config = config
        self._client = client or get_claude_client(config.anthropic_api_key)
        if tavily is None and config.tavily_api_key:
            tavily = TavilyClient(config.tavily_api_key)
        self._tavily = tavily
        self._graph = create_workflow().compile()

    async def produce(self, spec: JobSpec, report_phase: PhaseReporter) -> ArticleOutput:
        services = ArticleServices(
            config=self.config,
            client=self._client,
            report_phase=report_phase,
            tavily=self._tavily,
        )
        final = await self._graph.ainvoke(
            {"spec": spec},
            config={"configurable": {"services": services}},
        )
        report_phase(ProcessStep.DONE)

        outline = final["outline"]
        output = ArticleOutput(
            title=outline.get("title", spec.keyword),
            markdown_content=final["markdown_content"],
            meta_description=outline.get("meta_description", ""),
            image_url=final.get("image_url", ""),
            x_posts=final.get("x_posts", []),
            fact_check=final.get("fact_check"),
            cost_usd=services.total_cost,
        )
        logger.info("Produced article %r (cost=$%.4f)", output.title, output.cost_usd)
        return output


class DryRunProducer:
    """Walks through every phase without calling any external service.

    Used by the CLI ``--dry-run`` flag to exercise scheduling, retries and
    progress reporting without API keys.
    """

    def __init__(self, phase_delay: float = 0.2) -> None:
        self.phase_delay = phase_delay

    async def produce(self, spec: JobSpec, report_phase: PhaseReporter) -> ArticleOutput:
        for _, step in PHASE_NODES:
            report_phase(step)
            await asyncio.sleep(self.phase_delay)
        report_phase(ProcessStep.DONE)

        title = f"{spec.keyword}: a complete guide"
        return ArticleOutput(
            title=title,
            markdown_content=f"# {title}\n\n(dry run, {spec.target_length} characters requested)\n",
            meta_description=f"Everything you need to know about {spec.keyword}.",
            x_posts=[XPost(target="everyone", text=f"New article: {title} #{spec.keyword.replace(' ', '')}")],
        )
