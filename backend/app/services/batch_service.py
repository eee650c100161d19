"""Batch service: the single process-wide BatchOrchestrator.

The orchestrator runs one batch at a time, so the backend keeps exactly one
instance, created lazily on first use from ``app.config.settings``.
"""

import logging

from batch_article_agent.config import ProducerConfig
from batch_article_agent.orchestrator import BatchOrchestrator
from batch_article_agent.producer import ArticleProducer, DryRunProducer, LLMArticleProducer
from batch_article_agent.state import BatchConfig

from app.config import Settings, settings

logger = logging.getLogger(__name__)

_orchestrator: BatchOrchestrator | None = None


def build_producer(cfg: Settings) -> ArticleProducer:
    """Create the article producer described by the settings.

    Raises:
        ConfigurationError: required API keys are missing.
    """
    if cfg.dry_run:
        logger.info("Using dry-run article producer")
        return DryRunProducer()
    return LLMArticleProducer(
        ProducerConfig(
            anthropic_api_key=cfg.anthropic_api_key,
            gemini_api_key=cfg.gemini_api_key,
            tavily_api_key=cfg.tavily_api_key,
            generate_images=cfg.generate_images,
        )
    )


def build_default_config(cfg: Settings) -> BatchConfig:
    return BatchConfig(
        max_concurrent_jobs=cfg.batch_max_concurrent_jobs,
        delay_between_jobs=cfg.batch_delay_between_jobs,
        retry_attempts=cfg.batch_retry_attempts,
        timeout=cfg.batch_timeout,
    )


def get_orchestrator() -> BatchOrchestrator:
    """Return the shared orchestrator, creating it on first call."""
    global _orchestrator
    if _orchestrator is None:
        _orchestrator = BatchOrchestrator(
            build_producer(settings),
            max_jobs=settings.batch_max_jobs,
            default_config=build_default_config(settings),
        )
        logger.info(
            "Batch orchestrator ready (max_jobs=%d, concurrency=%d)",
            settings.batch_max_jobs,
            settings.batch_max_concurrent_jobs,
        )
    return _orchestrator


def peek_orchestrator() -> BatchOrchestrator | None:
    """Return the shared orchestrator without creating it."""
    return _orchestrator


def set_orchestrator(orchestrator: BatchOrchestrator | None) -> None:
    """Replace the shared orchestrator (tests, or ``None`` to rebuild lazily)."""
    global _orchestrator
    _orchestrator = orchestrator
