"""Producer configuration.

API keys and model names are passed explicitly to the producer instead of
being read by module-level clients.  Validation happens when the config is
built, so a missing key surfaces as ``ConfigurationError`` at startup rather
than as a failure of the first job.
"""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

from batch_article_agent.errors import ConfigurationError

# .env at the repo root (source tree layout)
_ENV_PATH = Path(__file__).parent.parent.parent / ".env"

DEFAULT_TEXT_MODEL = "claude-sonnet-4-20250514"
DEFAULT_FAST_MODEL = "claude-3-5-haiku-20241022"
DEFAULT_IMAGE_MODEL = "gemini-2.5-flash-image"


@dataclass(frozen=True)
class ProducerConfig:
    """Credentials and model settings for ``LLMArticleProducer``."""

    anthropic_api_key: str
    gemini_api_key: str = ""
    tavily_api_key: str = ""  # optional: fact-check degrades to "unverified"
    text_model: str = DEFAULT_TEXT_MODEL
    fast_model: str = DEFAULT_FAST_MODEL
    image_model: str = DEFAULT_IMAGE_MODEL
    generate_images: bool = True
    max_tokens: int = 8192
    fact_check_max_claims: int = 5
    x_post_audiences: tuple[str, ...] = (
        "beginners",
        "intermediate learners",
        "business people",
        "homemakers",
        "students",
    )

    def __post_init__(self) -> None:
        if not self.anthropic_api_key:
            raise ConfigurationError("ANTHROPIC_API_KEY not set")
        if self.generate_images and not self.gemini_api_key:
            raise ConfigurationError(
                "GEMINI_API_KEY not set (required when image generation is enabled)"
            )
        if self.max_tokens < 1:
            raise ConfigurationError("max_tokens must be positive")

    @classmethod
    def from_env(cls, env_file: Optional[Path] = None, **overrides) -> "ProducerConfig":
        """Build a config from environment variables (and ``.env``)."""
        load_dotenv(env_file or _ENV_PATH)
        values = {
            "anthropic_api_key": os.environ.get("ANTHROPIC_API_KEY", ""),
            "gemini_api_key": os.environ.get("GEMINI_API_KEY", ""),
            "tavily_api_key": os.environ.get("TAVILY_API_KEY", ""),
            "text_model": os.environ.get("ARTICLE_TEXT_MODEL", DEFAULT_TEXT_MODEL),
            "fast_model": os.environ.get("ARTICLE_FAST_MODEL", DEFAULT_FAST_MODEL),
            "image_model": os.environ.get("ARTICLE_IMAGE_MODEL", DEFAULT_IMAGE_MODEL),
            "generate_images": os.environ.get("GENERATE_IMAGES", "true").lower()
            not in ("0", "false", "no"),
        }
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)
