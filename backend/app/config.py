from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # API Keys (passed through to the article engine)
    anthropic_api_key: str = ""
    gemini_api_key: str = ""
    tavily_api_key: str = ""

    # Article generation
    generate_images: bool = True
    dry_run: bool = False  # use the offline producer; no API keys needed

    # Batch defaults (seconds); a request may override them per batch
    batch_max_jobs: int = 20
    batch_max_concurrent_jobs: int = 2
    batch_delay_between_jobs: float = 3.0
    batch_retry_attempts: int = 2
    batch_timeout: float = 300.0
    # Seconds in-flight jobs get to finish when the server stops
    shutdown_grace_period: float = 30.0

    # Frontend
    frontend_url: str = "http://localhost:3000"

    log_level: str = "INFO"

    model_config = {"env_file": ".env", "extra": "ignore"}


settings = Settings()
