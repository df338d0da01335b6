"""Configuration management."""

import os
from pathlib import Path
from dataclasses import dataclass
from dotenv import load_dotenv
import yaml


@dataclass
class Config:
    # Supabase
    supabase_url: str
    supabase_key: str

    # OpenAI
    openai_api_key: str | None
    filter_model: str
    evaluate_model: str
    classifier_timeout: float

    # Pipeline
    filter_batch_size: int
    background_triage: bool

    # Collector
    collect_interval_minutes: int

    # App
    port: int
    log_level: str
    environment: str

    @property
    def is_configured(self) -> bool:
        """Whether the classifier credential is present."""
        return bool(self.openai_api_key)


def _env_flag(name: str, default: str) -> bool:
    return os.environ.get(name, default).strip().lower() in {"1", "true", "yes", "on"}


def load_config() -> Config:
    """Load configuration from environment variables."""
    load_dotenv()

    return Config(
        supabase_url=os.environ["SUPABASE_URL"],
        supabase_key=os.environ["SUPABASE_SERVICE_KEY"],
        openai_api_key=os.environ.get("OPENAI_API_KEY") or None,
        filter_model=os.environ.get("FILTER_MODEL", "gpt-5-nano"),
        evaluate_model=os.environ.get("EVALUATE_MODEL", "gpt-5-mini"),
        classifier_timeout=float(os.environ.get("CLASSIFIER_TIMEOUT", "60")),
        filter_batch_size=int(os.environ.get("FILTER_BATCH_SIZE", "50")),
        background_triage=_env_flag("BACKGROUND_TRIAGE", "true"),
        collect_interval_minutes=int(os.environ.get("COLLECT_INTERVAL_MINUTES", "30")),
        port=int(os.environ.get("PORT", "3000")),
        log_level=os.environ.get("LOG_LEVEL", "INFO"),
        environment=os.environ.get("ENVIRONMENT", "development"),
    )


def load_subreddits() -> list[str]:
    """Load the seed subreddit list from YAML."""
    subreddits_path = Path(__file__).parent.parent.parent / "data" / "subreddits.yaml"
    with open(subreddits_path) as f:
        data = yaml.safe_load(f) or {}
    return [str(name) for name in data.get("subreddits", [])]


# Global config instance
_config: Config | None = None


def get_config() -> Config:
    """Get or create the global config instance."""
    global _config
    if _config is None:
        _config = load_config()
    return _config
