import os
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any, Mapping, Optional

from dotenv import load_dotenv

from inbox_sorter.errors import ConfigurationError

# Load .env once, globally
load_dotenv()

# Project root (independent of current working directory).
PROJECT_ROOT = Path(__file__).resolve().parents[3]

AI_MODELS = ("auto", "openai", "gemini", "rules")


def resolve_dir(env_key: str, default: str) -> Path:
    """
    Resolve a directory path from ENV.
    Relative paths are resolved against PROJECT_ROOT.
    """
    value = os.getenv(env_key, default)
    path = Path(value)

    if not path.is_absolute():
        path = PROJECT_ROOT / path

    path.mkdir(parents=True, exist_ok=True)
    return path


def secrets_dir() -> Path:
    return resolve_dir("INBOX_SORTER_SECRETS_DIR", "secrets")


def _env_float(key: str, default: float) -> float:
    raw = os.getenv(key)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError as exc:
        raise ConfigurationError(f"{key} must be a number, got {raw!r}") from exc


@dataclass(frozen=True)
class Settings:
    """Process-level settings taken from the environment."""

    openai_api_key: Optional[str] = None
    openai_model: str = "gpt-4o-mini"
    gemini_api_key: Optional[str] = None
    gemini_model: str = "gemini-2.0-flash"
    label_prefix: str = "AI"
    request_timeout_s: float = 30.0

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            openai_api_key=os.getenv("OPENAI_API_KEY") or None,
            openai_model=os.getenv("INBOX_SORTER_OPENAI_MODEL", cls.openai_model),
            gemini_api_key=os.getenv("GEMINI_API_KEY") or os.getenv("GOOGLE_API_KEY") or None,
            gemini_model=os.getenv("INBOX_SORTER_GEMINI_MODEL", cls.gemini_model),
            label_prefix=os.getenv("INBOX_SORTER_LABEL_PREFIX", cls.label_prefix).strip("/ ") or "AI",
            request_timeout_s=_env_float("INBOX_SORTER_REQUEST_TIMEOUT", cls.request_timeout_s),
        )


@dataclass(frozen=True)
class PipelineConfig:
    """Options for one pipeline run."""

    max_results: int = 50
    batch_size: int = 50
    max_retries: int = 3
    ai_model: str = "auto"
    # False means dry run: classify and report, never write labels.
    apply_labels: bool = False
    # Gmail search filter, passed through verbatim.
    query: str = ""
    page_token: Optional[str] = None
    unread_only: bool = False
    skip_classified: bool = True
    verify: bool = False
    fetch_batch_size: int = 10
    fetch_delay_s: float = 0.1
    batch_delay_s: float = 0.2
    classify_concurrency: int = 10
    deadline_s: Optional[float] = None

    def __post_init__(self) -> None:
        self.validate()

    def validate(self) -> None:
        if not 1 <= self.max_results <= 500:
            raise ConfigurationError(f"max_results must be between 1 and 500, got {self.max_results}")
        if not 1 <= self.batch_size <= 100:
            raise ConfigurationError(f"batch_size must be between 1 and 100, got {self.batch_size}")
        if self.max_retries < 1:
            raise ConfigurationError(f"max_retries must be at least 1, got {self.max_retries}")
        if self.ai_model not in AI_MODELS:
            raise ConfigurationError(
                f"ai_model must be one of {', '.join(AI_MODELS)}, got {self.ai_model!r}"
            )
        if self.fetch_batch_size < 1 or self.classify_concurrency < 1:
            raise ConfigurationError("fetch_batch_size and classify_concurrency must be positive")
        if self.fetch_delay_s < 0 or self.batch_delay_s < 0:
            raise ConfigurationError("delays must not be negative")
        if self.deadline_s is not None and self.deadline_s <= 0:
            raise ConfigurationError(f"deadline_s must be positive, got {self.deadline_s}")

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "PipelineConfig":
        """Build from request-style keys (camelCase or snake_case); unknown keys are ignored."""
        aliases = {
            "maxResults": "max_results",
            "batchSize": "batch_size",
            "maxRetries": "max_retries",
            "aiModel": "ai_model",
            "applyLabels": "apply_labels",
            "pageToken": "page_token",
            "unreadOnly": "unread_only",
            "skipClassified": "skip_classified",
        }
        known = {f.name for f in fields(cls)}
        kwargs = {}
        for key, value in data.items():
            name = aliases.get(key, key)
            if name in known:
                kwargs[name] = value
        return cls(**kwargs)

    def with_overrides(self, **changes: Any) -> "PipelineConfig":
        return replace(self, **changes)
