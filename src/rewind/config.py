"""Environment-driven settings for the guest extraction engine."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field

_ENV_LOADED = False

DEFAULT_LLM_MODEL = "bedrock/anthropic.claude-3-haiku-20240307-v1:0"


def load_dotenv(*, override: bool = False) -> None:
    """Read the nearest .env file into ``os.environ`` once per process."""
    global _ENV_LOADED
    if _ENV_LOADED and not override:
        return

    env_path = _find_env_file()
    if env_path is not None:
        for key, value in _parse_env_lines(env_path.read_text(encoding="utf-8")):
            if override or key not in os.environ:
                os.environ[key] = value

    _ENV_LOADED = True


def _parse_env_lines(text: str) -> list[tuple[str, str]]:
    pairs: list[tuple[str, str]] = []
    for raw_line in text.splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#"):
            continue
        line = line.removeprefix("export ").strip()
        key, sep, value = line.partition("=")
        key = key.strip()
        if not sep or not key:
            continue

        value = value.strip()
        if len(value) >= 2 and value[0] == value[-1] and value[0] in ("'", '"'):
            value = value[1:-1]
        pairs.append((key, value))
    return pairs


def _find_env_file() -> Path | None:
    cwd = Path.cwd()
    for base in [cwd, *cwd.parents]:
        candidate = base / ".env"
        if candidate.is_file():
            return candidate
    return None


class Settings(BaseModel):
    """Runtime configuration for the orchestrator and its collaborators."""

    aws_region: str = "us-east-1"
    budget_backend: Literal["memory", "dynamodb"] = "memory"
    budget_table: str = "RewindAIBudget"
    usage_table: str = "RewindAIUsage"
    monthly_budget: float = Field(default=100.0, gt=0.0)
    warning_threshold: float = Field(default=0.8, gt=0.0, le=1.0)

    llm_model: str = DEFAULT_LLM_MODEL
    llm_timeout_s: float = Field(default=15.0, gt=0.0, le=120.0)
    llm_max_tokens: int = Field(default=1000, gt=0, le=8192)
    llm_api_base: str | None = None
    llm_api_key: str | None = None

    ner_timeout_s: float = Field(default=10.0, gt=0.0, le=60.0)
    history_capacity: int = Field(default=100, ge=1)


_ENV_KEYS = {
    "aws_region": "AWS_REGION",
    "budget_backend": "REWIND_BUDGET_BACKEND",
    "budget_table": "AI_BUDGET_TABLE",
    "usage_table": "AI_USAGE_TABLE",
    "monthly_budget": "AI_MONTHLY_BUDGET",
    "warning_threshold": "AI_WARNING_THRESHOLD",
    "llm_model": "REWIND_LLM_MODEL",
    "llm_timeout_s": "REWIND_LLM_TIMEOUT_S",
    "llm_max_tokens": "REWIND_LLM_MAX_TOKENS",
    "llm_api_base": "REWIND_LLM_API_BASE",
    "llm_api_key": "REWIND_LLM_API_KEY",
    "ner_timeout_s": "REWIND_NER_TIMEOUT_S",
    "history_capacity": "REWIND_HISTORY_CAPACITY",
}


def load_settings() -> Settings:
    """Build ``Settings`` from the environment, after loading any local .env file.

    Unset variables fall back to the model defaults; malformed values raise
    ``pydantic.ValidationError``.
    """
    load_dotenv()
    values: dict[str, str] = {}
    for field_name, env_key in _ENV_KEYS.items():
        raw = os.getenv(env_key)
        if raw is not None and raw.strip():
            values[field_name] = raw.strip()
    return Settings.model_validate(values)
