"""contextkeeper configuration."""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, ValidationError

from contextkeeper.core.types import AutoLoadStrategy, FormatStyle
from contextkeeper.exceptions import ConfigError


def keeper_home() -> Path:
    """Root directory for config and the default database."""
    return Path(os.environ.get("CONTEXTKEEPER_HOME", Path.home() / ".contextkeeper"))


class ExtractionSettings(BaseModel):
    relevance_threshold: float = Field(default=0.2, ge=0.0, le=1.0)
    max_context_items: int = Field(default=50, ge=1)
    enable_pattern_recognition: bool = True
    question_limit: int = Field(default=2000, ge=1)
    solution_limit: int = Field(default=2000, ge=1)
    implementation_limit: int = Field(default=1000, ge=1)
    decision_limit: int = Field(default=500, ge=1)


class RetrievalSettings(BaseModel):
    default_limit: int = Field(default=5, ge=1)
    min_relevance: float = Field(default=0.3, ge=0.0, le=1.0)
    half_life_days: float = Field(default=60.0, gt=0.0)
    use_index: bool = True


class AutoLoadSettings(BaseModel):
    """Which records are surfaced proactively at session start."""

    enabled: bool = True
    strategy: AutoLoadStrategy = AutoLoadStrategy.smart
    max_size_kb: float = Field(default=10.0, gt=0.0)
    session_count: int = Field(default=3, ge=0)
    pattern_count: int = Field(default=5, ge=0)
    decision_count: int = Field(default=5, ge=0)
    include_types: list[str] = Field(
        default_factory=lambda: ["sessions", "patterns", "decisions"],
    )
    priority_keywords: list[str] = Field(default_factory=list)
    format_style: FormatStyle = FormatStyle.summary
    min_relevance: float = Field(default=0.3, ge=0.0, le=1.0)


class SecuritySettings(BaseModel):
    filter_sensitive_data: bool = True


class KeeperConfig(BaseModel):
    """Global configuration for a contextkeeper instance."""

    db_path: Path = Field(default_factory=lambda: keeper_home() / "contexts.db")
    extraction: ExtractionSettings = Field(default_factory=ExtractionSettings)
    retrieval: RetrievalSettings = Field(default_factory=RetrievalSettings)
    auto_load: AutoLoadSettings = Field(default_factory=AutoLoadSettings)
    security: SecuritySettings = Field(default_factory=SecuritySettings)

    @classmethod
    def load(cls, path: str | Path | None = None) -> KeeperConfig:
        """Read a JSON config file and merge it onto the defaults.

        A missing file yields the defaults. ``CONTEXTKEEPER_DB_PATH`` overrides
        the database location.
        """
        config_path = Path(path) if path else keeper_home() / "config.json"
        user: dict[str, Any] = {}
        if config_path.exists():
            try:
                user = json.loads(config_path.read_text(encoding="utf-8"))
            except (OSError, json.JSONDecodeError) as exc:
                raise ConfigError(f"Cannot read config {config_path}: {exc}") from exc
            if not isinstance(user, dict):
                raise ConfigError(f"Config {config_path} must contain a JSON object")

        merged = _deep_merge(cls().model_dump(mode="json"), user)
        env_db = os.environ.get("CONTEXTKEEPER_DB_PATH")
        if env_db:
            merged["db_path"] = env_db
        try:
            return cls.model_validate(merged)
        except ValidationError as exc:
            raise ConfigError(f"Invalid configuration: {exc}") from exc


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    out = dict(base)
    for key, val in override.items():
        if isinstance(val, dict) and isinstance(out.get(key), dict):
            out[key] = _deep_merge(out[key], val)
        else:
            out[key] = val
    return out
