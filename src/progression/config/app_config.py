"""Application configuration loader.

Loads centralized configuration from data/config/progression_v1.yaml
with fallback to built-in defaults.

Usage:
    from progression.config.app_config import load_app_config, get_assessment_defaults

    config = load_app_config()
    quiz_defaults = get_assessment_defaults("quiz")
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import structlog
import yaml

logger = structlog.get_logger(__name__)

# Config file path (relative to project root)
CONFIG_FILE = Path("data/config/progression_v1.yaml")


@dataclass
class AssessmentDefaults:
    """Defaults applied to quiz/homework items that omit a setting."""

    passing_score: int
    max_attempts: int
    duration_minutes: int = 0


@dataclass
class WatchPolicy:
    """Acceptance thresholds for video completion.

    A completion is accepted when the reconstructed coverage reaches
    ``required_percentage``, or when the client reports at least
    ``frontend_reported_percentage`` and coverage reaches
    ``fallback_floor_percentage``.
    """

    required_percentage: float = 85.0
    frontend_reported_percentage: float = 90.0
    fallback_floor_percentage: float = 75.0
    merge_tolerance_seconds: float = 2.0


@dataclass
class AttemptConfig:
    """Configuration for timed attempt sessions."""

    submission_grace_seconds: int = 60


@dataclass
class AppConfig:
    """Application-wide configuration."""

    assessments: dict[str, AssessmentDefaults] = field(default_factory=dict)
    attempts: AttemptConfig = field(default_factory=AttemptConfig)
    watch_policy: WatchPolicy = field(default_factory=WatchPolicy)
    paths: dict[str, str] = field(default_factory=dict)


# Module-level cache
_cached_config: AppConfig | None = None


def _get_defaults() -> dict[str, Any]:
    """Get default configuration values."""
    return {
        "assessments": {
            "quiz": {
                "passing_score": 60,
                "max_attempts": 3,
                "duration_minutes": 30,
            },
            "homework": {
                "passing_score": 60,
                "max_attempts": 1,
                "duration_minutes": 0,
            },
        },
        "attempts": {
            "submission_grace_seconds": 60,
        },
        "watch_policy": {
            "required_percentage": 85.0,
            "frontend_reported_percentage": 90.0,
            "fallback_floor_percentage": 75.0,
            "merge_tolerance_seconds": 2.0,
        },
        "paths": {
            "data_dir": "data",
            "db_path": "db/progression.db",
        },
    }


def _parse_config(data: dict[str, Any]) -> AppConfig:
    """Parse configuration dictionary into AppConfig object."""
    defaults = _get_defaults()

    assessments = {}
    assessment_data = {**defaults["assessments"], **(data.get("assessments") or {})}
    for kind, settings in assessment_data.items():
        settings = settings or {}
        base = defaults["assessments"].get(kind, defaults["assessments"]["quiz"])
        assessments[kind] = AssessmentDefaults(
            passing_score=settings.get("passing_score", base["passing_score"]),
            max_attempts=settings.get("max_attempts", base["max_attempts"]),
            duration_minutes=settings.get("duration_minutes", base["duration_minutes"]),
        )

    attempts_data = data.get("attempts") or {}
    attempts = AttemptConfig(
        submission_grace_seconds=attempts_data.get(
            "submission_grace_seconds",
            defaults["attempts"]["submission_grace_seconds"],
        ),
    )

    policy_data = {**defaults["watch_policy"], **(data.get("watch_policy") or {})}
    watch_policy = WatchPolicy(
        required_percentage=float(policy_data["required_percentage"]),
        frontend_reported_percentage=float(policy_data["frontend_reported_percentage"]),
        fallback_floor_percentage=float(policy_data["fallback_floor_percentage"]),
        merge_tolerance_seconds=float(policy_data["merge_tolerance_seconds"]),
    )

    paths = {**defaults["paths"], **(data.get("paths") or {})}

    return AppConfig(
        assessments=assessments,
        attempts=attempts,
        watch_policy=watch_policy,
        paths=paths,
    )


def load_app_config(force_reload: bool = False) -> AppConfig:
    """Load application config, falling back to defaults.

    Args:
        force_reload: If True, ignore cached config and reload from file.

    Returns:
        AppConfig object with all settings.
    """
    global _cached_config

    if _cached_config is not None and not force_reload:
        return _cached_config

    data: dict[str, Any]

    if CONFIG_FILE.exists():
        logger.debug("loading_app_config", source=str(CONFIG_FILE))
        data = yaml.safe_load(CONFIG_FILE.read_text(encoding="utf-8")) or {}
    else:
        logger.info("using_default_config")
        data = _get_defaults()

    _cached_config = _parse_config(data)
    return _cached_config


def get_assessment_defaults(content_type: str) -> AssessmentDefaults:
    """Get assessment defaults for a content type ("quiz" or "homework").

    Unknown types fall back to the quiz defaults.
    """
    config = load_app_config()
    return config.assessments.get(content_type) or config.assessments["quiz"]


def get_watch_policy() -> WatchPolicy:
    """Get the configured video watch acceptance policy."""
    return load_app_config().watch_policy


def clear_config_cache() -> None:
    """Clear the configuration cache.

    Useful for testing or when config is modified at runtime.
    """
    global _cached_config
    _cached_config = None
