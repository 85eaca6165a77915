"""Configuration package for the progression engine."""

from progression.config.app_config import (
    AppConfig,
    AssessmentDefaults,
    AttemptConfig,
    WatchPolicy,
    clear_config_cache,
    get_assessment_defaults,
    get_watch_policy,
    load_app_config,
)

__all__ = [
    "AppConfig",
    "AssessmentDefaults",
    "AttemptConfig",
    "WatchPolicy",
    "clear_config_cache",
    "get_assessment_defaults",
    "get_watch_policy",
    "load_app_config",
]
