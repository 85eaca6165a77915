"""Core business logic module.

Modules:
- content_graph: Course catalogs and linear content order
- unlock_resolver: Content accessibility
- shuffle_engine: Seeded per-attempt question/option order
- secure_delivery: Answer-free question payloads
- grader: MCQ/TrueFalse/Written grading
- attempt_session: Timed attempt lifecycle
- watch_validator: Video coverage reconstruction
- progress_aggregator: Topic and course percentages
- progress_service: Progress updates for non-assessment content
- notifications: Completion notification dispatch
"""

__all__ = [
    "content_graph",
    "unlock_resolver",
    "shuffle_engine",
    "secure_delivery",
    "grader",
    "attempt_session",
    "watch_validator",
    "progress_aggregator",
    "progress_service",
    "notifications",
]
