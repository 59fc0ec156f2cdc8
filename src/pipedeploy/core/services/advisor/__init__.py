from .advisor import (
    Advisory,
    AdvisoryText,
    AdvisoryUnavailable,
    build_prompt,
    summarize,
)

__all__ = [
    "Advisory",
    "AdvisoryText",
    "AdvisoryUnavailable",
    "build_prompt",
    "summarize",
]
