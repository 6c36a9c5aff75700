import re
from typing import Any

import psutil
from loguru import logger
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_random_exponential,
)

__all__ = (
    "as_string_list",
    "format_log_text",
    "get_memory_usage",
    "normalize_message",
    "retry_async",
)

_WHITESPACE_RE = re.compile(r"\s+")


def retry_async(max_retries=3, retryable_exceptions=None):
    kwargs = {
        "stop": stop_after_attempt(max_retries),
        "wait": wait_random_exponential(multiplier=1, max=30),
        "before_sleep": lambda retry_state: logger.info(
            f"Retry attempt #{retry_state.attempt_number}..."
        ),
        "reraise": True,
    }
    if retryable_exceptions:
        kwargs["retry"] = retry_if_exception_type(retryable_exceptions)
    return retry(**kwargs)


def get_memory_usage() -> dict[str, Any]:
    process = psutil.Process()
    memory_info = process.memory_info()
    mb_factor = 1024 * 1024
    return {
        "rss_mb": round(memory_info.rss / mb_factor, 2),
        "vms_mb": round(memory_info.vms / mb_factor, 2),
        "percent": process.memory_percent(),
    }


def as_string_list(value: Any) -> list[str] | None:
    """Coerce a str or a list of str into a list, dropping non-str items.

    Returns None when the value has neither shape, so callers can keep
    their previous value.
    """
    if isinstance(value, str):
        return [value]
    if isinstance(value, list):
        return [v for v in value if isinstance(v, str)]
    return None


def normalize_message(text: str) -> str:
    return _WHITESPACE_RE.sub(" ", text).strip().lower()


def format_log_text(text: str | None, max_length: int = 50) -> str:
    if not text:
        return "None"
    suffix = "..." if len(text) > max_length else ""
    return f"{text[:max_length]}{suffix}"
