"""Structured logging for the worker, built on structlog.

Every module logs through :func:`get_logger` with keyword context; provider
keys are masked by a processor before anything is rendered.
"""

import json
import logging
import re
import sys
from typing import Any, Optional, TextIO

import structlog

# Credentials that can surface in request errors or provider bodies
_SECRET_PATTERNS = [
    re.compile(r"sk-[A-Za-z0-9_-]{10,}"),             # OpenAI-compatible keys
    re.compile(r"Bearer\s+[A-Za-z0-9_\-.]{10,}"),      # Authorization header
    re.compile(r"AIza[A-Za-z0-9_-]{20,}"),             # Google API keys
    re.compile(r"x-goog-api-key:\s*[A-Za-z0-9_-]{10,}", re.I),
    re.compile(r"key=[A-Za-z0-9_-]{20,}"),             # ?key= on Gemini URLs
]

# Third-party loggers that log every request line at INFO.
_NOISY_LOGGERS = ("httpx", "httpcore")


def mask_secret(value: str) -> str:
    """Mask a secret, keeping the first and last 4 chars visible.

    >>> mask_secret("sk-abc123456789xyz")
    'sk-a****9xyz'
    """
    if len(value) <= 8:
        return "****"
    return f"{value[:4]}****{value[-4:]}"


def _redact_value(value: str) -> str:
    """Mask every secret-looking substring of *value*."""
    for pattern in _SECRET_PATTERNS:
        value = pattern.sub(lambda m: mask_secret(m.group(0)), value)
    return value


def _redact(value: Any) -> Any:
    if isinstance(value, str):
        return _redact_value(value)
    if isinstance(value, dict):
        return {k: _redact(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return type(value)(_redact(v) for v in value)
    return value


def _redact_event(logger: Any, method_name: str, event_dict: dict) -> dict:
    """Processor: redact secrets in string values, including nested headers/bodies."""
    return {key: _redact(val) for key, val in event_dict.items()}


def _renderer(json_output: bool) -> Any:
    if json_output:
        return structlog.processors.JSONRenderer(
            serializer=lambda obj, **kw: json.dumps(obj, ensure_ascii=False, **kw)
        )
    return structlog.dev.ConsoleRenderer(colors=False)


def setup_logging(
    level: str = "INFO",
    *,
    json_output: bool = True,
    stream: Optional[TextIO] = None,
) -> None:
    """Route structlog through stdlib logging under the ``memworker`` logger.

    Args:
        level: Level for the ``memworker`` logger hierarchy.
        json_output: JSON lines when True, plain console lines otherwise.
        stream: Destination; defaults to stderr so CLI output on stdout stays clean.
    """
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            _redact_event,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(stream or sys.stderr)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                _renderer(json_output),
            ],
        )
    )

    root = logging.getLogger("memworker")
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level.upper())
    root.propagate = False

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str = "memworker") -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)
