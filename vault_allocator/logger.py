from __future__ import annotations

import logging
import sys
from typing import Any

import structlog


_SAFE_JSON_INT = 2**53


def _render_amount(value: Any) -> Any:
    if isinstance(value, bool):
        return value
    if isinstance(value, int) and abs(value) >= _SAFE_JSON_INT:
        return str(value)
    if isinstance(value, (list, tuple)):
        return [_render_amount(item) for item in value]
    return value


def stringify_amounts(_logger: Any, _method: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    """Render integers past 2**53 as strings so JSON readers keep every digit."""

    return {key: _render_amount(value) for key, value in event_dict.items()}


def _stderr_logger(*_args: Any) -> Any:
    # resolve stderr per logger so redirected streams are honoured
    return structlog.PrintLogger(file=sys.stderr)


def configure_logging(level: str = "info", *, json: bool = True) -> None:
    numeric_level = getattr(logging, level.upper(), logging.INFO)
    logging.basicConfig(
        level=numeric_level,
        format="%(message)s",
    )
    renderer: Any = (
        structlog.processors.JSONRenderer(sort_keys=True)
        if json
        else structlog.dev.ConsoleRenderer(colors=False)
    )
    structlog.configure(
        wrapper_class=structlog.make_filtering_bound_logger(numeric_level),
        logger_factory=_stderr_logger,
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.TimeStamper(fmt="iso", key="ts"),
            structlog.processors.add_log_level,
            structlog.processors.EventRenamer("message"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            stringify_amounts,
            renderer,
        ],
    )


def get_logger(name: str | None = None) -> Any:
    return structlog.get_logger(name)
