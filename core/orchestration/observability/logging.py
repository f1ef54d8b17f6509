"""
Structured logging with automatic run context propagation.

Key Features:
- Standard logger.info() calls pick up run context automatically
- ContextVar-based propagation: each run task carries its own context
- Dual output modes: JSON for production, human-readable for development

Architecture:
    RunCoordinator._drive() → sets orchestrator_id, run_id, strategy
        ↓ (automatic propagation via ContextVar)
    AgentRunner.execute() → adds agent_id
        ↓ (automatic propagation)
    AgentExecutor.run() → logger.info("message") gets ALL context
"""

import json
import logging
import os
import re
from contextvars import ContextVar
from datetime import UTC, datetime
from typing import Any

# Each asyncio task copies the context at creation, so concurrent runs
# (and parallel agents inside a batch) never see each other's fields.
trace_context: ContextVar[dict[str, Any] | None] = ContextVar("trace_context", default=None)

ANSI_ESCAPE_PATTERN = re.compile(r"\x1b\[[0-9;]*m|\033\[[0-9;]*m")


def strip_ansi_codes(text: str) -> str:
    """Remove ANSI escape codes from text for clean JSON logging."""
    return ANSI_ESCAPE_PATTERN.sub("", text)


class StructuredFormatter(logging.Formatter):
    """
    JSON formatter for structured logging.

    Produces machine-parseable log entries with:
    - Standard fields (timestamp, level, logger, message)
    - Run context (orchestrator_id, run_id, agent_id)
    - Custom fields from extra dict
    """

    EXTRA_FIELDS = ("event", "tokens_used", "cost_usd", "duration_ms")

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        context = trace_context.get() or {}

        log_entry: dict[str, Any] = {
            "timestamp": datetime.now(UTC).isoformat(),
            "level": record.levelname.lower(),
            "logger": record.name,
            "message": strip_ansi_codes(record.getMessage()),
        }
        log_entry.update(context)

        for name in self.EXTRA_FIELDS:
            value = getattr(record, name, None)
            if value is not None:
                log_entry[name] = value

        if record.exc_info:
            log_entry["exception"] = strip_ansi_codes(self.formatException(record.exc_info))

        return json.dumps(log_entry, default=str)


class HumanReadableFormatter(logging.Formatter):
    """
    Human-readable formatter for development.

    Colorized level plus a short run-context prefix for correlation.
    """

    COLORS = {
        "DEBUG": "\033[36m",  # Cyan
        "INFO": "\033[32m",  # Green
        "WARNING": "\033[33m",  # Yellow
        "ERROR": "\033[31m",  # Red
        "CRITICAL": "\033[35m",  # Magenta
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as human-readable string."""
        context = trace_context.get() or {}

        prefix_parts = []
        if context.get("orchestrator_id"):
            prefix_parts.append(f"orch:{context['orchestrator_id']}")
        if context.get("run_id"):
            prefix_parts.append(f"run:{context['run_id'][-8:]}")
        if context.get("agent_id"):
            prefix_parts.append(f"agent:{context['agent_id']}")
        context_prefix = f"[{' | '.join(prefix_parts)}] " if prefix_parts else ""

        color = self.COLORS.get(record.levelname, "")
        level = f"{record.levelname:<8}"

        event = ""
        record_event = getattr(record, "event", None)
        if record_event is not None:
            event = f" [{record_event}]"

        message = f"{color}[{level}]{self.RESET} {context_prefix}{record.getMessage()}{event}"
        if record.exc_info:
            message = f"{message}\n{self.formatException(record.exc_info)}"
        return message


def configure_logging(
    level: str = "INFO",
    format: str = "auto",  # "json", "human", or "auto"
) -> None:
    """
    Configure logging for the application.

    Call once at startup (CLI entry point, host application, test fixture).

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        format: Output format:
            - "json": Machine-parseable JSON (for production)
            - "human": Human-readable with colors (for development)
            - "auto": JSON if LOG_FORMAT=json or ENV=production, else human
    """
    if format == "auto":
        log_format_env = os.getenv("LOG_FORMAT", "").lower()
        env = os.getenv("ENV", "development").lower()
        format = "json" if log_format_env == "json" or env == "production" else "human"

    if format == "json":
        formatter: logging.Formatter = StructuredFormatter()
        # Keep third-party output free of colour codes in JSON mode
        os.environ["NO_COLOR"] = "1"
    else:
        formatter = HumanReadableFormatter()

    handler = logging.StreamHandler()
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(level.upper())

    # httpx logs every request at INFO; route it through our formatter
    for logger_name in ("httpx", "httpcore"):
        third_party = logging.getLogger(logger_name)
        third_party.handlers.clear()
        third_party.propagate = True


def set_trace_context(**kwargs: Any) -> None:
    """
    Merge fields into the run context of the current task.

    Called by the engine at key points:
    - RunCoordinator._drive(): orchestrator_id, run_id, strategy
    - AgentRunner.execute(): agent_id
    """
    current = trace_context.get() or {}
    trace_context.set({**current, **kwargs})


def get_trace_context() -> dict:
    """
    Get current run context.

    Returns:
        Dict with orchestrator_id, run_id, agent_id, etc.
        Empty dict if no context set.
    """
    context = trace_context.get() or {}
    return context.copy()


def clear_trace_context() -> None:
    """Clear run context (test cleanup, or starting a fresh context by hand)."""
    trace_context.set(None)
