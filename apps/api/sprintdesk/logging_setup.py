from __future__ import annotations

import logging

import structlog


def configure_logging(level: str = "info", fmt: str = "json") -> None:
  """Configure structlog with the specified level and format."""
  processors = [
    structlog.contextvars.merge_contextvars,
    structlog.processors.add_log_level,
    structlog.processors.TimeStamper(fmt="iso"),
  ]
  if fmt == "json":
    processors.append(structlog.processors.JSONRenderer())
  else:
    processors.append(structlog.dev.ConsoleRenderer())

  min_level = logging.getLevelName((level or "info").upper())
  if not isinstance(min_level, int):
    min_level = logging.INFO
  structlog.configure(
    processors=processors,
    wrapper_class=structlog.make_filtering_bound_logger(min_level),
  )
