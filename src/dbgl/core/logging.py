"""Structured logging for the DBGL store (structlog).

Every store module logs through a module-level structlog logger with
snake_case event names and keyword fields::

    import structlog
    logger = structlog.get_logger()
    logger.info("profile_added", profile_id=12)

Event families
--------------
* ``store_*`` / ``connection_*``: opening, pooling and closing connections.
* ``schema_*`` / ``migration_*``: the version gate and upgrade steps.  At
  DEBUG level each migration statement is logged under the ``sql`` key.
* ``<entity>_added`` / ``_updated`` / ``_removed`` / ``_duplicated``:
  repository writes, after commit.
* ``query_failed``: a driver error about to surface as ``QueryError``.

SQL values are collapsed onto one line and capped at :data:`SQL_PREVIEW`
characters, so a table rebuild renders as a single readable event.

Not to be confused with the audit log (:mod:`dbgl.core.audit`), which
records entity lifecycle events inside the database itself.
"""

from __future__ import annotations

import logging
import re
import sys
from collections.abc import Mapping, MutableMapping
from typing import IO, Any

import structlog

# ── SQL rendering processor ────────────────────────────────
# Keys holding SQL text or caller-supplied SQL fragments.
_SQL_KEYS = frozenset({"sql", "where", "order_by"})

# Longest SQL value kept in an event, in characters.
SQL_PREVIEW = 240

_WS_RE = re.compile(r"\s+")


def _sql_processor(
    _logger: Any,
    _method: str,
    event_dict: MutableMapping[str, Any],
) -> Mapping[str, Any]:
    """Flatten and cap SQL text held under ``_SQL_KEYS``."""
    for k in _SQL_KEYS & event_dict.keys():
        v = event_dict[k]
        if not isinstance(v, str):
            continue
        flat = _WS_RE.sub(" ", v).strip()
        if len(flat) > SQL_PREVIEW:
            flat = f"{flat[:SQL_PREVIEW]}... ({len(flat)} chars)"
        event_dict[k] = flat
    return event_dict


def configure_logging(
    *,
    level: str = "INFO",
    json_output: bool = True,
    stream: IO[str] | None = None,
) -> None:
    """Route structlog and stdlib logging through one handler.

    Parameters
    ----------
    level:
        Root log level.  ``DEBUG`` adds pool and migration statement events.
    json_output:
        JSON lines when *True*, coloured console output otherwise.
    stream:
        Destination; defaults to ``sys.stderr`` so command output on
        stdout stays clean.
    """
    log_level = getattr(logging, level.upper(), logging.INFO)
    stream = stream if stream is not None else sys.stderr

    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
        _sql_processor,
    ]

    if json_output:
        renderer: structlog.types.Processor = structlog.processors.JSONRenderer()
        final: list[structlog.types.Processor] = [structlog.processors.format_exc_info, renderer]
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=stream.isatty())
        final = [renderer]

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(stream)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, *final],
            foreign_pre_chain=shared_processors,
        )
    )

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(log_level)
