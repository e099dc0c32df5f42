from __future__ import annotations

"""JSON logging for the API and the import script.

Every line is one JSON object with ``timestamp``, ``level``, ``logger``,
``service``, ``environment`` and ``message``. Keys passed through
``extra=`` are merged in, so call sites log events such as
``logger.info("enrichment_finished", extra={"article_id": ..., "state": ...})``.
"""

import json
import logging
from datetime import datetime, timezone
from typing import Any, Dict

from libs.core.settings import Settings, get_settings

# Attributes every LogRecord carries; anything else came from `extra=`.
_STANDARD_ATTRS = frozenset(
    vars(logging.LogRecord("", logging.INFO, "", 0, "", (), None))
) | {"message", "asctime", "taskName"}

_NOISY_LOGGERS = ("httpx", "httpcore", "sqlalchemy.engine")


def _jsonable(value: Any) -> Any:
    try:
        json.dumps(value)
    except (TypeError, ValueError):
        return repr(value)
    return value


class _JsonFormatter(logging.Formatter):
    """One-line JSON log formatter with stable keys and UTC timestamps."""

    def __init__(self, service: str, environment: str) -> None:
        super().__init__()
        self.service = service
        self.environment = environment

    def format(self, record: logging.LogRecord) -> str:  # noqa: D401
        created = datetime.fromtimestamp(record.created, tz=timezone.utc)
        payload: Dict[str, Any] = {
            "timestamp": created.isoformat(timespec="milliseconds").replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "service": self.service,
            "environment": self.environment,
            "message": record.getMessage(),
        }
        extras = {
            key: _jsonable(value)
            for key, value in vars(record).items()
            if key not in _STANDARD_ATTRS and key not in payload
        }
        payload.update(extras)
        if record.exc_info and record.exc_info[0] is not None:
            exc_type, exc, _ = record.exc_info
            payload["error"] = {"class": exc_type.__name__, "message": str(exc)[:500]}
        return json.dumps(payload, ensure_ascii=False)


def setup_logging(settings: Settings | None = None) -> None:
    """Route the root logger through :class:`_JsonFormatter` at ``LOG_LEVEL``."""

    settings = settings or get_settings()
    level = logging.getLevelName(settings.log_level.upper())
    if not isinstance(level, int):
        level = logging.INFO

    handler = logging.StreamHandler()
    handler.setFormatter(_JsonFormatter(settings.service_name, settings.environment))

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))


__all__ = ["setup_logging"]
