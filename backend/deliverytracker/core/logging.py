"""Loguru setup: request and owner context on every record, stdlib logs routed in."""

from __future__ import annotations

import logging
from contextvars import ContextVar
from sys import stdout
from typing import Any

from loguru import logger

from deliverytracker.core.config import settings

request_id_ctx_var: ContextVar[str] = ContextVar("request_id", default="-")
owner_id_ctx_var: ContextVar[str] = ContextVar("owner_id", default="-")

TEXT_FORMAT = (
    "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | "
    "{extra[request_id]} {extra[owner_id]} | {name}:{line} - {message}"
)

# Library loggers forwarded into loguru; their own handlers are dropped.
ROUTED_LOGGERS = ("uvicorn", "uvicorn.error", "uvicorn.access", "sqlalchemy.engine", "asyncpg")


def _patch_record(record: dict[str, Any]) -> None:
    record["extra"].setdefault("request_id", request_id_ctx_var.get())
    record["extra"].setdefault("owner_id", owner_id_ctx_var.get())


class InterceptHandler(logging.Handler):
    """Forward standard ``logging`` records to loguru at the caller's depth."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            level: str | int = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        frame, depth = logging.currentframe(), 2
        while frame is not None and frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).log(level, record.getMessage())


def setup_logging(
    level: str | None = None,
    *,
    serialize: bool | None = None,
    sink: Any = stdout,
) -> int:
    """Install the loguru sink and route stdlib logging through it.

    Returns the id of the added sink.
    """

    level = (level or settings.LOG_LEVEL).upper()
    serialize = settings.LOG_JSON if serialize is None else serialize

    logging.basicConfig(handlers=[InterceptHandler()], level=0, force=True)
    for name in ROUTED_LOGGERS:
        routed = logging.getLogger(name)
        routed.handlers = []
        routed.propagate = True
    # SQL echo stays quiet unless DEBUG turns it on.
    logging.getLogger("sqlalchemy.engine").setLevel(logging.INFO if settings.DEBUG else logging.WARNING)

    logger.remove()
    logger.configure(patcher=_patch_record)
    if serialize:
        return logger.add(
            sink,
            level=level,
            enqueue=sink is stdout,
            backtrace=False,
            diagnose=False,
            serialize=True,
        )
    return logger.add(sink, level=level, format=TEXT_FORMAT, backtrace=False, diagnose=False)
