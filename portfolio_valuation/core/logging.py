"""Application logging with Loguru + Slack notifications.

Records logged inside a refresh cycle carry ``extra["key"]``, a short
fingerprint of the credential (never the credential itself); see
``RefreshService.run_cycle``.
"""

import logging
import sys
from pathlib import Path
from typing import Any

import httpx
from loguru import logger

from portfolio_valuation.core.config import settings

LOG_FORMAT = "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level} | {extra[name]}:{function}:{line} | {message}"

LEVEL_ALIASES = {"WARN": "WARNING", "FATAL": "CRITICAL"}

_logging_configured = False


class InterceptHandler(logging.Handler):
    """Redirect stdlib logs to Loguru."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            level = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        frame, depth = logging.currentframe(), 2
        while frame and frame.f_code.co_name == "emit":
            frame = frame.f_back
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).log(level, record.getMessage())


def _format(record: Any) -> str:
    if record["extra"].get("key"):
        return LOG_FORMAT + " | key={extra[key]}\n{exception}"
    return LOG_FORMAT + "\n{exception}"


def _slack_sink(message: Any) -> None:
    record = message.record
    extra = record["extra"]
    header = f"portfolio-valuation ({settings.ENV}) [{record['level'].name}] {extra.get('name', 'portfolio_valuation')}"
    if extra.get("key"):
        header += f" key={extra['key']}"
    text = f"{header}\n{record['message']}"
    if record["exception"] is not None:
        text += f"\n{record['exception'].type.__name__}: {record['exception'].value}"
    try:
        httpx.post(settings.SLACK_WEBHOOK_URL, json={"text": text}, timeout=5.0)
    except httpx.HTTPError:
        # Logging from inside a sink would recurse
        pass


def configure_logging() -> None:
    global _logging_configured

    if _logging_configured:
        return
    _logging_configured = True

    level = (settings.effective_log_level or "INFO").strip().upper()
    level = LEVEL_ALIASES.get(level, level)
    if level not in {"TRACE", "DEBUG", "INFO", "SUCCESS", "WARNING", "ERROR", "CRITICAL"}:
        level = "INFO"

    logger.remove()
    logger.configure(extra={"name": "portfolio_valuation"})
    # diagnose=False keeps credentials out of rendered tracebacks
    logger.add(sys.stdout, level=level, format=_format, backtrace=False, diagnose=False)

    if settings.LOG_DIR:
        log_dir = Path(settings.LOG_DIR)
        log_dir.mkdir(parents=True, exist_ok=True)
        logger.add(
            log_dir / "valuation.log",
            level=level,
            format=_format,
            rotation="10 MB",
            retention="14 days",
            enqueue=True,
            backtrace=False,
            diagnose=False,
        )

    if settings.SLACK_WEBHOOK_URL:
        logger.add(_slack_sink, level="ERROR", enqueue=True)

    logging.basicConfig(handlers=[InterceptHandler()], level=0, force=True)

    # Collaborator request lines from httpx go through the same sinks
    for logger_name in ["uvicorn", "uvicorn.error", "uvicorn.access", "httpx"]:
        logging.getLogger(logger_name).handlers = [InterceptHandler()]
        logging.getLogger(logger_name).propagate = False


def get_logger(name: str) -> logger.__class__:
    return logger.bind(name=name)


configure_logging()
