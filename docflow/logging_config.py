"""
Structured Logging Configuration Module

Log records from the engine carry who did what to which workflow or stage.
JSONFormatter turns those attributes into one JSON object per line;
log_action is the helper that attaches them.
"""

import logging
import json
from datetime import datetime, timezone
from typing import Any, Dict, Optional


# Record attributes copied into the JSON line when present
STRUCTURED_FIELDS = ("user_id", "action", "resource", "extra")

TEXT_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


class JSONFormatter(logging.Formatter):
    """One JSON object per record"""

    def format(self, record):
        entry: Dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for name in STRUCTURED_FIELDS:
            value = getattr(record, name, None)
            if value is not None:
                entry[name] = value
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


def _build_handler(log_format: str, log_file: Optional[str]) -> logging.Handler:
    handler = logging.FileHandler(log_file) if log_file else logging.StreamHandler()
    formatter = JSONFormatter() if log_format == "json" else logging.Formatter(TEXT_FORMAT)
    handler.setFormatter(formatter)
    return handler


def setup_logging(level: str = "INFO", logger_name: str = "docflow",
                  log_format: str = "json", log_file: Optional[str] = None) -> logging.Logger:
    """
    Configure the docflow logger tree.

    Calling it again replaces the previous handler, so reloading config
    never duplicates output.

    Args:
        level: Level name such as DEBUG or INFO
        logger_name: Root of the configured logger tree
        log_format: "json", or anything else for plain text lines
        log_file: Path to append to; stderr when omitted

    Returns:
        The configured logger
    """
    logger = logging.getLogger(logger_name)
    for old_handler in list(logger.handlers):
        logger.removeHandler(old_handler)
        old_handler.close()

    logger.addHandler(_build_handler(log_format, log_file))
    logger.setLevel(level.upper())
    # Handled here only; the root logger would print it a second time
    logger.propagate = False
    return logger


def get_logger(name: str = "docflow") -> logging.Logger:
    return logging.getLogger(name)


def log_action(logger: logging.Logger, level: str, message: str,
               user_id: Optional[str] = None, action: Optional[str] = None,
               resource: Optional[str] = None, extra: Optional[dict] = None):
    """
    Log a workflow action with its structured context.

    Args:
        logger: Target logger
        level: Level name, case-insensitive
        message: Human-readable message
        user_id: Acting user
        action: Operation name, e.g. "complete_stage"
        resource: "workflow:<id>" or "stage:<id>"
        extra: Operation-specific details
    """
    context = {"user_id": user_id, "action": action, "resource": resource, "extra": extra}
    logger.log(
        logging.getLevelName(level.upper()),
        message,
        extra={key: value for key, value in context.items() if value}
    )
