"""Logging configuration for the kubeops package."""
import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Dict, MutableMapping, Optional, Tuple

from .config import LoggingSettings

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
DATE_FORMAT = '%Y-%m-%d %H:%M:%S'


def setup_logging(debug: bool = False, settings: Optional[LoggingSettings] = None) -> logging.Logger:
    """Configure the ``kubeops`` logger tree.

    Args:
        debug: Force DEBUG level and keep library loggers verbose
        settings: Logging section of the application settings

    Returns:
        The root ``kubeops`` logger
    """
    settings = settings or LoggingSettings()
    level = logging.DEBUG if debug else getattr(logging, settings.level.upper(), logging.INFO)

    logger = logging.getLogger("kubeops")
    logger.setLevel(level)

    # Don't add handlers if they're already configured
    if not logger.handlers:
        formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)

        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(formatter)
        logger.addHandler(handler)

        if settings.file:
            log_file = Path(settings.file).expanduser().absolute()
            log_file.parent.mkdir(parents=True, exist_ok=True)
            file_handler = RotatingFileHandler(
                filename=log_file,
                maxBytes=settings.max_size_mb * 1024 * 1024,
                backupCount=settings.backup_count,
            )
            file_handler.setFormatter(formatter)
            logger.addHandler(file_handler)

    # Disable debug logging for noisy libraries
    if not debug:
        logging.getLogger('paramiko').setLevel(logging.WARNING)

    return logger


class ContextLogger(logging.LoggerAdapter):
    """Logger adapter that prefixes messages with the module/task/host it is bound to."""

    def __init__(self, logger: logging.Logger, extra: Optional[Dict[str, str]] = None):
        super().__init__(logger, dict(extra or {}))

    def bind(self, **context: str) -> "ContextLogger":
        merged = dict(self.extra)
        merged.update({k: v for k, v in context.items() if v})
        return ContextLogger(self.logger, merged)

    def process(self, msg: Any, kwargs: MutableMapping[str, Any]) -> Tuple[Any, MutableMapping[str, Any]]:
        tags = [self.extra[k] for k in ("module", "task", "host") if self.extra.get(k)]
        if tags:
            msg = f"[{'/'.join(tags)}] {msg}"
        return msg, kwargs


def get_logger(name: str, **context: str) -> ContextLogger:
    return ContextLogger(logging.getLogger(name), context)
