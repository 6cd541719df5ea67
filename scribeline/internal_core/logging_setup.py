from __future__ import annotations

import logging
from datetime import datetime
from logging.handlers import RotatingFileHandler
from pathlib import Path

from .config import ServiceConfig

_FORMAT = "[%(asctime)s] [%(name)s] %(message)s"


def _build_file_handler(log_path: Path) -> RotatingFileHandler:
    file_handler = RotatingFileHandler(str(log_path), maxBytes=5_000_000, backupCount=3)
    file_handler.setFormatter(logging.Formatter(_FORMAT, "%H:%M:%S"))
    file_handler.setLevel(logging.DEBUG)
    file_handler.name = "scribeline_file"
    return file_handler


def _build_stream_handler(level: int) -> logging.StreamHandler:
    stream_handler = logging.StreamHandler()
    stream_handler.setFormatter(logging.Formatter(_FORMAT, "%H:%M:%S"))
    stream_handler.setLevel(level)
    stream_handler.name = "scribeline_stream"
    return stream_handler


def _replace_handlers(logger: logging.Logger, handlers: list[logging.Handler]) -> None:
    logger.handlers = []
    for handler in handlers:
        logger.addHandler(handler)
    logger.propagate = False


def configure_logging(config: ServiceConfig) -> str:
    level = logging.getLevelName(config.SCRIBE_LOG_LEVEL.strip().upper() or "INFO")
    if not isinstance(level, int):
        level = logging.INFO

    logs_dir = Path(config.SCRIBE_LOG_DIR).expanduser()
    logs_dir.mkdir(parents=True, exist_ok=True)
    timestamp = datetime.now().strftime("%Y-%m-%d_%H-%M-%S")
    log_path = logs_dir / f"server_{timestamp}.log"

    file_handler = _build_file_handler(log_path)
    stream_handler = _build_stream_handler(level)

    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)
    _replace_handlers(root_logger, [file_handler, stream_handler])

    for name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
        uv_logger = logging.getLogger(name)
        uv_logger.setLevel(logging.INFO)
        _replace_handlers(uv_logger, [file_handler, stream_handler])

    root_logger.info("Logging initialized: %s", log_path)
    return str(log_path)
