"""
Logging Setup - Centralized logging configuration

Log records carry ids, counts and slot names only; conversation content is
never written to any handler.
"""

import logging
import sys
from pathlib import Path
from typing import Optional

from ..config.models import LogLevel


class UTF8StreamHandler(logging.StreamHandler):
    """
    StreamHandler that writes UTF-8 encoded bytes when the stream exposes a
    binary buffer (sys.stdout / sys.stderr), regardless of the locale.
    """

    def emit(self, record):
        try:
            msg = self.format(record)
            stream = self.stream
            if hasattr(stream, 'buffer'):
                stream.buffer.write(msg.encode('utf-8'))
                stream.buffer.write(self.terminator.encode('utf-8'))
                stream.buffer.flush()
            else:
                stream.write(msg + self.terminator)
                stream.flush()
        except Exception:
            self.handleError(record)


def setup_logging(
    level: LogLevel = LogLevel.INFO,
    log_file: Optional[Path] = None,
    enable_console: bool = True
) -> None:
    """
    Set up logging for the analysis engine.

    Args:
        level: Logging level
        log_file: Optional log file path
        enable_console: Whether to enable console logging (stderr, so CLI JSON
            on stdout stays clean)
    """
    logger = logging.getLogger()
    logger.setLevel(LogLevel(level).value)
    logger.handlers.clear()

    formatter = logging.Formatter(
        "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )

    if enable_console:
        console_handler = UTF8StreamHandler(sys.stderr)
        console_handler.setFormatter(formatter)
        logger.addHandler(console_handler)

    if log_file:
        log_file = Path(log_file)
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, encoding='utf-8')
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    # Provider SDKs log request bodies at DEBUG
    for noisy in ("httpx", "httpcore", "openai", "anthropic"):
        logging.getLogger(noisy).setLevel(max(logging.WARNING, logger.level))

