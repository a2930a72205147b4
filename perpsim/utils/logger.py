"""
Logging system for the perpetual simulator.
Provides structured, human-readable logs with console and optional file output.

Library modules log through logging.getLogger(__name__), which places them
under the "perpsim" namespace. Nothing is configured at import time: call
setup_logger() (the CLI does) to attach handlers.
"""

import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Optional

ROOT_LOGGER_NAME = "perpsim"


# ANSI color codes for terminal output
class Colors:
    RESET = "\033[0m"
    RED = "\033[91m"
    GREEN = "\033[92m"
    YELLOW = "\033[93m"
    CYAN = "\033[96m"
    WHITE = "\033[97m"
    BOLD = "\033[1m"


class ColoredFormatter(logging.Formatter):
    """Custom formatter with colors for console output."""

    LEVEL_COLORS = {
        logging.DEBUG: Colors.CYAN,
        logging.INFO: Colors.GREEN,
        logging.WARNING: Colors.YELLOW,
        logging.ERROR: Colors.RED,
        logging.CRITICAL: Colors.BOLD + Colors.RED,
    }

    def format(self, record):
        # Color a copy so file handlers sharing the record stay plain
        record = logging.makeLogRecord(record.__dict__)
        color = self.LEVEL_COLORS.get(record.levelno, Colors.WHITE)
        record.levelname = f"{color}{record.levelname}{Colors.RESET}"
        return super().format(record)


def format_trade_event(action: str, **fields: Any) -> str:
    """
    Build a structured trade log line.

    Args:
        action: POSITION_OPENED, POSITION_CLOSED, LIQUIDATED, FUNDING_SETTLED, ...
        **fields: Key/value context. Floats are rendered with 4 decimals.

    Example:
        >>> format_trade_event("POSITION_OPENED", side="long", notional=300.0)
        '[POSITION_OPENED] | side=long | notional=300.0000'
    """
    parts = [f"[{action}]"]
    for key, value in fields.items():
        if isinstance(value, float):
            parts.append(f"{key}={value:.4f}")
        else:
            parts.append(f"{key}={value}")
    return " | ".join(parts)


def format_risk_event(action: str, reason: str, **fields: Any) -> str:
    """
    Build a structured risk log line.

    Args:
        action: ALLOWED, BLOCKED, WARNING
        reason: Reason code for the action
        **fields: Additional context
    """
    parts = [f"[RISK:{action}]", reason]
    for key, value in fields.items():
        parts.append(f"{key}={value}")
    return " | ".join(parts)


class SimLogger:
    """
    Central logging setup for the simulator.

    Features:
    - Console output with colors
    - Optional dated log files (general, trades, errors)
    - Trade events are mirrored to the trades log
    """

    def __init__(self, log_dir: Optional[str] = "logs", log_level: str = "INFO"):
        self.log_dir = Path(log_dir) if log_dir else None
        if self.log_dir is not None:
            self.log_dir.mkdir(parents=True, exist_ok=True)

        self.main_logger = self._create_logger(ROOT_LOGGER_NAME, log_level, "perpsim", console=True)
        self.trade_logger = self._create_logger(f"{ROOT_LOGGER_NAME}.trades", log_level, "trades")

        # Errors from any perpsim module also land in a dedicated file
        if self.log_dir is not None:
            self.main_logger.addHandler(self._file_handler("errors", logging.ERROR))

    def _create_logger(
        self,
        name: str,
        level: str,
        file_prefix: str,
        console: bool = False,
    ) -> logging.Logger:
        """Create a configured logger instance."""
        logger = logging.getLogger(name)
        logger.setLevel(getattr(logging, level.upper()))
        logger.handlers.clear()

        if console:
            console_handler = logging.StreamHandler()
            console_handler.setFormatter(ColoredFormatter(
                "%(asctime)s | %(levelname)s | %(message)s",
                datefmt="%H:%M:%S"
            ))
            logger.addHandler(console_handler)

        if self.log_dir is not None:
            logger.addHandler(self._file_handler(file_prefix))

        return logger

    def _file_handler(self, file_prefix: str, level: int = logging.NOTSET) -> logging.FileHandler:
        """Dated plain-text file handler (no colors)."""
        log_file = self.log_dir / f"{file_prefix}_{datetime.now().strftime('%Y%m%d')}.log"
        handler = logging.FileHandler(log_file, encoding="utf-8")
        handler.setLevel(level)
        handler.setFormatter(logging.Formatter(
            "%(asctime)s | %(levelname)s | %(name)s | %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S"
        ))
        return handler

    def info(self, msg: str, *args, **kwargs):
        """Log info message."""
        self.main_logger.info(msg, *args, **kwargs)

    def error(self, msg: str, *args, **kwargs):
        """Log error message."""
        self.main_logger.error(msg, *args, **kwargs)


# Global logger instance
_logger: Optional[SimLogger] = None


def get_logger(log_dir: Optional[str] = "logs", log_level: str = "INFO") -> SimLogger:
    """Get or create the global logger instance."""
    global _logger
    if _logger is None:
        _logger = SimLogger(log_dir, log_level)
    return _logger


def setup_logger(log_dir: Optional[str] = "logs", log_level: str = "INFO") -> SimLogger:
    """Initialize the logger with custom settings (replaces any previous setup)."""
    global _logger
    _logger = SimLogger(log_dir, log_level)
    return _logger
