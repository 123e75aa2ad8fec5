"""
Logging Utility for the Tutor Backend

Provides readable, structured console logging with:
- Color-coded log levels
- Per-component icons for the tutor loggers
- Section separators for session lifecycle
- Pretty printing for request/event payloads
"""

import logging
import sys
from datetime import datetime
from typing import Any, Dict, Optional


class Colors:
    """ANSI color codes for terminal output."""
    RESET = '\033[0m'
    BOLD = '\033[1m'

    DEBUG = '\033[36m'      # Cyan
    INFO = '\033[32m'       # Green
    WARNING = '\033[33m'    # Yellow
    ERROR = '\033[31m'      # Red
    CRITICAL = '\033[35m'   # Magenta

    SECTION = '\033[94m'    # Bright Blue
    KEY = '\033[93m'        # Bright Yellow
    TIMESTAMP = '\033[90m'  # Dark Gray


class ColoredFormatter(logging.Formatter):
    """Formatter with level colors and component icons."""

    LEVEL_ICONS = {
        'DEBUG': '🔍',
        'INFO': 'ℹ️',
        'WARNING': '⚠️',
        'ERROR': '❌',
        'CRITICAL': '🚨',
    }

    # Keyed by the last part of the logger name
    COMPONENT_ICONS = {
        'tutor_controller': '🎬',
        'attempt_lifecycle': '🛡️',
        'season_progress': '📚',
        'progress_store': '💾',
        'scoring_engine': '🎯',
        'voice_intent': '🗣️',
        'speech_services': '🎙️',
        'line_generator': '💬',
        'curriculum': '📖',
        'main': '🌐',
    }

    LEVEL_COLORS = {
        'DEBUG': Colors.DEBUG,
        'INFO': Colors.INFO,
        'WARNING': Colors.WARNING,
        'ERROR': Colors.ERROR,
        'CRITICAL': Colors.CRITICAL,
    }

    def __init__(self, use_colors: bool = True):
        super().__init__()
        self.use_colors = use_colors and sys.stdout.isatty()

    def format(self, record: logging.LogRecord) -> str:
        icon = self.COMPONENT_ICONS.get(record.name.split('.')[-1], self.LEVEL_ICONS.get(record.levelname, '•'))
        timestamp = datetime.fromtimestamp(record.created).strftime('%H:%M:%S.%f')[:-3]

        if self.use_colors:
            level_color = self.LEVEL_COLORS.get(record.levelname, Colors.RESET)
            reset, bold, dim = Colors.RESET, Colors.BOLD, Colors.TIMESTAMP
        else:
            level_color = reset = bold = dim = ''

        formatted = (
            f"{dim}[{timestamp}]{reset} "
            f"{icon} {level_color}{record.levelname:8s}{reset} "
            f"{bold}{record.name}{reset} | {record.getMessage()}"
        )

        data = getattr(record, "data", None)
        if data:
            formatted += "\n" + format_data(data)

        if record.exc_info:
            formatted += f"\n{self.formatException(record.exc_info)}"

        return formatted


def format_data(data: Any, indent: int = 2) -> str:
    """Render nested dicts and lists one key per line, truncating long lists."""
    pad = ' ' * indent
    if isinstance(data, dict):
        lines = [f"{pad}{key}: {format_data(value, indent + 2).lstrip()}" for key, value in data.items()]
        return "\n".join(lines)
    if isinstance(data, list):
        shown = data[:5]
        lines = [f"{pad}- {format_data(item, indent + 2).lstrip()}" for item in shown]
        if len(data) > len(shown):
            lines.append(f"{pad}... ({len(data)} items total)")
        return "\n".join(lines)
    return f"{pad}{data}"


class StructuredLogger:
    """Logger wrapper with sections and optional payloads."""

    def __init__(self, name: str, logger: Optional[logging.Logger] = None):
        self.name = name
        self.logger = logger or logging.getLogger(name)

    def section(self, title: str, data: Optional[Dict[str, Any]] = None):
        """Log a visually separated section header."""
        separator = "=" * 80
        body = f"\n{separator}\n📋 {title.upper()}"
        if data:
            body += "\n" + format_data(data)
        body += f"\n{separator}"
        self.logger.info(body)

    def debug(self, message: str, data: Optional[Dict[str, Any]] = None):
        self.logger.debug(message, extra={"data": data})

    def info(self, message: str, data: Optional[Dict[str, Any]] = None):
        self.logger.info(message, extra={"data": data})

    def warning(self, message: str, data: Optional[Dict[str, Any]] = None):
        self.logger.warning(message, extra={"data": data})

    def error(self, message: str, error: Optional[Exception] = None, data: Optional[Dict[str, Any]] = None):
        """Log error message with exception and optional data."""
        error_info = f" Error: {type(error).__name__}: {error}" if error else ""
        self.logger.error(f"{message}{error_info}", exc_info=error, extra={"data": data})

    def success(self, message: str, data: Optional[Dict[str, Any]] = None):
        self.logger.info(f"✅ {message}", extra={"data": data})

    def request(self, method: str, path: str, data: Optional[Dict[str, Any]] = None):
        """Log an incoming API command."""
        self.logger.info(f"📥 REQUEST: {method} {path}", extra={"data": data})


def setup_logging(level: int = logging.INFO, use_colors: bool = True):
    """Install the colored console handler on the root logger."""
    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)
    console_handler.setFormatter(ColoredFormatter(use_colors=use_colors))

    root_logger.setLevel(level)
    root_logger.addHandler(console_handler)

    # Suppress noisy loggers
    for noisy in ('asyncio', 'httpx', 'httpcore', 'openai', 'hpack'):
        logging.getLogger(noisy).setLevel(logging.WARNING)

    return root_logger


def get_logger(name: str) -> StructuredLogger:
    """Get a structured logger instance."""
    return StructuredLogger(name, logging.getLogger(name))
