"""Centralized logging configuration for cobot."""

import json
import logging
import logging.handlers
import re
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional, Union


class SensitiveDataFilter(logging.Filter):
    """Filter to redact credentials from logs."""

    # key=value style secrets
    API_KEY_PATTERN = re.compile(
        r'(api[_-]?key|token|secret|password|credential)["\']?\s*[:=]\s*["\']?([^"\'\s]+)',
        re.IGNORECASE
    )
    # Bot tokens look like "<digits>:<35 url-safe characters>"
    BOT_TOKEN_PATTERN = re.compile(r'\b\d{6,12}:[A-Za-z0-9_-]{30,}\b')

    def filter(self, record: logging.LogRecord) -> bool:
        """Filter and redact sensitive information from log records."""
        if hasattr(record, 'msg'):
            record.msg = self._redact_message(str(record.msg))

        if hasattr(record, 'args') and record.args:
            if isinstance(record.args, dict):
                record.args = {k: self._redact_message(str(v)) for k, v in record.args.items()}
            elif isinstance(record.args, (list, tuple)):
                record.args = tuple(self._redact_message(str(arg)) for arg in record.args)

        return True

    def _redact_message(self, message: str) -> str:
        message = self.API_KEY_PATTERN.sub(r'\1=***REDACTED***', message)
        return self.BOT_TOKEN_PATTERN.sub('***REDACTED***', message)


class JSONFormatter(logging.Formatter):
    """JSON-lines formatter for log files."""

    def format(self, record: logging.LogRecord) -> str:
        log_obj = {
            'timestamp': datetime.now(timezone.utc).isoformat().replace('+00:00', 'Z'),
            'level': record.levelname,
            'logger': record.name,
            'module': record.module,
            'function': record.funcName,
            'line': record.lineno,
            'message': record.getMessage(),
        }

        if hasattr(record, 'extra_fields'):
            log_obj.update(record.extra_fields)

        if record.exc_info:
            log_obj['exception'] = self.formatException(record.exc_info)

        if hasattr(record, 'operation'):
            log_obj['operation'] = record.operation

        return json.dumps(log_obj, ensure_ascii=False, default=str)


class ConsoleFormatter(logging.Formatter):
    """Colored console formatter."""

    COLORS = {
        'DEBUG': '\033[36m',    # Cyan
        'INFO': '\033[32m',     # Green
        'WARNING': '\033[33m',  # Yellow
        'ERROR': '\033[31m',    # Red
        'CRITICAL': '\033[35m', # Magenta
    }
    RESET = '\033[0m'

    def format(self, record: logging.LogRecord) -> str:
        if not sys.stderr.isatty():
            return super().format(record)

        # Color a copy so other handlers see the plain level name
        record = logging.makeLogRecord(record.__dict__)
        levelname = record.levelname
        if levelname in self.COLORS:
            record.levelname = f"{self.COLORS[levelname]}{levelname}{self.RESET}"
        return super().format(record)


def setup_logging(
    name: str = 'cobot',
    level: str = 'INFO',
    log_file: Optional[Union[str, Path]] = None,
    console: bool = True,
    json_format: bool = True,
    redact_sensitive: bool = True,
    console_level: Optional[str] = None
) -> logging.Logger:
    """
    Setup centralized logging configuration.

    Args:
        name: Logger name
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Log file path; no file handler when None
        console: Enable console output on stderr
        json_format: Use JSON lines for the log file
        redact_sensitive: Redact credentials from log messages
        console_level: Level of the console handler (default: ``level``)

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(name)
    console_level = console_level or level
    logger.setLevel(min(getattr(logging, level.upper()), getattr(logging, console_level.upper())))
    logger.handlers.clear()
    logger.propagate = False

    if console:
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setLevel(getattr(logging, console_level.upper()))

        if sys.stderr.isatty():
            console_formatter = ConsoleFormatter(
                '%(asctime)s - %(levelname)s - [%(module)s:%(lineno)d] - %(message)s',
                datefmt='%Y-%m-%d %H:%M:%S'
            )
        else:
            console_formatter = logging.Formatter(
                '%(asctime)s - %(levelname)s - [%(module)s] - %(message)s',
                datefmt='%Y-%m-%d %H:%M:%S'
            )
        console_handler.setFormatter(console_formatter)
        if redact_sensitive:
            console_handler.addFilter(SensitiveDataFilter())
        logger.addHandler(console_handler)

    if log_file is not None:
        log_file = Path(log_file)
        log_file.parent.mkdir(parents=True, exist_ok=True)

        file_handler = logging.handlers.RotatingFileHandler(
            log_file,
            maxBytes=10 * 1024 * 1024,  # 10MB
            backupCount=5,
            encoding='utf-8'
        )
        if json_format:
            file_handler.setFormatter(JSONFormatter())
        else:
            file_handler.setFormatter(
                logging.Formatter(
                    '%(asctime)s - %(levelname)s - [%(module)s:%(lineno)d] - %(message)s',
                    datefmt='%Y-%m-%d %H:%M:%S'
                )
            )
        file_handler.setLevel(getattr(logging, level.upper()))
        if redact_sensitive:
            # Handler filters also see records propagated from child loggers
            file_handler.addFilter(SensitiveDataFilter())
        logger.addHandler(file_handler)

    return logger


def log_operation(logger: logging.Logger, operation: str, **context) -> None:
    """
    Log an operation with context.

    Args:
        logger: Logger instance
        operation: Operation name
        **context: Additional context written as extra JSON fields
    """
    logger.info(f"Starting operation: {operation}", extra={'operation': operation, 'extra_fields': context})
