"""Structured JSON logging with secret redaction.

Every record is emitted as one JSON object carrying the service name,
environment and the current request id, so edge logs can be joined with the
``X-Request-ID`` header a caller saw.
"""

import logging
import re
import sys
import traceback
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from pythonjsonlogger import jsonlogger

from .config import settings

# Context variables for request tracking
request_id_var: ContextVar[Optional[str]] = ContextVar('request_id', default=None)
account_id_var: ContextVar[Optional[str]] = ContextVar('account_id', default=None)


class SecuritySanitizer:
    """Sanitize sensitive information from logs."""

    SENSITIVE_PATTERNS = {
        'api_key': re.compile(r'(eog_[a-z0-9]+_)([A-Za-z0-9_-]{8,})'),
        'bearer_token': re.compile(r'(bearer\s+)([a-zA-Z0-9_.-]{20,})', re.IGNORECASE),
        'secret': re.compile(r'(secret["\s:=]+["\']?)([a-zA-Z0-9_.-]{8,})', re.IGNORECASE),
        'jwt': re.compile(r'()(eyJ[a-zA-Z0-9_-]+\.[a-zA-Z0-9_-]+\.[a-zA-Z0-9_-]*)'),
        'email': re.compile(r'()\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}\b'),
    }

    SENSITIVE_KEYS = ('password', 'secret', 'token', 'authorization', 'cookie', 'api_key')

    @classmethod
    def sanitize_string(cls, text: str) -> str:
        """Sanitize a string by redacting sensitive information."""
        if not isinstance(text, str):
            return str(text)

        sanitized = text
        for pattern in cls.SENSITIVE_PATTERNS.values():
            sanitized = pattern.sub(r'\1***REDACTED***', sanitized)
        return sanitized

    @classmethod
    def sanitize_dict(cls, data: Dict[str, Any], max_depth: int = 3) -> Dict[str, Any]:
        """Recursively sanitize a dictionary."""
        if max_depth <= 0:
            return {"...": "max_depth_reached"}

        sanitized: Dict[str, Any] = {}
        for key, value in data.items():
            key_lower = key.lower()
            if any(sensitive in key_lower for sensitive in cls.SENSITIVE_KEYS):
                sanitized[key] = "***REDACTED***"
            elif isinstance(value, dict):
                sanitized[key] = cls.sanitize_dict(value, max_depth - 1)
            elif isinstance(value, list):
                sanitized[key] = cls.sanitize_list(value, max_depth - 1)
            elif isinstance(value, str):
                sanitized[key] = cls.sanitize_string(value)
            else:
                sanitized[key] = value
        return sanitized

    @classmethod
    def sanitize_list(cls, data: List[Any], max_depth: int = 3) -> List[Any]:
        """Sanitize a list by sanitizing its elements."""
        if max_depth <= 0:
            return ["...max_depth_reached"]

        sanitized: List[Any] = []
        for item in data[:10]:  # Limit list length in logs
            if isinstance(item, dict):
                sanitized.append(cls.sanitize_dict(item, max_depth - 1))
            elif isinstance(item, list):
                sanitized.append(cls.sanitize_list(item, max_depth - 1))
            elif isinstance(item, str):
                sanitized.append(cls.sanitize_string(item))
            else:
                sanitized.append(item)

        if len(data) > 10:
            sanitized.append(f"...and {len(data) - 10} more items")
        return sanitized


class StructuredFormatter(jsonlogger.JsonFormatter):
    """Custom JSON formatter for structured logging."""

    def add_fields(self, log_record: Dict[str, Any], record: logging.LogRecord, message_dict: Dict[str, Any]):
        super().add_fields(log_record, record, message_dict)

        log_record['timestamp'] = datetime.now(timezone.utc).isoformat()
        log_record['level'] = record.levelname
        log_record['logger'] = record.name
        log_record['service'] = settings.service_name
        log_record['environment'] = settings.service_env

        if request_id := request_id_var.get():
            log_record.setdefault('request_id', request_id)

        if account_id := account_id_var.get():
            log_record.setdefault('account_id', account_id)

        if record.exc_info and record.exc_info[0] is not None:
            exception_info = {
                'type': record.exc_info[0].__name__,
                'message': SecuritySanitizer.sanitize_string(str(record.exc_info[1])),
            }
            # Tracebacks stay out of production logs
            if not settings.is_production:
                exception_info['traceback'] = traceback.format_exception(*record.exc_info)
            log_record['exception'] = exception_info
            log_record.pop('exc_info', None)


class StructuredLogger:
    """Structured logger that takes keyword fields instead of ``extra=``."""

    def __init__(self, name: str):
        self.logger = logging.getLogger(name)

    def _prepare(self, message: str, kwargs: Dict[str, Any]):
        if settings.is_production:
            message = SecuritySanitizer.sanitize_string(message)
            kwargs = SecuritySanitizer.sanitize_dict(kwargs)
        return message, kwargs

    def info(self, message: str, **kwargs):
        message, kwargs = self._prepare(message, kwargs)
        self.logger.info(message, extra=kwargs)

    def warning(self, message: str, **kwargs):
        message, kwargs = self._prepare(message, kwargs)
        self.logger.warning(message, extra=kwargs)

    def error(self, message: str, **kwargs):
        message, kwargs = self._prepare(message, kwargs)
        self.logger.error(message, extra=kwargs)

    def debug(self, message: str, **kwargs):
        message, kwargs = self._prepare(message, kwargs)
        self.logger.debug(message, extra=kwargs)

    def exception(self, message: str, **kwargs):
        message, kwargs = self._prepare(message, kwargs)
        self.logger.exception(message, extra=kwargs)

    def security_event(self, event_type: str, message: str, severity: str = "warning", **kwargs):
        """Log security-related events (auth failures, ownership violations)."""
        kwargs.update({
            'security_event': True,
            'event_type': event_type,
            'severity': severity,
        })
        message, kwargs = self._prepare(f"SECURITY: {message}", kwargs)
        if severity.lower() in ["critical", "high"]:
            self.logger.error(message, extra=kwargs)
        else:
            self.logger.warning(message, extra=kwargs)

    def audit_event(self, action: str, resource: str, result: str, **kwargs):
        """Log operator actions such as usage resets."""
        kwargs.update({
            'audit_event': True,
            'action': action,
            'resource': resource,
            'result': result,
        })
        message, kwargs = self._prepare(f"AUDIT: {action} on {resource} -> {result}", kwargs)
        self.logger.info(message, extra=kwargs)


class LoggerFactory:
    """Factory for creating structured loggers."""

    _loggers: Dict[str, StructuredLogger] = {}

    @classmethod
    def get_logger(cls, name: str) -> StructuredLogger:
        if name not in cls._loggers:
            cls._loggers[name] = StructuredLogger(name)
        return cls._loggers[name]


def setup_logging(level: str = "INFO") -> None:
    """Install the JSON formatter on the root logger."""
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(StructuredFormatter('%(timestamp)s %(level)s %(name)s %(message)s'))

    root = logging.getLogger()
    for existing in list(root.handlers):
        if isinstance(existing.formatter, StructuredFormatter):
            root.removeHandler(existing)
    root.addHandler(handler)
    root.setLevel(getattr(logging, level.upper(), logging.INFO))


def log_event(logger: StructuredLogger, event: str, level: str = "info", **kwargs):
    """Log a named domain event (``quota_usage``, ``svg_fallback`` ...)."""
    log = getattr(logger, level)
    log(event, event=event, **kwargs)


def log_performance_metric(logger: StructuredLogger, metric: str, value: float, unit: str = "ms", **kwargs):
    """Log performance metric."""
    logger.info(
        f"Performance: {metric} = {value}{unit}",
        metric_name=metric,
        metric_value=value,
        metric_unit=unit,
        event_type="performance",
        **kwargs
    )
