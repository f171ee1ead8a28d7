"""
Structured Logging Configuration
JSON log lines tagged with the request and tenant they belong to
"""
import asyncio
import json
import logging
import logging.config
import sys
import time
import uuid
from contextvars import ContextVar
from datetime import datetime, timezone
from functools import wraps
from typing import Any, Dict, Optional

# Correlation for every record written while a request or poll is running
request_id_var: ContextVar[Optional[str]] = ContextVar('request_id', default=None)
tenant_id_var: ContextVar[Optional[str]] = ContextVar('tenant_id', default=None)

SLOW_OPERATION_MS = 1000

_STANDARD_RECORD_ATTRS = frozenset(vars(logging.LogRecord("", 0, "", 0, "", (), None))) | {"message", "asctime"}


class EnhancedStructuredFormatter(logging.Formatter):
    """One JSON object per record, shaped for Cloud Logging ingestion"""

    def __init__(self, service: str = "optima-orders"):
        super().__init__()
        self.service = service

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "severity": record.levelname,
            "service": self.service,
            "logger": record.name,
            "message": record.getMessage(),
            "location": f"{record.module}:{record.funcName}:{record.lineno}",
        }

        for key, var in (("request_id", request_id_var), ("tenant_id", tenant_id_var)):
            value = var.get()
            if value:
                entry[key] = value

        context = {key: value for key, value in vars(record).items() if key not in _STANDARD_RECORD_ATTRS}
        # Explicit tenant on the record wins over the ambient one
        if "tenant_id" in context:
            entry["tenant_id"] = context.pop("tenant_id")
        if "duration" in context:
            duration = context.pop("duration")
            entry["performance"] = {"duration_ms": duration, "slow": duration > SLOW_OPERATION_MS}
        if context:
            entry["context"] = context

        if record.exc_info and record.exc_info[0] is not None:
            entry["exception"] = {
                "type": record.exc_info[0].__name__,
                "message": str(record.exc_info[1]),
                "traceback": self.formatException(record.exc_info),
            }

        return json.dumps(entry, default=str)


def setup_enhanced_logging(log_level: str = "INFO", enable_debug: bool = False,
                           service: str = "optima-orders") -> None:
    """
    Configure the root and package loggers.

    Args:
        log_level: Level for the application loggers
        enable_debug: Plain text lines instead of JSON, and DEBUG for app.* packages
        service: Service name stamped on every JSON record
    """
    plain = enable_debug or log_level == "DEBUG"
    app_level = "DEBUG" if plain else log_level

    def quiet(level: str) -> Dict[str, Any]:
        return {"level": level, "handlers": ["console"], "propagate": False}

    logging.config.dictConfig({
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "json": {"()": EnhancedStructuredFormatter, "service": service},
            "plain": {
                "format": "%(asctime)s %(levelname)-8s [%(name)s] %(message)s (%(module)s:%(lineno)d)"
            },
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "level": app_level,
                "formatter": "plain" if plain else "json",
                "stream": sys.stdout,
            }
        },
        "root": {"level": log_level, "handlers": ["console"]},
        "loggers": {
            "app": quiet(app_level),
            "uvicorn": quiet("INFO"),
            "uvicorn.access": quiet("INFO" if plain else "WARNING"),
            "google.cloud": quiet("WARNING"),
            "httpx": quiet("WARNING"),
        },
    })
    logging.getLogger(__name__).info(f"Logging configured - level: {log_level}, plain: {plain}")


def get_logger(name: str) -> logging.Logger:
    """Get a logger instance with the specified name"""
    return logging.getLogger(name)


def set_request_context(request_id: Optional[str] = None, tenant_id: Optional[str] = None) -> None:
    if request_id:
        request_id_var.set(request_id)
    if tenant_id:
        tenant_id_var.set(tenant_id)


def clear_request_context() -> None:
    request_id_var.set(None)
    tenant_id_var.set(None)


def generate_request_id() -> str:
    return uuid.uuid4().hex


class EnhancedLoggerMixin:
    """
    Logging helpers for services and repositories.

    Keyword context passed to the helpers lands in the record's ``context``
    object; ``tenant_id`` is lifted to the top level.
    """

    @property
    def logger(self) -> logging.Logger:
        return get_logger(f"{self.__class__.__module__}.{self.__class__.__name__}")

    def log_operation(self, operation: str, level: str = "INFO", **kwargs) -> None:
        """Log a named operation with context"""
        self.logger.log(
            getattr(logging, level.upper(), logging.INFO),
            f"Operation: {operation}",
            extra={"operation": operation, **kwargs},
        )

    def log_error(self, error: Exception, operation: Optional[str] = None, level: str = "ERROR", **kwargs) -> None:
        """
        Log a failed operation.

        Args:
            error: Exception that occurred
            operation: Operation that failed
            level: Log level name; expected failures are logged as WARNING
            **kwargs: Additional context
        """
        extra = {"operation": operation or "unknown", **kwargs,
                 "error_type": type(error).__name__, "error_message": str(error)}
        log_level = getattr(logging, level.upper(), logging.ERROR)
        self.logger.log(
            log_level,
            f"Error in {operation or 'operation'}: {error}",
            exc_info=error if log_level >= logging.ERROR else None,
            extra=extra,
        )

    def log_performance(self, operation: str, duration_ms: float, **kwargs) -> None:
        level = logging.WARNING if duration_ms > SLOW_OPERATION_MS else logging.DEBUG
        self.logger.log(level, f"Performance: {operation} took {duration_ms:.2f}ms",
                        extra={"operation": operation, "duration": duration_ms, **kwargs})


def log_function_call(include_args: bool = False):
    """
    Decorator timing sync and async callables.

    Slow calls are logged as WARNING, failures as ERROR before re-raising.
    """
    def decorator(func):
        operation = f"{func.__module__}.{func.__qualname__}"

        def finish(start: float, args, kwargs, error: Optional[Exception] = None) -> None:
            duration_ms = (time.perf_counter() - start) * 1000
            extra: Dict[str, Any] = {"operation": operation, "duration": duration_ms}
            if include_args:
                extra["call_args"] = repr(args)
                extra["call_kwargs"] = repr(kwargs)
            logger = get_logger(func.__module__)
            if error is not None:
                extra["error_type"] = type(error).__name__
                logger.error(f"{func.__qualname__} failed after {duration_ms:.2f}ms: {error}", extra=extra)
                return
            level = logging.WARNING if duration_ms > SLOW_OPERATION_MS else logging.DEBUG
            logger.log(level, f"{func.__qualname__} completed in {duration_ms:.2f}ms", extra=extra)

        if asyncio.iscoroutinefunction(func):
            @wraps(func)
            async def async_wrapper(*args, **kwargs):
                start = time.perf_counter()
                try:
                    result = await func(*args, **kwargs)
                except Exception as e:
                    finish(start, args, kwargs, e)
                    raise
                finish(start, args, kwargs)
                return result
            return async_wrapper

        @wraps(func)
        def sync_wrapper(*args, **kwargs):
            start = time.perf_counter()
            try:
                result = func(*args, **kwargs)
            except Exception as e:
                finish(start, args, kwargs, e)
                raise
            finish(start, args, kwargs)
            return result
        return sync_wrapper

    return decorator
