"""
Centralized logging configuration for structured JSON logging.
Provides helpers for consistent structured logging across the application.
"""

import asyncio
import json
import logging
import logging.handlers
import sys
import uuid
from datetime import datetime, timezone
from pathlib import Path
from contextvars import ContextVar
from typing import Optional, Dict, Any
import traceback
import functools

# Context variable to store request ID for the current request
_request_id: ContextVar[Optional[str]] = ContextVar('request_id', default=None)

# Context variable to store operation name
_operation: ContextVar[Optional[str]] = ContextVar('operation', default=None)


class StructuredJSONFormatter(logging.Formatter):
    """Custom formatter that outputs structured JSON logs."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        log_data = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "function": record.funcName,
            "line": record.lineno,
        }

        request_id = _request_id.get()
        if request_id:
            log_data["request_id"] = request_id

        operation = _operation.get()
        if operation:
            log_data["operation"] = operation

        if getattr(record, 'event', None):
            log_data["event"] = record.event

        log_data["message"] = record.getMessage()

        if getattr(record, 'context', None):
            log_data["context"] = record.context

        if record.exc_info:
            log_data["exception"] = {
                "type": record.exc_info[0].__name__ if record.exc_info[0] else None,
                "message": str(record.exc_info[1]) if record.exc_info[1] else None,
                "traceback": traceback.format_exception(*record.exc_info)
            }

        return json.dumps(log_data, ensure_ascii=False, default=str)


class HumanReadableFormatter(logging.Formatter):
    """Custom formatter that outputs human-readable unstructured logs."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as human-readable text."""
        timestamp = datetime.fromtimestamp(record.created, tz=timezone.utc).strftime("%Y-%m-%d %H:%M:%S")
        log_lines = [
            f"{timestamp} {record.levelname:8s} [{record.name}] {record.funcName}() - {record.getMessage()}"
        ]

        request_id = _request_id.get()
        if request_id:
            log_lines.append(f"  request_id: {request_id}")

        operation = _operation.get()
        if operation:
            log_lines.append(f"  operation: {operation}")

        event = getattr(record, 'event', None)
        if event:
            log_lines.append(f"  event: {event}")

        context = getattr(record, 'context', None)
        if context:
            if isinstance(context, dict):
                for key, value in context.items():
                    if isinstance(value, (dict, list)):
                        value_str = json.dumps(value, indent=2, ensure_ascii=False, default=str)
                        log_lines.append(f"  {key}:")
                        log_lines.append('\n'.join('    ' + line for line in value_str.split('\n')))
                    else:
                        value_str = str(value)
                        if len(value_str) > 500:
                            value_str = value_str[:500] + "... (truncated)"
                        log_lines.append(f"  {key}: {value_str}")
            else:
                log_lines.append(f"  context: {context}")

        if record.exc_info:
            exc_type, exc_value, exc_traceback = record.exc_info
            log_lines.append(f"  exception_type: {exc_type.__name__ if exc_type else 'Unknown'}")
            log_lines.append(f"  exception_message: {str(exc_value) if exc_value else 'N/A'}")
            if exc_traceback:
                log_lines.append("  traceback:")
                for tb_line in traceback.format_exception(exc_type, exc_value, exc_traceback):
                    for line in tb_line.rstrip().split('\n'):
                        log_lines.append(f"    {line}")

        return '\n'.join(log_lines)


def setup_logging(
    log_level: str = "INFO",
    log_dir: Optional[Path] = None,
    console: bool = True
) -> None:
    """
    Initialize the logging system.

    Writes two rotating files (structured JSON for machines, plain text for
    developers) and, when ``console`` is set, human-readable lines to stderr.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_dir: Directory for log files. If None, uses <backend root>/logs/
        console: Also log to stderr
    """
    if log_dir is None:
        log_dir = Path(__file__).resolve().parent.parent.parent / "logs"
    else:
        log_dir = Path(log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)

    level = getattr(logging, log_level.upper())

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers.clear()

    json_log_file = log_dir / "application.log.json"
    json_file_handler = logging.handlers.TimedRotatingFileHandler(
        filename=str(json_log_file),
        when='midnight',
        interval=1,
        backupCount=30,
        encoding='utf-8'
    )
    json_file_handler.setLevel(level)
    json_file_handler.setFormatter(StructuredJSONFormatter())
    root_logger.addHandler(json_file_handler)

    text_log_file = log_dir / "application.log"
    text_file_handler = logging.handlers.TimedRotatingFileHandler(
        filename=str(text_log_file),
        when='midnight',
        interval=1,
        backupCount=30,
        encoding='utf-8'
    )
    text_file_handler.setLevel(level)
    text_file_handler.setFormatter(HumanReadableFormatter())
    root_logger.addHandler(text_file_handler)

    if console:
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setLevel(level)
        console_handler.setFormatter(HumanReadableFormatter())
        root_logger.addHandler(console_handler)

    log_event(
        level="INFO",
        logger="manualizer.core.logging",
        function="setup_logging",
        operation="logging_setup",
        event="logging_initialized",
        message="Logging system initialized",
        context={
            "log_level": log_level,
            "log_dir": str(log_dir),
            "console": console,
        }
    )


def get_request_id() -> Optional[str]:
    """Get the current request ID from context."""
    return _request_id.get()


def set_request_id(request_id: str) -> None:
    """Set the request ID in context."""
    _request_id.set(request_id)


def generate_request_id() -> str:
    """Generate a unique request ID."""
    return f"req_{uuid.uuid4().hex[:12]}"


def log_event(
    level: str,
    logger: str,
    function: str,
    operation: Optional[str] = None,
    event: Optional[str] = None,
    message: str = "",
    context: Optional[Dict[str, Any]] = None,
    exc_info: Optional[BaseException] = None
) -> None:
    """
    Log a structured event.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        logger: Logger name (usually module path)
        function: Function name where log originated
        operation: High-level operation name
        event: Specific event type
        message: Human-readable message
        context: Operation-specific data
        exc_info: Exception info to include
    """
    logger_instance = logging.getLogger(logger)
    log_method = getattr(logger_instance, level.lower(), logger_instance.info)

    extra = {}
    if event:
        extra['event'] = event
    if context:
        extra['context'] = context

    if operation:
        token = _operation.set(operation)
        try:
            log_method(message, extra=extra, exc_info=exc_info)
        finally:
            _operation.reset(token)
    else:
        log_method(message, extra=extra, exc_info=exc_info)


def log_operation_start(
    logger: str,
    function: str,
    operation: str,
    message: str = "",
    context: Optional[Dict[str, Any]] = None
) -> None:
    """Log the start of an operation."""
    log_event(
        level="INFO",
        logger=logger,
        function=function,
        operation=operation,
        event="operation_start",
        message=message or f"Starting {operation}",
        context=context
    )


def log_operation_complete(
    logger: str,
    function: str,
    operation: str,
    message: str = "",
    context: Optional[Dict[str, Any]] = None,
    duration: Optional[float] = None
) -> None:
    """Log the completion of an operation."""
    context = dict(context or {})
    if duration is not None:
        context["duration_seconds"] = duration

    log_event(
        level="INFO",
        logger=logger,
        function=function,
        operation=operation,
        event="operation_complete",
        message=message or f"Completed {operation}",
        context=context
    )


def log_operation_error(
    logger: str,
    function: str,
    operation: str,
    error: BaseException,
    message: str = "",
    context: Optional[Dict[str, Any]] = None
) -> None:
    """Log an operation error."""
    context = dict(context or {})
    context["error_type"] = type(error).__name__
    context["error_message"] = str(error)

    log_event(
        level="ERROR",
        logger=logger,
        function=function,
        operation=operation,
        event="operation_error",
        message=message or f"Error in {operation}",
        context=context,
        exc_info=error
    )


def operation_logger(operation_name: str):
    """
    Decorator to automatically log operation start/complete/error.

    Works for plain functions and coroutine functions alike.

    Usage:
        @operation_logger("video_analysis")
        async def analyze(...):
            ...
    """
    def decorator(func):
        logger_name = func.__module__
        function_name = func.__name__

        def _start(args, kwargs) -> datetime:
            log_operation_start(
                logger=logger_name,
                function=function_name,
                operation=operation_name,
                context={
                    "args": str(args)[:500] if args else None,
                    "kwargs": {k: str(v)[:200] for k, v in kwargs.items()} if kwargs else None
                }
            )
            return datetime.now(timezone.utc)

        def _complete(started: datetime, result: Any) -> None:
            log_operation_complete(
                logger=logger_name,
                function=function_name,
                operation=operation_name,
                context={"result_type": type(result).__name__},
                duration=(datetime.now(timezone.utc) - started).total_seconds()
            )

        def _error(started: datetime, error: Exception) -> None:
            log_operation_error(
                logger=logger_name,
                function=function_name,
                operation=operation_name,
                error=error,
                context={"duration_seconds": (datetime.now(timezone.utc) - started).total_seconds()}
            )

        if asyncio.iscoroutinefunction(func):
            @functools.wraps(func)
            async def async_wrapper(*args, **kwargs):
                started = _start(args, kwargs)
                try:
                    result = await func(*args, **kwargs)
                except Exception as e:
                    _error(started, e)
                    raise
                _complete(started, result)
                return result
            return async_wrapper

        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            started = _start(args, kwargs)
            try:
                result = func(*args, **kwargs)
            except Exception as e:
                _error(started, e)
                raise
            _complete(started, result)
            return result

        return wrapper
    return decorator
