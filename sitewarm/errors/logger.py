"""Structured failure logging."""

import json
import logging
import logging.handlers
import sys
import traceback
import uuid
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

from sitewarm.config import Settings, get_settings


class ErrorSeverity(Enum):
    """Error severity levels."""

    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"

    def to_log_level(self) -> int:
        """Convert severity to Python logging level."""
        mapping = {
            ErrorSeverity.DEBUG: logging.DEBUG,
            ErrorSeverity.INFO: logging.INFO,
            ErrorSeverity.WARNING: logging.WARNING,
            ErrorSeverity.ERROR: logging.ERROR,
            ErrorSeverity.CRITICAL: logging.CRITICAL,
        }
        return mapping[self]


class ErrorCategory(Enum):
    """Error categories for classification."""

    NETWORK = "network"
    PERSISTENCE = "persistence"
    MALFORMED_RESPONSE = "malformed_response"
    UNKNOWN = "unknown"


class StructuredError(BaseModel):
    """Structured error model for consistent logging."""

    error_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))
    message: str
    category: ErrorCategory
    severity: ErrorSeverity
    url: str | None = None
    error_code: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    traceback: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging."""
        return {
            "error_id": self.error_id,
            "timestamp": self.timestamp.isoformat(),
            "message": self.message,
            "category": self.category.value,
            "severity": self.severity.value,
            "url": self.url,
            "error_code": self.error_code,
            "metadata": self.metadata,
            "traceback": self.traceback,
        }


class JSONFormatter(logging.Formatter):
    """JSON formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        log_data: dict[str, Any] = {
            "timestamp": datetime.now(UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }
        if hasattr(record, "structured_error"):
            log_data["structured_error"] = record.structured_error
        return json.dumps(log_data, default=str)


class _StructuredTextFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        text = super().format(record)
        error = getattr(record, "structured_error", None)
        if error and error.get("category"):
            text += f" | Category: {error['category']}"
            if error.get("error_code"):
                text += f" | Code: {error['error_code']}"
        return text


def configure_logging(config: Settings | None = None) -> logging.Logger:
    """Set up the ``sitewarm`` logger with the configured handler and format."""
    config = config or get_settings()
    logger = logging.getLogger("sitewarm")
    logger.setLevel(getattr(logging, config.logging.level, logging.INFO))

    # Remove existing handlers to avoid duplicates
    logger.handlers.clear()

    handler: logging.Handler
    if config.logging.log_file is not None:
        config.logging.log_file.parent.mkdir(parents=True, exist_ok=True)
        handler = logging.handlers.RotatingFileHandler(
            config.logging.log_file,
            maxBytes=config.logging.max_bytes,
            backupCount=config.logging.backup_count,
        )
    else:
        handler = logging.StreamHandler(sys.stderr)

    if config.logging.format == "json":
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(
            _StructuredTextFormatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
        )

    logger.addHandler(handler)
    return logger


def log_failure(
    logger: logging.Logger,
    exception: BaseException,
    category: ErrorCategory,
    message: str | None = None,
    severity: ErrorSeverity = ErrorSeverity.WARNING,
    url: str | None = None,
    include_traceback: bool = False,
    **metadata: Any,
) -> StructuredError:
    """Log an absorbed failure as a structured error and return it."""
    detail = str(exception) or exception.__class__.__name__
    error = StructuredError(
        message=f"{message}: {detail}" if message else detail,
        category=category,
        severity=severity,
        url=url,
        error_code=exception.__class__.__name__,
        metadata=metadata,
        traceback=traceback.format_exc() if include_traceback else None,
    )
    logger.log(
        severity.to_log_level(),
        "%s",
        error.message,
        extra={"structured_error": error.to_dict()},
    )
    return error
