"""Error taxonomy and structured failure logging."""

from sitewarm.errors.exceptions import (
    MalformedResponseError,
    ProbeFailedError,
    WarmingError,
)
from sitewarm.errors.logger import (
    ErrorCategory,
    ErrorSeverity,
    JSONFormatter,
    StructuredError,
    configure_logging,
    log_failure,
)

__all__ = [
    "ErrorCategory",
    "ErrorSeverity",
    "JSONFormatter",
    "MalformedResponseError",
    "ProbeFailedError",
    "StructuredError",
    "WarmingError",
    "configure_logging",
    "log_failure",
]
