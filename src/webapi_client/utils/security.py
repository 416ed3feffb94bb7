"""Log sanitization and secure logging setup.

Bearer credentials travel in every request, so anything that logs
headers or request bodies goes through these helpers first.
"""

import copy
import logging
import re
import sys
from typing import Any, Dict, Mapping

# Patterns for sensitive data detection
SENSITIVE_PATTERNS = {
    "vendor_token": re.compile(r"xox[abposr]-[A-Za-z0-9-]+"),
    "jwt_token": re.compile(r"eyJ[A-Za-z0-9_-]+\.[A-Za-z0-9_-]+\.[A-Za-z0-9_-]+"),
    "bearer_token": re.compile(r"Bearer\s+[A-Za-z0-9._~+/=-]+", re.IGNORECASE),
}

# Headers that should never be logged
SENSITIVE_HEADERS = {
    "authorization",
    "x-api-key",
    "x-auth-token",
    "cookie",
    "set-cookie",
    "x-access-token",
}

# =============================================================================
# String and Header Sanitization
# =============================================================================


def sanitize_string(value: str) -> str:
    """Redact tokens embedded in ``value``.

    Each match is replaced in place, the rest of the string is kept.

    :param value: String to sanitize
    :type value: str
    :return: Sanitized string with sensitive data redacted
    :rtype: str
    """
    if not value:
        return value
    for pattern_name, pattern in SENSITIVE_PATTERNS.items():
        value = pattern.sub(f"<{pattern_name}:REDACTED>", value)
    return value


def sanitize_headers(headers: Mapping[str, Any]) -> Dict[str, Any]:
    """Sanitize HTTP headers for logging.

    :param headers: Mapping of HTTP headers
    :type headers: Mapping[str, Any]
    :return: Sanitized copy of the headers
    :rtype: Dict[str, Any]
    """
    if not headers:
        return dict(headers or {})
    sanitized = copy.deepcopy(dict(headers))
    for key, value in headers.items():
        if key.lower() in SENSITIVE_HEADERS:
            if isinstance(value, str) and len(value) > 0:
                sanitized[key] = f"<REDACTED:length={len(value)}>"
            else:
                sanitized[key] = "<REDACTED>"
        elif isinstance(value, str):
            sanitized[key] = sanitize_string(value)
    return sanitized


# =============================================================================
# Secure Logging Setup
# =============================================================================


class SanitizingFormatter(logging.Formatter):
    """Formatter that redacts tokens from the rendered message."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record with automatic sanitization.

        :param record: Log record to format
        :type record: logging.LogRecord
        :return: Sanitized log message
        :rtype: str
        """
        record = copy.copy(record)
        record.msg = sanitize_string(record.getMessage())
        record.args = None
        return super().format(record)


# Global flag to track if logging has been set up
_LOGGING_CONFIGURED = False


def setup_secure_logging(level: str = "INFO", force: bool = False) -> None:
    """Set up root logging with automatic sanitization.

    Only the first call has an effect unless ``force`` is set.

    :param level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    :type level: str
    :param force: Reconfigure even if logging was already set up
    :type force: bool
    """
    global _LOGGING_CONFIGURED

    if _LOGGING_CONFIGURED and not force:
        logging.getLogger(__name__).debug(
            "Logging already configured, skipping duplicate setup"
        )
        return

    formatter = SanitizingFormatter(
        "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)

    logging.basicConfig(
        level=getattr(logging, level.upper()),
        handlers=[handler],
        force=True,
    )

    # httpx logs every request line at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)

    _LOGGING_CONFIGURED = True
