"""Log formatters for JSON and console output."""

import json
import logging
import re
import sys
from datetime import UTC, datetime
from typing import Any

from gcp_auth.logging.context import get_log_context

REDACTED = "[REDACTED]"

# Bearer tokens, PEM blocks and JSON secret fields that slipped into a message
SENSITIVE_TEXT_PATTERNS = [
    re.compile(r"(Bearer\s+)[A-Za-z0-9._\-~+/]+=*", re.IGNORECASE),
    re.compile(
        r"-----BEGIN [A-Z ]*PRIVATE KEY-----.*?-----END [A-Z ]*PRIVATE KEY-----",
        re.DOTALL,
    ),
    re.compile(
        r'("(?:access_token|refresh_token|client_secret|private_key|assertion)"\s*:\s*)"[^"]*"'
    ),
]


def sanitize_text(text: str) -> str:
    """Redact credential material from free text."""
    bearer, pem, json_field = SENSITIVE_TEXT_PATTERNS
    text = bearer.sub(rf"\1{REDACTED}", text)
    text = pem.sub(REDACTED, text)
    return json_field.sub(rf'\1"{REDACTED}"', text)


class JSONFormatter(logging.Formatter):
    """
    JSON log formatter with context injection.

    Produces one JSON object per line for easy parsing with jq/grep.
    Credential material never reaches the output: secret fields are
    replaced and sensitive query parameters are stripped from URLs.
    """

    # Fields to extract from LogRecord extras
    EXTRA_FIELDS = [
        # Correlation
        "trace_id",
        "duration_ms",
        # Provider / resolution
        "provider",
        "source",
        "attempts",
        "credentials_path",
        "client_email",
        "project_id",
        # Token lifecycle
        "scope_key",
        "scopes",
        "expires_at",
        "expires_in",
        "remaining_seconds",
        "safety_margin_seconds",
        "waiters",
        "state",
        # HTTP
        "http_status",
        "http_method",
        "http_url",
        "token_uri",
        "metadata_host",
        "timeout_seconds",
        # CLI
        "command",
        "returncode",
        # Errors
        "error_category",
        "error_message",
        "error_type",
        "error",
        # Operation tracking
        "operation",
    ]

    NUMERIC_FIELDS = {
        "duration_ms": float,
        "remaining_seconds": float,
        "safety_margin_seconds": float,
        "timeout_seconds": float,
        "expires_in": int,
        "http_status": int,
        "returncode": int,
        "waiters": int,
    }

    # Values of these keys are never written, whatever they contain
    SECRET_FIELDS = frozenset(
        {
            "access_token",
            "refresh_token",
            "private_key",
            "client_secret",
            "assertion",
            "id_token",
        }
    )

    # Fields that contain URLs and should be sanitized
    URL_FIELDS = ["http_url", "token_uri", "url"]

    # Pattern to match sensitive query parameters
    SENSITIVE_PARAMS_PATTERN = re.compile(
        r"([?&])(access_token|token|assertion|key|secret|refresh_token)=[^&]*",
        re.IGNORECASE,
    )

    def _sanitize_url(self, url: str) -> str:
        return self.SENSITIVE_PARAMS_PATTERN.sub(rf"\1\2={REDACTED}", url)

    def _sanitize_text(self, text: str) -> str:
        return sanitize_text(text)

    def _sanitize_value(self, key: str, value: Any) -> Any:
        if key in self.SECRET_FIELDS:
            return REDACTED
        if key in self.URL_FIELDS and isinstance(value, str):
            return self._sanitize_url(value)
        if isinstance(value, str):
            return self._sanitize_text(value)
        return value

    def _ensure_type(self, field: str, value: Any) -> Any:
        if field not in self.NUMERIC_FIELDS or value is None:
            return value

        expected_type = self.NUMERIC_FIELDS[field]
        try:
            return expected_type(value)
        except (ValueError, TypeError):
            return None

    def _base_log_entry(self, record: logging.LogRecord) -> dict[str, Any]:
        return {
            "ts": datetime.now(UTC).strftime("%Y-%m-%dT%H:%M:%S.%f")[:-3] + "Z",
            "level": record.levelname,
            "logger": record.name,
            "message": self._sanitize_text(record.getMessage()),
        }

    @staticmethod
    def _inject_context(log_entry: dict[str, Any], log_context: dict[str, Any]) -> None:
        for field in ("provider", "operation", "scope_key", "trace_id"):
            if log_context.get(field):
                log_entry[field] = log_context[field]

    @staticmethod
    def _should_include_source_location(record: logging.LogRecord) -> bool:
        return record.levelno in (logging.DEBUG, logging.ERROR, logging.CRITICAL)

    def _inject_extra_fields(self, log_entry: dict[str, Any], record: logging.LogRecord) -> None:
        for field in self.EXTRA_FIELDS:
            value = getattr(record, field, None)
            if value is not None:
                typed_value = self._ensure_type(field, value)
                log_entry[field] = self._sanitize_value(field, typed_value)

        for field in self.SECRET_FIELDS:
            if getattr(record, field, None) is not None:
                log_entry[field] = REDACTED

    def _inject_exception(self, log_entry: dict[str, Any], record: logging.LogRecord) -> None:
        if not record.exc_info:
            return

        exc_type, exc_value, _ = record.exc_info
        log_entry["exception"] = {
            "type": exc_type.__name__ if exc_type else None,
            "message": self._sanitize_text(str(exc_value)) if exc_value else None,
            "stacktrace": self._sanitize_text(self.formatException(record.exc_info)),
        }

    def format(self, record: logging.LogRecord) -> str:
        log_entry = self._base_log_entry(record)

        self._inject_context(log_entry, get_log_context())

        if self._should_include_source_location(record):
            log_entry["file"] = f"{record.filename}:{record.lineno}"

        self._inject_extra_fields(log_entry, record)
        self._inject_exception(log_entry, record)

        return json.dumps(log_entry, default=str, ensure_ascii=False)


class ConsoleFormatter(logging.Formatter):
    """
    Human-readable console formatter with color-coded log levels.

    Colors are auto-disabled when output is not a TTY (pipes, files).
    """

    # ANSI color codes
    COLORS = {
        logging.DEBUG: "\033[36m",  # Cyan
        logging.INFO: "\033[32m",  # Green
        logging.WARNING: "\033[33m",  # Yellow
        logging.ERROR: "\033[31m",  # Red
        logging.CRITICAL: "\033[35m",  # Magenta
    }
    RESET = "\033[0m"

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self._use_colors = sys.stdout.isatty()

    def _format_level_name(self, record: logging.LogRecord) -> str:
        level_name = record.levelname
        if not self._use_colors:
            return level_name

        color = self.COLORS.get(record.levelno, "")
        if not color:
            return level_name

        return f"{color}{level_name}{self.RESET}"

    @staticmethod
    def _build_prefix(level_name: str, log_context: dict[str, Any]) -> str:
        parts = [
            datetime.now().strftime("%Y-%m-%d %H:%M:%S"),
            level_name,
        ]

        if log_context["provider"]:
            parts.append(f"[{log_context['provider']}]")
        if log_context["operation"]:
            parts.append(f"[{log_context['operation']}]")

        return " - ".join(parts)

    @staticmethod
    def _build_tags(record: logging.LogRecord, log_context: dict[str, Any]) -> list[str]:
        trace_id = getattr(record, "trace_id", None) or log_context.get("trace_id")
        scope_key = getattr(record, "scope_key", None) or log_context.get("scope_key")

        tags = []
        if trace_id:
            tags.append(f"[{trace_id[:8]}]")
        if scope_key:
            tags.append(f"[scopes:{scope_key}]")
        return tags

    def format(self, record: logging.LogRecord) -> str:
        """Format log record for console output with optional color coding."""
        log_context = get_log_context()

        level_name = self._format_level_name(record)
        prefix = self._build_prefix(level_name, log_context)
        tags = self._build_tags(record, log_context)
        message = sanitize_text(record.getMessage())

        if tags:
            return f"{prefix} - {' '.join(tags)} {message}"

        return f"{prefix} - {message}"
