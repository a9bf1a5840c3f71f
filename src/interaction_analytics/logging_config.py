"""Logging setup shared by the API process and the CLI."""

import logging
import re


class SecretRedactingFilter(logging.Filter):
    """Filter to redact sensitive information from logs."""

    SECRET_PATTERNS = [
        (re.compile(r"(api[_-]?key[\s:=]+)[\w-]{20,}", re.IGNORECASE), r"\1[REDACTED]"),
        (re.compile(r"(x-goog-api-key['\"]?[\s:=]+['\"]?)[\w-]+", re.IGNORECASE), r"\1[REDACTED]"),
        (re.compile(r"(token[\s:=]+)[\w-]{20,}", re.IGNORECASE), r"\1[REDACTED]"),
        (re.compile(r"(password[\s:=]+)\S+", re.IGNORECASE), r"\1[REDACTED]"),
        (re.compile(r"(secret[\s:=]+)\S+", re.IGNORECASE), r"\1[REDACTED]"),
        (re.compile(r"(authorization[\s:]+bearer\s+)[\w-]+", re.IGNORECASE), r"\1[REDACTED]"),
        (re.compile(r"(bearer\s+)[\w-]+", re.IGNORECASE), r"\1[REDACTED]"),
        # Credentials in connection URLs (DATABASE_URL, REDIS_URL)
        (re.compile(r"([a-z][\w+.-]*://[^:/@\s]*:)[^@\s]+(@)", re.IGNORECASE), r"\1[REDACTED]\2"),
    ]

    def filter(self, record: logging.LogRecord) -> bool:
        """Redact secrets from log messages."""
        if isinstance(record.msg, str):
            for pattern, replacement in self.SECRET_PATTERNS:
                record.msg = pattern.sub(replacement, record.msg)
        return True


def configure_logging(level: str = "INFO") -> None:
    """Configure root logging with secret redaction.

    Safe to call more than once; the redaction filter is only attached once.
    """
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    root = logging.getLogger()
    root.setLevel(getattr(logging, level.upper(), logging.INFO))

    if not any(isinstance(f, SecretRedactingFilter) for f in root.filters):
        root.addFilter(SecretRedactingFilter())
    for handler in root.handlers:
        if not any(isinstance(f, SecretRedactingFilter) for f in handler.filters):
            handler.addFilter(SecretRedactingFilter())
