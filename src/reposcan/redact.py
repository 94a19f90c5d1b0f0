"""Secret redaction for log records and subprocess output."""

from __future__ import annotations

import logging
import re

REDACTED = "[REDACTED]"

_SECRET_PATTERNS: list[re.Pattern[str]] = [
    # Credentials embedded in clone URLs
    re.compile(r"(?<=://)[^/@\s]+:[^/@\s]+(?=@)"),
    # GitHub tokens (classic, fine-grained, app/server)
    re.compile(r"\bgh[pousr]_[A-Za-z0-9]{20,}\b"),
    re.compile(r"\bgithub_pat_[A-Za-z0-9_]{20,}\b"),
    # OpenAI keys
    re.compile(r"\bsk-[A-Za-z0-9_\-]{20,}\b"),
]


def redact(text: str, *secrets: str) -> str:
    """Replace known secrets and token-shaped strings in text."""
    for secret in secrets:
        if secret:
            text = text.replace(secret, REDACTED)
    for pattern in _SECRET_PATTERNS:
        text = pattern.sub(REDACTED, text)
    return text


class RedactingFilter(logging.Filter):
    """Logging filter that scrubs secrets from every record it sees."""

    def __init__(self, *secrets: str) -> None:
        super().__init__()
        self._secrets = tuple(s for s in secrets if s)

    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        cleaned = redact(message, *self._secrets)
        if cleaned != message:
            record.msg = cleaned
            record.args = None
        return True
