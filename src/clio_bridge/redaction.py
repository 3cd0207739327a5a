"""PII redaction for everything that reaches the log sink.

Matter data is privileged client information, so no module logs through
its own logger directly. Call sites go through safe_log(), which scrubs
the message and every string inside the attached data before emitting.

Usage:
    safe_log("info", "Fetched matter", {"matter_id": matter_id}, logger=logger)
"""

from __future__ import annotations

import json
import logging
import re
from collections.abc import Mapping
from typing import Any

_default_logger = logging.getLogger(__name__)

EMAIL_PLACEHOLDER = "[EMAIL_REDACTED]"
PHONE_PLACEHOLDER = "[PHONE_REDACTED]"
SSN_PLACEHOLDER = "[SSN_REDACTED]"
CARD_PLACEHOLDER = "[CARD_REDACTED]"
NAME_PLACEHOLDER = "[NAME_REDACTED]"
ADDRESS_PLACEHOLDER = "[ADDRESS_REDACTED]"

# Digit patterns are anchored with (?<!\d) / (?!\d) so they only ever match
# a whole digit run, never the tail of a longer number.
_EMAIL = re.compile(r"\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}\b")
_PHONES = (
    # 555-123-4567, 555.123.4567, 5551234567
    re.compile(r"(?<!\d)\d{3}[-.]?\d{3}[-.]?\d{4}(?!\d)"),
    # (555) 123-4567
    re.compile(r"(?<!\w)\(\d{3}\)\s?\d{3}[-.]?\d{4}(?!\d)"),
    # +1 555 123 4567, 1-(555)-123-4567
    re.compile(r"(?<![\d+])\+?\d{1,3}[-.\s]?\(?\d{3}\)?[-.\s]?\d{3}[-.\s]?\d{4}(?!\d)"),
)
_SSN_DASHED = re.compile(r"(?<!\d)\d{3}-\d{2}-\d{4}(?!\d)")
_SSN_UNDASHED = re.compile(r"(?<!\d)\d{9}(?!\d)")
# Area numbers 000, 666 and 900-999 are never issued.
_SSN_PLAUSIBLE = re.compile(r"^(?!000|666|9)\d{3}")
_CARD_GROUPED = re.compile(r"(?<!\d)\d{4}[\s-]?\d{4}[\s-]?\d{4}[\s-]?\d{4}(?!\d)")
_CARD_PLAIN = re.compile(r"(?<!\d)\d{13,19}(?!\d)")
# "firstName": "John", "last_name": "Doe", "name": "Jane Doe"
_NAME_FIELD = re.compile(
    r'"((?:first|last|full|given|family|middle)?_?name)"\s*:\s*"[^"]+"',
    re.IGNORECASE,
)
_ADDRESS = re.compile(
    r"(?<!\d)\d{1,6}[ \t]+(?:[A-Za-z0-9]+[ \t]+){0,4}?"
    r"(?:Street|St|Avenue|Ave|Road|Rd|Drive|Dr|Lane|Ln|Boulevard|Blvd|Court|Ct|Place|Pl)"
    r"\b\.?",
    re.IGNORECASE,
)

# Keys whose values are structural, never personal, and are logged as-is.
SAFE_KEYS = frozenset(
    {"id", "type", "status", "created_at", "updated_at", "meta", "paging"}
)

_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}


def _redact_ssn(match: re.Match[str]) -> str:
    digits = match.group(0)
    if _SSN_PLAUSIBLE.match(digits):
        return SSN_PLACEHOLDER
    return digits


def _apply_patterns(text: str) -> str:
    text = _EMAIL.sub(EMAIL_PLACEHOLDER, text)
    for pattern in _PHONES:
        text = pattern.sub(PHONE_PLACEHOLDER, text)
    text = _SSN_DASHED.sub(SSN_PLACEHOLDER, text)
    text = _SSN_UNDASHED.sub(_redact_ssn, text)
    text = _CARD_GROUPED.sub(CARD_PLACEHOLDER, text)
    text = _CARD_PLAIN.sub(CARD_PLACEHOLDER, text)
    text = _NAME_FIELD.sub(rf'"\1": "{NAME_PLACEHOLDER}"', text)
    text = _ADDRESS.sub(ADDRESS_PLACEHOLDER, text)
    return text


def redact(text: str) -> str:
    """Replace emails, phones, SSNs, card numbers, names and addresses.

    Idempotent: redact(redact(x)) == redact(x). A substitution can leave
    behind a fragment that a pattern earlier in the order now matches
    (a digit run split off by a placeholder), so the substitutions are
    repeated until the text stops changing. Each change either removes
    digits or '@' characters or swaps a name value for its placeholder,
    so this terminates.
    """
    if not text:
        return text
    while True:
        redacted = _apply_patterns(text)
        if redacted == text:
            return redacted
        text = redacted


def redact_deep(value: Any) -> Any:
    """Apply redact() to every string leaf of a nested structure.

    Mappings, lists and tuples keep their shape. Values under SAFE_KEYS
    are passed through untouched.
    """
    if isinstance(value, str):
        return redact(value)
    if isinstance(value, Mapping):
        return {
            key: item if str(key).lower() in SAFE_KEYS else redact_deep(item)
            for key, item in value.items()
        }
    if isinstance(value, list):
        return [redact_deep(item) for item in value]
    if isinstance(value, tuple):
        return tuple(redact_deep(item) for item in value)
    return value


def safe_log(
    level: str | int,
    message: str,
    data: Any = None,
    *,
    logger: logging.Logger | None = None,
) -> None:
    """Log a message and optional structured data with PII removed.

    Args:
        level: "debug", "info", "warning"/"warn", "error", or a logging level.
        message: Free text; redacted before emission.
        data: Any JSON-like structure; deep-redacted and serialised as JSON.
        logger: Logger to emit through. Defaults to this module's logger.
    """
    log = logger or _default_logger
    lvl = level if isinstance(level, int) else _LEVELS.get(level.lower(), logging.INFO)
    if not log.isEnabledFor(lvl):
        return

    if data is None:
        log.log(lvl, "%s", redact(message))
        return
    payload = json.dumps(redact_deep(data), default=lambda obj: redact(str(obj)), sort_keys=True)
    log.log(lvl, "%s %s", redact(message), payload)
