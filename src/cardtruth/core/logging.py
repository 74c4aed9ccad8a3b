"""Logging setup with PII filtering.

Statement text routinely contains card numbers, names and contact details.
Every handler installed by ``setup_logging`` carries a ``PiiFilter`` so that
message text and arguments are scrubbed before they are formatted.
"""

import logging
import re
import sys

# PII patterns to filter from logs
PII_PATTERNS = [
    # Credit card numbers (13-19 digits, with or without spaces/dashes)
    (re.compile(r"\b\d{4}[\s-]?\d{4}[\s-]?\d{4}[\s-]?\d{1,7}\b"), "[CARD]"),
    # Email addresses
    (re.compile(r"\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}\b"), "[EMAIL]"),
    # Phone numbers (international format)
    (re.compile(r"\+\d{1,3}[-.\s]?\(?\d{2,4}\)?[-.\s]?\d{3,4}[-.\s]?\d{4,5}"), "[PHONE]"),
    # Names after cardholder keywords
    (
        re.compile(r"(?:name|customer|holder|titular|cliente)[\s:]+([A-Z][a-z]+(?:\s[A-Z][a-z]+)*)", re.I),
        r"[NAME]",
    ),
]


def filter_pii(text: str) -> str:
    """Remove PII from text using regex patterns.

    Args:
        text: Input text that may contain PII

    Returns:
        Text with PII replaced by placeholders
    """
    if not text:
        return text

    filtered = text
    for pattern, replacement in PII_PATTERNS:
        filtered = pattern.sub(replacement, filtered)

    return filtered


class PiiFilter(logging.Filter):
    """Scrub PII from log records before they reach a handler."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.msg = filter_pii(str(record.msg))
        if record.args:
            if isinstance(record.args, dict):
                record.args = {
                    key: filter_pii(value) if isinstance(value, str) else value
                    for key, value in record.args.items()
                }
            else:
                record.args = tuple(
                    filter_pii(arg) if isinstance(arg, str) else arg for arg in record.args
                )
        return True


def setup_logging(level: str | int = logging.INFO, json_format: bool = False) -> None:
    """Configure the root logger with consistent formatting.

    Args:
        level: Logging level name or number
        json_format: If True, emit JSON-like log lines
    """
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO

    root = logging.getLogger()
    root.setLevel(level)
    root.handlers.clear()

    if json_format:
        formatter = logging.Formatter(
            '{"timestamp":"%(asctime)s","level":"%(levelname)s",'
            '"module":"%(name)s","message":"%(message)s"}',
        )
    else:
        formatter = logging.Formatter(
            "%(asctime)s [%(name)-28s] %(levelname)-7s %(message)s",
            datefmt="%H:%M:%S",
        )

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(formatter)
    handler.addFilter(PiiFilter())
    root.addHandler(handler)
