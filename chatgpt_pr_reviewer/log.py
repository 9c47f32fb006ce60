"""Logging setup with redaction of prompts and credentials."""

from __future__ import annotations

import logging
import re


class RedactingFormatter(logging.Formatter):
    """
    Formatter that redacts sensitive data via regex substitutions.

    Parameters
    ----------
    fmt:
        Log format string.
    patterns:
        (pattern, replacement) pairs applied sequentially.
    """

    def __init__(
        self,
        fmt: str,
        patterns: list[tuple[re.Pattern[str], str]],
    ) -> None:
        super().__init__(fmt)
        self._patterns = patterns

    def format(self, record: logging.LogRecord) -> str:
        msg = super().format(record)
        for pat, repl in self._patterns:
            msg = pat.sub(repl, msg)
        return msg


def redaction_patterns() -> list[tuple[re.Pattern[str], str]]:
    """
    Return regex patterns used to redact sensitive info in logs.

    Prompts sent to the model carry the full diff, so message payloads
    are hidden as well as credentials.

    Returns
    -------
    list[tuple[re.Pattern[str], str]]
        Redaction patterns.
    """
    return [
        (
            re.compile(r'(?m)^(.*?\bRequest options:\s*)(.*)$'),
            r'\1[REDACTED]',
        ),
        (
            re.compile(
                r"(['\"]messages['\"]\s*:\s*)\[(?:.|\n)*?\]",
                re.I | re.S,
            ),
            r'\1[REDACTED]',
        ),
        (
            re.compile(
                r"(['\"]input['\"]\s*:\s*)\[(?:.|\n)*?\]",
                re.I | re.S,
            ),
            r'\1[REDACTED]',
        ),
        (
            re.compile(r'(?im)^(authorization\s*[:=]\s*)([\'"]?)(.*)$'),
            r'\1\2[REDACTED]\2',
        ),
        (
            re.compile(r'(?im)^(api[_-]?key\s*[:=]\s*)([\'"]?)(.*)$'),
            r'\1\2[REDACTED]\2',
        ),
        (re.compile(r'\bgh[pousr]_[A-Za-z0-9]{20,}\b'), '[REDACTED]'),
        (re.compile(r'\bsk-[A-Za-z0-9_-]{20,}\b'), '[REDACTED]'),
    ]


def setup_logging(level: str = 'INFO') -> logging.Logger:
    """
    Configure the root logger and install the redacting formatter.

    Parameters
    ----------
    level:
        Level name, e.g. ``INFO`` or ``DEBUG``. Unknown names fall back to
        ``INFO``.

    Returns
    -------
    logging.Logger
        The package logger.
    """
    fmt = '%(levelname)s %(name)s %(message)s'
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=fmt,
    )
    patterns = redaction_patterns()
    for handler in logging.getLogger().handlers:
        handler.setFormatter(RedactingFormatter(fmt, patterns))
    return logging.getLogger('chatgpt_pr_reviewer')
