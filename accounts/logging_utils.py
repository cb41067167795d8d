"""
Logging utilities.

Account flows put secrets into request data, mail links and headers:
passwords, bearer tokens and the one-time codes for verification, password
reset and email change. ``RedactSecretsFilter`` keeps them out of the logs.
"""

from __future__ import annotations

import logging
import re

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

_FILTER_NAME = "accounts_redact_secrets"

# Loggers that log every HTTP request at INFO
_NOISY_LOGGERS = ("httpx", "httpcore")


class RedactSecretsFilter(logging.Filter):
    """
    Rewrites log records so that secrets read ``REDACTED``.

    Handles ``code=...`` style query parameters (mail links),
    ``'password': '...'`` style key/values (dumped forms and dicts) and
    ``Bearer <token>`` header values.
    """

    _query_param_re = re.compile(
        r"(?i)\b(token|code|secret|password|newPassword)=([^&\s,)]+)"
    )
    _kv_re = re.compile(
        r"(?i)([\"']?(\w*password|token|code|secret)[\"']?\s*[:=]\s*)([\"'])[^\"']*(\3)"
    )
    _bearer_re = re.compile(r"(?i)\bBearer\s+([A-Za-z0-9._\-]+)")

    def __init__(self):
        super().__init__(_FILTER_NAME)

    def redact(self, text: str) -> str:
        text = self._kv_re.sub(lambda m: f"{m.group(1)}{m.group(3)}REDACTED{m.group(4)}", text)
        text = self._query_param_re.sub(lambda m: f"{m.group(1)}=REDACTED", text)
        return self._bearer_re.sub("Bearer REDACTED", text)

    def filter(self, record: logging.LogRecord) -> bool:  # noqa: A003 (Filter.filter)
        try:
            message = record.getMessage()
        except (TypeError, ValueError):
            return True

        redacted = self.redact(message)
        if redacted != message:
            # args are already merged into the message
            record.msg = redacted
            record.args = ()
        return True


def _attach(filterer: logging.Filterer, redact_filter: RedactSecretsFilter) -> None:
    if not any(getattr(f, "name", None) == _FILTER_NAME for f in filterer.filters):
        filterer.addFilter(redact_filter)


def install_log_safety() -> None:
    """
    Redact secrets on the root logger and every handler that exists so far
    (uvicorn installs its own), and quiet per-request library logging.
    """
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    redact_filter = RedactSecretsFilter()
    root = logging.getLogger()
    _attach(root, redact_filter)

    loggers = [root] + [
        obj for obj in logging.Logger.manager.loggerDict.values() if isinstance(obj, logging.Logger)
    ]
    for logger in loggers:
        for handler in logger.handlers:
            _attach(handler, redact_filter)


def configure_logging(level: int = logging.INFO) -> None:
    """Configure root logging for the CLI and install the redaction filter."""
    logging.basicConfig(level=level, format=LOG_FORMAT)
    try:
        install_log_safety()
    except Exception:
        # Logging should never prevent app startup.
        pass
