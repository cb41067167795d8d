"""Tests for log redaction."""

import logging


def _filtered(msg, *args):
    from accounts.logging_utils import RedactSecretsFilter

    record = logging.LogRecord("test", logging.INFO, __file__, 1, msg, args, None)
    RedactSecretsFilter().filter(record)
    return record.getMessage()


class TestRedactSecretsFilter:
    """Tests for RedactSecretsFilter."""

    def test_query_param_code(self):
        message = _filtered("Link: https://example.com/users/1/verification?code=abc.def-ghi")

        assert "abc.def-ghi" not in message
        assert "code=REDACTED" in message

    def test_key_value_password(self):
        message = _filtered("Form: %s", {"old_password": "hunter22", "name": "Jane"})

        assert "hunter22" not in message
        assert "Jane" in message

    def test_bearer_token(self):
        message = _filtered("Header: Bearer eyJhbGciOi.payload.sig")

        assert "eyJhbGciOi" not in message
        assert "Bearer REDACTED" in message

    def test_plain_message_untouched(self):
        assert _filtered("Logged in: %s", "jane@example.com") == "Logged in: jane@example.com"


class TestInstallLogSafety:
    """Tests for install_log_safety."""

    def test_installs_filter_once(self):
        from accounts.logging_utils import _FILTER_NAME, install_log_safety

        install_log_safety()
        install_log_safety()

        root = logging.getLogger()
        names = [getattr(f, "name", None) for f in root.filters]
        assert names.count(_FILTER_NAME) == 1
        assert logging.getLogger("httpx").level == logging.WARNING
