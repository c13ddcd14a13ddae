"""Logging sink tests"""

from types import SimpleNamespace

import httpx

from portfolio_valuation.core import logging as valuation_logging


def make_message(extra, level="ERROR", exception=None):
    record = {
        "extra": extra,
        "level": SimpleNamespace(name=level),
        "message": "Reconciliation failed: boom",
        "exception": exception,
    }
    return SimpleNamespace(record=record)


class TestLogging:
    """Test cycle key tagging and Slack notifications"""

    def test_format_tags_cycle_key(self):
        tagged = valuation_logging._format({"extra": {"name": "refresh_service", "key": "ab12cd34"}})
        plain = valuation_logging._format({"extra": {"name": "refresh_service"}})
        assert "key={extra[key]}" in tagged
        assert "key=" not in plain
        assert tagged.endswith("{exception}")

    def test_slack_sink_includes_key_and_exception(self, monkeypatch):
        posted = []
        monkeypatch.setattr(valuation_logging.settings, "SLACK_WEBHOOK_URL", "https://hooks.test/x")
        monkeypatch.setattr(valuation_logging.httpx, "post", lambda url, **kwargs: posted.append((url, kwargs)))

        error = ValueError("non-finite total")
        exception = SimpleNamespace(type=ValueError, value=error)
        valuation_logging._slack_sink(make_message({"name": "refresh_service", "key": "ab12cd34"}, exception=exception))

        url, kwargs = posted[0]
        text = kwargs["json"]["text"]
        assert url == "https://hooks.test/x"
        assert text.startswith("portfolio-valuation (")
        assert "refresh_service key=ab12cd34" in text
        assert "ValueError: non-finite total" in text

    def test_slack_failure_is_ignored(self, monkeypatch):
        def failing_post(url, **kwargs):
            raise httpx.ConnectError("unreachable")

        monkeypatch.setattr(valuation_logging.settings, "SLACK_WEBHOOK_URL", "https://hooks.test/x")
        monkeypatch.setattr(valuation_logging.httpx, "post", failing_post)
        valuation_logging._slack_sink(make_message({"name": "valuation"}))
