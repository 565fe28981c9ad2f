"""
Unit tests for Telegram import notifications.

Run: pytest tests/unit/test_telegram.py -v
"""

from unittest.mock import MagicMock, patch

import pytest
import requests

from exceptions import TelegramError
from integrations.telegram import (
    TelegramProgressSink,
    format_import_message,
    send_message,
)


STATS = {
    "products_created": 1,
    "products_updated": 0,
    "variants_created": 3,
    "variants_updated": 1,
    "variants_skipped": 2,
    "barcodes_assigned": 3,
    "units_failed": 0,
}


@pytest.fixture
def configured():
    fake = MagicMock(
        telegram_configured=True,
        telegram_bot_token="123:abc",
        telegram_chat_id="-100",
    )
    with patch("integrations.telegram.settings", fake):
        yield fake


class TestFormatImportMessage:
    """Tests for format_import_message()"""

    def test_completed_summary(self):
        message = format_import_message("imp-1", "completed", "Import completed", STATS, filename="catalog.csv")

        assert message.startswith("✅ *Catalog import completed*")
        assert "`catalog.csv`" in message
        assert "Variants: 3 created, 1 updated, 2 skipped" in message
        assert "Failed units" not in message

    def test_failure_lists_failed_units(self):
        message = format_import_message("imp-1", "error", "Store unreachable", {**STATS, "units_failed": 2})

        assert message.startswith("🚨 *Catalog import failed*")
        assert "Failed units: 2" in message


class TestSendMessage:
    """Tests for send_message()"""

    def test_not_configured_skips(self):
        with patch("integrations.telegram.settings", MagicMock(telegram_configured=False)):
            with patch("integrations.telegram.requests.post") as post:
                assert send_message("hello") is False

        post.assert_not_called()

    def test_posts_to_bot_api(self, configured):
        response = MagicMock()
        response.json.return_value = {"ok": True, "result": {"message_id": 7}}

        with patch("integrations.telegram.requests.post", return_value=response) as post:
            assert send_message("hello") is True

        url = post.call_args.args[0]
        assert url == "https://api.telegram.org/bot123:abc/sendMessage"
        assert post.call_args.kwargs["json"]["chat_id"] == "-100"

    def test_api_error_raises(self, configured):
        response = MagicMock()
        response.json.return_value = {"ok": False, "description": "chat not found"}

        with patch("integrations.telegram.requests.post", return_value=response):
            with pytest.raises(TelegramError) as exc_info:
                send_message("hello")

        assert "chat not found" in exc_info.value.message

    def test_request_failure_raises(self, configured):
        with patch("integrations.telegram.requests.post", side_effect=requests.exceptions.Timeout("slow")):
            with pytest.raises(TelegramError):
                send_message("hello")


class TestTelegramProgressSink:
    """Tests for TelegramProgressSink"""

    def test_only_terminal_statuses_are_sent(self, configured):
        """Checkpoints are ignored; completion is sent once in the background."""
        # Arrange
        sink = TelegramProgressSink("imp-1", filename="catalog.csv")

        # Act
        with patch("integrations.telegram.send_message", return_value=True) as send:
            sink.emit("matching", "Matching rows", STATS)
            sink.emit("creating", "Writing catalog", STATS)
            sink.emit("completed", "Import completed", STATS)
            for future in sink.pending:
                future.result(timeout=5)

        # Assert
        assert len(sink.pending) == 1
        send.assert_called_once()
        assert "imp-1" in send.call_args.args[0]

    def test_send_failure_does_not_raise(self, configured):
        sink = TelegramProgressSink("imp-1")

        with patch("integrations.telegram.send_message", side_effect=TelegramError("down")):
            sink.emit("error", "Store unreachable", STATS)
            assert sink.pending[0].result(timeout=5) is False

    def test_unconfigured_sends_nothing(self):
        sink = TelegramProgressSink("imp-1")

        with patch("integrations.telegram.settings", MagicMock(telegram_configured=False)):
            sink.emit("completed", "Import completed", STATS)

        assert sink.pending == []
