"""
Telegram bot integration for import notifications.

Posts a summary to the configured chat when an import finishes or
fails. Intermediate checkpoints are not sent.
"""

from concurrent.futures import Future, ThreadPoolExecutor
from typing import Mapping, Optional

import requests
import structlog

from config import settings
from exceptions import TelegramError

logger = structlog.get_logger(__name__)

NOTIFY_STATUSES = {"completed", "error"}

STATUS_EMOJIS = {
    "completed": "✅",
    "error": "🚨",
}

# One worker keeps messages for an import in emission order
_executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="telegram")


def format_import_message(
    import_id: str,
    status: str,
    current_action: str,
    stats: Mapping[str, int],
    filename: Optional[str] = None,
) -> str:
    """
    Format an import checkpoint as a Telegram message.

    Args:
        import_id: Import being reported
        status: Progress status value
        current_action: Human-readable action text
        stats: Cumulative counters
        filename: Uploaded file name, if known

    Returns:
        Markdown message text
    """
    emoji = STATUS_EMOJIS.get(status, "•")
    title = "Catalog import completed" if status == "completed" else "Catalog import failed"

    lines = [f"{emoji} *{title}*", ""]
    if filename:
        lines.append(f"File: `{filename}`")
    lines.append(f"Import: `{import_id}`")
    lines.append("")
    lines.append(current_action)
    lines.append("")
    lines.append(
        f"Products: {stats.get('products_created', 0)} created, "
        f"{stats.get('products_updated', 0)} updated"
    )
    lines.append(
        f"Variants: {stats.get('variants_created', 0)} created, "
        f"{stats.get('variants_updated', 0)} updated, "
        f"{stats.get('variants_skipped', 0)} skipped"
    )
    lines.append(f"Barcodes assigned: {stats.get('barcodes_assigned', 0)}")
    if stats.get("units_failed"):
        lines.append(f"Failed units: {stats['units_failed']}")

    return "\n".join(lines)


def send_message(message: str, parse_mode: str = "Markdown") -> bool:
    """
    Send message to Telegram.

    Args:
        message: Message text to send
        parse_mode: Telegram parse mode (Markdown or HTML)

    Returns:
        True if sent, False if Telegram is not configured

    Raises:
        TelegramError: If send fails
    """
    if not settings.telegram_configured:
        logger.warning("telegram_not_configured_skipping_send")
        return False

    url = f"https://api.telegram.org/bot{settings.telegram_bot_token}/sendMessage"

    payload = {
        "chat_id": settings.telegram_chat_id,
        "text": message,
        "parse_mode": parse_mode,
        "disable_web_page_preview": True,
    }

    try:
        logger.info("sending_telegram_message", chat_id=settings.telegram_chat_id)

        response = requests.post(url, json=payload, timeout=10)
        response.raise_for_status()

        result = response.json()

        if not result.get("ok"):
            error_msg = result.get("description", "Unknown error")
            logger.error("telegram_api_error", error=error_msg)
            raise TelegramError(f"Telegram API error: {error_msg}")

        logger.info("telegram_message_sent", message_id=result.get("result", {}).get("message_id"))
        return True

    except requests.exceptions.RequestException as e:
        logger.error("telegram_request_failed", error=str(e))
        raise TelegramError(f"Failed to send Telegram message: {str(e)}")


def _send_logged(message: str) -> bool:
    try:
        return send_message(message)
    except TelegramError as e:
        logger.warning("telegram_notification_dropped", error=e.message)
        return False


class TelegramProgressSink:
    """
    Progress sink that notifies Telegram on completion or failure.

    Sends run on a background worker so the import never waits on the
    Telegram API.
    """

    def __init__(self, import_id: str, filename: Optional[str] = None):
        self.import_id = import_id
        self.filename = filename
        self.pending: list[Future] = []

    def emit(self, status: str, current_action: str, stats: Mapping[str, int]) -> None:
        if status not in NOTIFY_STATUSES or not settings.telegram_configured:
            return
        message = format_import_message(
            self.import_id,
            status,
            current_action,
            stats,
            filename=self.filename,
        )
        self.pending.append(_executor.submit(_send_logged, message))
