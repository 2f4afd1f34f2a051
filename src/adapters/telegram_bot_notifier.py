"""Telegram Bot API notification adapter.

Uses the Bot API for delivery so notifications can be routed via a bot chat
without a Telethon session.
"""

from __future__ import annotations

import asyncio
import json
import urllib.error
import urllib.request

from adapters.notification_formatting import format_notification
from core.errors import NetworkError
from core.models import ChatTarget, Notification


class TelegramBotNotifier:
    """Notifier adapter that sends messages via the Telegram Bot API."""

    def __init__(self, bot_token: str, chat_id: ChatTarget, timeout: float = 10.0) -> None:
        self._bot_token = bot_token
        self._chat_id = chat_id
        self._timeout = timeout

    def _endpoint(self) -> str:
        # The Bot API endpoint is deterministic and derived from the token.
        return f"https://api.telegram.org/bot{self._bot_token}/sendMessage"

    def _post(self, payload: dict) -> None:
        data = json.dumps(payload).encode("utf-8")
        request = urllib.request.Request(self._endpoint(), data=data, method="POST")
        request.add_header("Content-Type", "application/json")
        try:
            with urllib.request.urlopen(request, timeout=self._timeout):
                pass
        except urllib.error.HTTPError as e:
            body = e.read().decode("utf-8", errors="replace")
            raise NetworkError(f"Bot API error {e.code}: {body}", status=e.code) from e
        except (urllib.error.URLError, OSError) as e:
            raise NetworkError(f"Bot API request failed: {e}") from e

    async def send(self, notification: Notification) -> None:
        """Send the formatted notification via the Bot API."""

        target = notification.chat_id if notification.chat_id is not None else self._chat_id
        payload = {
            "chat_id": target,
            "text": format_notification(notification, mode="html"),
            "parse_mode": "HTML",
            "disable_web_page_preview": not notification.image_url,
        }
        # urllib blocks, so the call runs off the event loop.
        await asyncio.to_thread(self._post, payload)
