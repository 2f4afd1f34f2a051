"""Telegram notification adapter using the Telethon client.

Formats a Markdown message and sends it with the bot's own connection.
"""

from __future__ import annotations

from adapters.notification_formatting import format_notification
from core.models import ChatTarget, Notification


class TelegramClientNotifier:
    """Notifier adapter that sends messages through a Telethon client."""

    def __init__(self, client, default_chat: ChatTarget) -> None:
        self._client = client
        self._default_chat = default_chat

    async def send(self, notification: Notification) -> None:
        """Send the formatted notification to its chat (or the default one)."""

        target = notification.chat_id if notification.chat_id is not None else self._default_chat
        message = format_notification(notification, mode="markdown")
        await self._client.send_message(
            target,
            message,
            parse_mode="md",
            link_preview=bool(notification.image_url),
        )
