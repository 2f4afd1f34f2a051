"""Telegram command handling for user reminders.

Parsing and the reply text live here; the Telethon event only supplies the
sender, the chat and the raw text, which keeps the handler testable without
a live client.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass

from core.errors import ValidationError
from core.rate_limiter import RateLimiter
from core.reminders import ReminderService, format_duration

LOGGER = logging.getLogger(__name__)

REMIND_ACTION = "remindme"
USAGE = "Usage: /remindme <amount> <minutes|hours|days|weeks> <text>"

_REMIND_COMMAND = re.compile(r"^/remindme(?:@\w+)?(?:\s+(.*))?$", re.DOTALL | re.IGNORECASE)
_REMIND_ARGS = re.compile(r"^(\d+)\s*([A-Za-z]+)\s+(.+)$", re.DOTALL)


@dataclass(frozen=True)
class RemindCommand:
    amount: int
    unit: str
    text: str


def parse_remind_command(text: str) -> RemindCommand:
    """Parse ``/remindme 10 minutes stretch`` into its parts."""

    match = _REMIND_COMMAND.match((text or "").strip())
    if not match or not match.group(1):
        raise ValidationError(USAGE)
    args = _REMIND_ARGS.match(match.group(1).strip())
    if not args:
        raise ValidationError(USAGE)
    amount, unit, body = args.groups()
    return RemindCommand(amount=int(amount), unit=unit, text=body)


class ReminderCommandHandler:
    """Rate-limits, validates and creates reminders for chat users."""

    def __init__(self, reminders: ReminderService, limiter: RateLimiter) -> None:
        self._reminders = reminders
        self._limiter = limiter

    async def handle(self, user_id: int, chat_id: int, text: str) -> str:
        """Return the reply for one ``/remindme`` message."""

        decision = self._limiter.check(str(user_id), REMIND_ACTION)
        if not decision.allowed:
            return f"⏳ {decision.message}"

        try:
            command = parse_remind_command(text)
            reminder = await self._reminders.create(
                user_id=user_id,
                chat_id=chat_id,
                text=command.text,
                amount=command.amount,
                unit=command.unit,
            )
        except ValidationError as exc:
            return f"❌ {exc}"
        except OSError:
            LOGGER.exception("Failed to save reminder for user %s", user_id)
            return "❌ Could not save your reminder. Please try again later."

        reply = f"✅ I will remind you about \"{reminder.text}\" in {format_duration(command.amount, command.unit)}"
        if decision.warning and decision.message:
            reply = f"{reply}\n⚠️ {decision.message}"
        return reply

    async def on_message(self, event) -> None:
        """Telethon ``NewMessage`` entry point."""

        reply = await self.handle(event.sender_id, event.chat_id, event.raw_text or "")
        await event.reply(reply)
