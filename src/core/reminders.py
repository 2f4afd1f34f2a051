"""User reminders: validation, persistence, scheduling and restore.

``reminders.json`` holds a JSON array of reminder records. Every change to
it is a locked read-modify-write, and each pending reminder owns a one-shot
registry entry named ``reminder-<id>`` that removes the record once it fires.
"""

from __future__ import annotations

import functools
import logging
import time
import uuid
from typing import Any, Callable, List, Optional

from core.errors import ValidationError
from core.json_store import JsonStore, LoadStatus
from core.locks import LockManager
from core.models import Notification, Reminder
from core.ports import NotifierPort
from core.task_registry import TaskEntry, TaskRegistry
from core.text import strip_control_chars

LOGGER = logging.getLogger(__name__)

MAX_TEXT_LENGTH = 500

# unit -> (maximum amount, seconds per unit)
UNIT_LIMITS = {
    "minutes": (1440, 60),
    "hours": (168, 60 * 60),
    "days": (365, 24 * 60 * 60),
    "weeks": (52, 7 * 24 * 60 * 60),
}

UNIT_ALIASES = {
    "m": "minutes",
    "min": "minutes",
    "minute": "minutes",
    "h": "hours",
    "hour": "hours",
    "d": "days",
    "day": "days",
    "w": "weeks",
    "week": "weeks",
}


def normalize_unit(unit: str) -> str:
    lowered = unit.strip().lower()
    return UNIT_ALIASES.get(lowered, lowered)


def parse_duration(amount: Any, unit: str) -> float:
    """Return the delay in seconds for ``amount`` ``unit``."""

    if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
        raise ValidationError("Time amount must be a positive integer")
    limit = UNIT_LIMITS.get(normalize_unit(unit))
    if limit is None:
        raise ValidationError("Invalid time unit")
    max_amount, multiplier = limit
    if amount > max_amount:
        raise ValidationError(f"Cannot set reminder for more than {max_amount} {normalize_unit(unit)}")
    return float(amount * multiplier)


def clean_text(text: Any, max_length: int = MAX_TEXT_LENGTH) -> str:
    if not isinstance(text, str):
        raise ValidationError("Reminder text is required")
    cleaned = strip_control_chars(text).strip()
    if not cleaned:
        raise ValidationError("Reminder text cannot be empty")
    if len(cleaned) > max_length:
        raise ValidationError(f"Reminder text cannot exceed {max_length} characters")
    try:
        cleaned.encode("utf-8")
    except UnicodeEncodeError:
        raise ValidationError("Reminder text contains invalid characters") from None
    return cleaned


def parse_reminder(raw: Any) -> Reminder:
    """Validate one persisted record."""

    if not isinstance(raw, dict):
        raise ValidationError("expected object")

    errors: List[str] = []
    reminder_id = raw.get("id")
    if not isinstance(reminder_id, str) or not reminder_id:
        errors.append("id: required string")
    user_id = raw.get("userId")
    if isinstance(user_id, bool) or not isinstance(user_id, int):
        errors.append("userId: required integer")
    chat_id = raw.get("chatId")
    if isinstance(chat_id, bool) or not isinstance(chat_id, int):
        errors.append("chatId: required integer")
    remind_at = raw.get("reminderTime")
    if isinstance(remind_at, bool) or not isinstance(remind_at, (int, float)) or remind_at < 0:
        errors.append("reminderTime: invalid")
    try:
        text = clean_text(raw.get("text"))
    except ValidationError as exc:
        errors.append(f"text: {exc}")

    if errors:
        raise ValidationError(", ".join(errors))
    return Reminder(
        id=reminder_id,
        text=text,
        user_id=user_id,
        chat_id=chat_id,
        remind_at=float(remind_at),
    )


def format_duration(amount: int, unit: str) -> str:
    unit = normalize_unit(unit)
    if amount == 1:
        unit = unit[:-1]
    return f"{amount} {unit}"


def build_reminder_notification(reminder: Reminder) -> Notification:
    return Notification(
        title="🔔 Reminder",
        body=reminder.text,
        chat_id=reminder.chat_id,
        mention_user_id=reminder.user_id,
    )


class ReminderService:
    """Creates, fires and restores reminders."""

    def __init__(
        self,
        store: JsonStore,
        locks: LockManager,
        registry: TaskRegistry,
        notifier: NotifierPort,
        path: str,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._store = store
        self._locks = locks
        self._registry = registry
        self._notifier = notifier
        self._path = path
        self._clock = clock

    @staticmethod
    def task_name(reminder_id: str) -> str:
        return f"reminder-{reminder_id}"

    async def create(self, user_id: int, chat_id: int, text: Any, amount: Any, unit: str) -> Reminder:
        """Validate, persist and schedule a reminder.

        Raises ``ValidationError`` with a user-facing reason before anything
        is written.
        """

        cleaned = clean_text(text)
        delay = parse_duration(amount, unit)
        remind_at = self._clock() + delay
        reminder = Reminder(
            id=f"{user_id}_{int(remind_at * 1000)}_{uuid.uuid4().hex[:6]}",
            text=cleaned,
            user_id=user_id,
            chat_id=chat_id,
            remind_at=remind_at,
        )

        async with self._locks.hold(self._path):
            records = self._read_records()
            records.append(reminder.to_dict())
            self._store.write(self._path, records)

        if self._schedule(reminder, delay) is None:
            LOGGER.warning("Reminder %s saved but not scheduled; it will be restored on restart", reminder.id)
        return reminder

    async def remove(self, reminder_id: str) -> bool:
        async with self._locks.hold(self._path):
            records = self._read_records()
            kept = [
                record
                for record in records
                if not (isinstance(record, dict) and record.get("id") == reminder_id)
            ]
            if len(kept) == len(records):
                return False
            self._store.write(self._path, kept)
        return True

    async def cancel(self, reminder_id: str) -> bool:
        self._registry.cancel(self.task_name(reminder_id))
        return await self.remove(reminder_id)

    async def list_for_user(self, user_id: int) -> List[Reminder]:
        async with self._locks.hold(self._path):
            records = self._read_records()
        reminders = []
        for record in records:
            try:
                reminder = parse_reminder(record)
            except ValidationError:
                continue
            if reminder.user_id == user_id:
                reminders.append(reminder)
        return sorted(reminders, key=lambda reminder: reminder.remind_at)

    async def restore(self) -> int:
        """Reschedule pending reminders after a restart; return how many."""

        now = self._clock()
        async with self._locks.hold(self._path):
            result = self._store.load(self._path)
            if result.status is LoadStatus.CORRUPT:
                LOGGER.error("Reminders file %s is unreadable; nothing restored", self._path)
                return 0
            records = result.value if isinstance(result.value, list) else []
            if result.value is not None and not isinstance(result.value, list):
                LOGGER.warning("Expected a list of reminders in %s", self._path)

            active: List[Reminder] = []
            for index, record in enumerate(records):
                try:
                    reminder = parse_reminder(record)
                except ValidationError as exc:
                    LOGGER.warning("Reminder[%s] failed validation: %s", index, exc)
                    continue
                if reminder.remind_at <= now:
                    LOGGER.debug("Dropping expired reminder %s", reminder.id)
                    continue
                active.append(reminder)

            self._store.write(self._path, [reminder.to_dict() for reminder in active])

        for reminder in active:
            self._schedule(reminder, reminder.remind_at - now)
            LOGGER.debug(
                "Restored reminder for user %s (%s minutes left)",
                reminder.user_id,
                round((reminder.remind_at - now) / 60),
            )
        LOGGER.info("Restored %s active reminders", len(active))
        return len(active)

    def _read_records(self) -> List[Any]:
        records = self._store.read(self._path, [])
        if not isinstance(records, list):
            LOGGER.warning("Expected a list of reminders in %s; starting empty", self._path)
            return []
        return records

    def _schedule(self, reminder: Reminder, delay: float) -> Optional[TaskEntry]:
        # The callback gets the frozen reminder itself, never shared mutable state.
        return self._registry.schedule_once(
            self.task_name(reminder.id), delay, functools.partial(self._deliver, reminder)
        )

    async def _deliver(self, reminder: Reminder) -> None:
        try:
            await self._notifier.send(build_reminder_notification(reminder))
        except Exception:
            LOGGER.exception("Error sending reminder %s", reminder.id)
        await self.remove(reminder.id)
