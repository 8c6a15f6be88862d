# deadswitch/services/reminder_tracker.py
from __future__ import annotations

from datetime import datetime, timedelta
from typing import Iterable

from deadswitch.domain import Reminder, Switch, SwitchStatus

_UNITS = (
    (7 * 24 * 3600, "week"),
    (24 * 3600, "day"),
    (3600, "hour"),
    (60, "minute"),
)


def due_reminders(switch: Switch, reminders: Iterable[Reminder], now: datetime) -> list[Reminder]:
    """
    Какие напоминания стали «свежими» к моменту now.

    Свежее = now уже перешёл next_deadline - offset, а маркер текущего цикла
    пуст. Чистая функция: ничего не пишет, только выбирает. Дальние
    напоминания первыми.
    """
    if not switch.is_enabled or switch.has_triggered:
        return []
    if now >= switch.next_deadline:
        # дедлайн уже прошёл, это работа TriggerExecutor, не напоминаний
        return []
    due = [
        r for r in reminders
        if r.switch_id == switch.id and not r.is_marked and r.due_at(switch) <= now
    ]
    due.sort(key=lambda r: r.offset_before_deadline, reverse=True)
    return due


def in_warning_window(switch: Switch, now: datetime) -> bool:
    if switch.warning_period <= timedelta(0):
        return False
    return switch.warning_starts_at <= now < switch.next_deadline


def needs_warning_status(switch: Switch, now: datetime) -> bool:
    return switch.status == SwitchStatus.ACTIVE and in_warning_window(switch, now)


def format_time_remaining(delta: timedelta) -> str:
    """3 days / 1 week / 45 minutes. Некруглое значение показываем крупной единицей с округлением вниз."""
    total = max(int(delta.total_seconds()), 0)
    for size, name in _UNITS:
        if total >= size and total % size == 0:
            n = total // size
            return f"{n} {name}{'s' if n > 1 else ''}"
    for size, name in _UNITS:
        if total >= size:
            n = total // size
            return f"{n} {name}{'s' if n > 1 else ''}"
    return "less than a minute"
