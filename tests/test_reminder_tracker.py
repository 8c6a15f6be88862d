"""Pure due-ness decisions."""

from datetime import timedelta

import pytest

from deadswitch.domain import Reminder, Switch, SwitchStatus
from deadswitch.services.reminder_tracker import (
    due_reminders,
    format_time_remaining,
    in_warning_window,
    needs_warning_status,
)

from tests.conftest import T0


def _switch(**overrides) -> Switch:
    values = dict(
        id=1,
        owner_id=1,
        owner_email="owner@example.com",
        is_enabled=True,
        timer_duration=timedelta(days=7),
        warning_period=timedelta(days=1),
        last_check_in=T0,
        next_deadline=T0 + timedelta(days=7),
        status=SwitchStatus.ACTIVE,
        has_triggered=False,
        version=1,
    )
    values.update(overrides)
    return Switch(**values)


def _reminders(*offsets_hours, marked=()):
    return [
        Reminder(
            id=i,
            switch_id=1,
            offset_before_deadline=timedelta(hours=h),
            sent_at=T0 if i in marked else None,
        )
        for i, h in enumerate(offsets_hours, start=1)
    ]


def test_due_reminders_largest_offset_first():
    reminders = _reminders(3, 48, 24)

    due = due_reminders(_switch(), reminders, T0 + timedelta(days=6, hours=22))

    assert [r.offset_before_deadline for r in due] == [
        timedelta(hours=48),
        timedelta(hours=24),
        timedelta(hours=3),
    ]


def test_marked_reminders_are_skipped():
    due = due_reminders(_switch(), _reminders(48, 24, marked={1}), T0 + timedelta(days=6, hours=1))

    assert [r.id for r in due] == [2]


def test_nothing_due_early_in_cycle():
    assert due_reminders(_switch(), _reminders(24), T0 + timedelta(days=1)) == []


@pytest.mark.parametrize(
    "overrides",
    [
        {"is_enabled": False},
        {"has_triggered": True},
    ],
)
def test_no_reminders_for_inactive_switch(overrides):
    assert due_reminders(_switch(**overrides), _reminders(24), T0 + timedelta(days=6, hours=1)) == []


def test_no_reminders_after_deadline():
    assert due_reminders(_switch(), _reminders(24), T0 + timedelta(days=7)) == []


def test_reminders_of_other_switches_ignored():
    other = [Reminder(id=9, switch_id=2, offset_before_deadline=timedelta(hours=24))]

    assert due_reminders(_switch(), other, T0 + timedelta(days=6, hours=1)) == []


def test_warning_window():
    sw = _switch()

    assert not in_warning_window(sw, T0 + timedelta(days=5))
    assert in_warning_window(sw, T0 + timedelta(days=6))
    assert needs_warning_status(sw, T0 + timedelta(days=6, hours=1))
    assert not needs_warning_status(_switch(status=SwitchStatus.WARNING), T0 + timedelta(days=6, hours=1))
    assert not in_warning_window(sw, T0 + timedelta(days=7))
    assert not in_warning_window(_switch(warning_period=timedelta(0)), T0 + timedelta(days=6, hours=23))


@pytest.mark.parametrize(
    "delta, expected",
    [
        (timedelta(weeks=1), "1 week"),
        (timedelta(days=2), "2 days"),
        (timedelta(hours=3), "3 hours"),
        (timedelta(minutes=45), "45 minutes"),
        (timedelta(days=1, hours=5), "29 hours"),
        (timedelta(days=1, hours=5, seconds=10), "1 day"),
        (timedelta(seconds=30), "less than a minute"),
        (timedelta(seconds=-5), "less than a minute"),
    ],
)
def test_format_time_remaining(delta, expected):
    assert format_time_remaining(delta) == expected
