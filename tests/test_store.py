"""SwitchStore: conditional updates are the only arbiter of races."""

from datetime import timedelta

import pytest

from deadswitch.domain import Channel, DeliveryStatus, SwitchStatus, TriggerOutcome
from deadswitch.errors import SwitchNotFound

from tests.conftest import OWNER_ID, T0


@pytest.mark.asyncio
async def test_claim_trigger_has_exactly_one_winner(make_switch, store):
    """The second claim with the same read version loses."""
    sw = await make_switch(timer=timedelta(hours=1))
    now = T0 + timedelta(hours=1)

    won, claimed = await store.claim_trigger(sw.id, sw.version, now)
    again, nothing = await store.claim_trigger(sw.id, sw.version, now)

    assert won and claimed is not None
    assert claimed.has_triggered
    assert claimed.status == SwitchStatus.DELIVERED
    assert claimed.delivery_status == DeliveryStatus.PENDING
    assert claimed.version == sw.version + 1
    assert not again and nothing is None


@pytest.mark.asyncio
async def test_claim_trigger_refuses_before_deadline(make_switch, store):
    sw = await make_switch(timer=timedelta(hours=1))

    won, _ = await store.claim_trigger(sw.id, sw.version, T0 + timedelta(minutes=59))

    assert not won
    assert not (await store.get(sw.id)).has_triggered


@pytest.mark.asyncio
async def test_claim_trigger_refuses_disabled_switch(make_switch, store):
    sw = await make_switch(timer=timedelta(hours=1), enabled=False)

    won, _ = await store.claim_trigger(sw.id, sw.version, T0 + timedelta(days=1))

    assert not won


@pytest.mark.asyncio
async def test_only_claim_winner_sees_the_key(make_switch, store):
    """Reads never load secrets; the winning claim does."""
    sw = await make_switch(timer=timedelta(hours=1), encrypted_payload=b"blob", payload_key=b"key-bytes")

    plain = await store.get(sw.id)
    assert plain.has_payload
    assert plain.payload_key is None
    assert plain.encrypted_payload is None

    _, claimed = await store.claim_trigger(sw.id, sw.version, T0 + timedelta(hours=2))
    assert claimed.payload_key == b"key-bytes"
    assert claimed.encrypted_payload == b"blob"
    assert "key-bytes" not in repr(claimed)


@pytest.mark.asyncio
async def test_check_in_with_stale_version_returns_fresh_row(make_switch, store):
    sw = await make_switch(timer=timedelta(hours=1))
    ok, fresh = await store.check_in(sw.id, sw.version, T0 + timedelta(minutes=10), sw.timer_duration)
    assert ok
    assert fresh.next_deadline == T0 + timedelta(hours=1, minutes=10)

    ok, current = await store.check_in(sw.id, sw.version, T0 + timedelta(minutes=20), sw.timer_duration)
    assert not ok
    assert current.version == fresh.version
    assert current.next_deadline == fresh.next_deadline


@pytest.mark.asyncio
async def test_check_in_loses_to_earlier_claim(make_switch, store):
    """Whichever commits first wins: a claimed switch can't be checked in."""
    sw = await make_switch(timer=timedelta(hours=1))
    await store.claim_trigger(sw.id, sw.version, T0 + timedelta(hours=1))

    ok, current = await store.check_in(sw.id, sw.version, T0 + timedelta(hours=1), sw.timer_duration)

    assert not ok
    assert current.has_triggered


@pytest.mark.asyncio
async def test_reminder_marker_is_claimed_once_per_cycle(make_switch, store):
    sw = await make_switch(timer=timedelta(days=7), reminders=[timedelta(days=1)])
    reminder = (await store.list_reminders([sw.id]))[sw.id][0]
    now = T0 + timedelta(days=6)

    first = await store.update_reminder_marker(sw.id, reminder.id, True, cycle=sw.last_check_in, now=now)
    second = await store.update_reminder_marker(sw.id, reminder.id, True, cycle=sw.last_check_in, now=now)

    assert first is True
    assert second is False
    marked = (await store.list_reminders([sw.id]))[sw.id][0]
    assert marked.sent_at == now


@pytest.mark.asyncio
async def test_reminder_marker_rejects_stale_cycle(make_switch, store):
    """A tick that read the switch before a check-in can't mark the new cycle."""
    sw = await make_switch(timer=timedelta(days=7), reminders=[timedelta(days=1)])
    reminder = (await store.list_reminders([sw.id]))[sw.id][0]
    await store.check_in(sw.id, sw.version, T0 + timedelta(days=5), sw.timer_duration)

    claimed = await store.update_reminder_marker(
        sw.id, reminder.id, True, cycle=sw.last_check_in, now=T0 + timedelta(days=6)
    )

    assert claimed is False


@pytest.mark.asyncio
async def test_release_marker_only_touches_own_mark(make_switch, store):
    sw = await make_switch(timer=timedelta(days=7), reminders=[timedelta(days=1)])
    reminder = (await store.list_reminders([sw.id]))[sw.id][0]
    mine = T0 + timedelta(days=6)
    await store.update_reminder_marker(sw.id, reminder.id, True, cycle=sw.last_check_in, now=mine)

    assert not await store.update_reminder_marker(sw.id, reminder.id, False, now=mine + timedelta(seconds=1))
    assert await store.update_reminder_marker(sw.id, reminder.id, False, now=mine)
    assert (await store.list_reminders([sw.id]))[sw.id][0].sent_at is None


@pytest.mark.asyncio
async def test_marking_requires_cycle_and_now(make_switch, store):
    sw = await make_switch(timer=timedelta(days=7), reminders=[timedelta(days=1)])
    reminder = (await store.list_reminders([sw.id]))[sw.id][0]

    with pytest.raises(ValueError):
        await store.update_reminder_marker(sw.id, reminder.id, True)


@pytest.mark.asyncio
async def test_record_delivery_ignored_for_untriggered_switch(make_switch, store):
    sw = await make_switch(timer=timedelta(hours=1))

    await store.record_delivery(TriggerOutcome(switch_id=sw.id, recipients_sent=3))

    fresh = await store.get(sw.id)
    assert fresh.recipients_sent == 0
    assert fresh.delivery_status == DeliveryStatus.NONE


@pytest.mark.asyncio
async def test_get_respects_owner(make_switch, store):
    sw = await make_switch()

    assert (await store.get(sw.id, owner_id=OWNER_ID)).id == sw.id
    with pytest.raises(SwitchNotFound):
        await store.get(sw.id, owner_id=OWNER_ID + 1)


@pytest.mark.asyncio
async def test_delete_switch_removes_children(make_switch, store):
    sw = await make_switch(
        recipients=("alice@example.com", {"address": "+15550001111", "channel": Channel.SMS}),
        reminders=[timedelta(days=1)],
    )

    assert await store.delete_switch(sw.id)

    assert await store.list_recipients(sw.id) == []
    assert await store.list_reminders([sw.id]) == {}
    with pytest.raises(SwitchNotFound):
        await store.get(sw.id)


@pytest.mark.asyncio
async def test_list_for_owner_and_eligible(make_switch, store):
    enabled = await make_switch()
    disabled = await make_switch(enabled=False)
    await make_switch(owner_id=OWNER_ID + 1)

    mine = {s.id for s in await store.list_for_owner(OWNER_ID)}
    eligible = {s.id for s in await store.list_eligible()}

    assert mine == {enabled.id, disabled.id}
    assert enabled.id in eligible
    assert disabled.id not in eligible
