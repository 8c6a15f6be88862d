"""Disclosure and reminder message content."""

from datetime import timedelta

from deadswitch.domain import MAX_SMS_LENGTH, Channel, Recipient, Switch, SwitchStatus
from deadswitch.services.messages import (
    REMINDER_SUBJECT,
    TRIGGER_SUBJECT,
    WARNING_SUBJECT,
    build_reminder_message,
    build_trigger_message,
    encode_key,
    unlock_url,
)

from tests.conftest import OWNER_EMAIL, T0

BASE = "https://switch.example.com/"
KEY = b"\x01\x02secret-key\xff"


def _switch(**overrides) -> Switch:
    values = dict(
        id=7,
        owner_id=1,
        owner_email=OWNER_EMAIL,
        is_enabled=True,
        timer_duration=timedelta(days=7),
        warning_period=timedelta(0),
        last_check_in=T0,
        next_deadline=T0 + timedelta(days=7),
        status=SwitchStatus.DELIVERED,
        has_triggered=True,
        version=3,
        trigger_message="Passwords are in the blue folder.",
        has_payload=True,
        encrypted_payload=b"ciphertext",
        payload_key=KEY,
    )
    values.update(overrides)
    return Switch(**values)


def _recipient(**overrides) -> Recipient:
    values = dict(id=1, switch_id=7, address="alice@example.com", channel=Channel.EMAIL, name="Alice")
    values.update(overrides)
    return Recipient(**values)


def test_unlock_url_carries_key_in_fragment():
    url = unlock_url(BASE, 7, KEY, "photos only")

    assert url.startswith("https://switch.example.com/unlock/7?filter=photos%20only#")
    assert url.endswith("#" + encode_key(KEY))
    assert "=" not in encode_key(KEY)


def test_email_disclosure_contents():
    msg = build_trigger_message(
        _switch(),
        _recipient(personal_message="Thank you for everything."),
        base_url=BASE,
        default_message="default",
        attach_max_bytes=1024,
    )

    assert msg.channel == Channel.EMAIL
    assert msg.subject == TRIGGER_SUBJECT
    assert "Dear Alice," in msg.body
    assert "Passwords are in the blue folder." in msg.body
    assert "Thank you for everything." in msg.body
    assert OWNER_EMAIL in msg.body
    assert encode_key(KEY) in msg.body
    assert [a.filename for a in msg.attachments] == ["switch-7.enc"]
    assert msg.attachments[0].content == b"ciphertext"


def test_large_payload_is_not_attached():
    msg = build_trigger_message(_switch(), _recipient(), base_url=BASE, default_message="d", attach_max_bytes=4)

    assert msg.attachments == ()
    assert "/unlock/7#" in msg.body


def test_default_message_without_payload():
    msg = build_trigger_message(
        _switch(trigger_message=None, has_payload=False, payload_key=None, encrypted_payload=None),
        _recipient(name=None),
        base_url=BASE,
        default_message="This is an automated message.",
    )

    assert "This is an automated message." in msg.body
    assert "Dear alice@example.com," in msg.body
    assert "unlock" not in msg.body
    assert msg.attachments == ()


def test_sms_disclosure_is_short():
    msg = build_trigger_message(
        _switch(),
        _recipient(address="+15550001111", channel=Channel.SMS),
        base_url=BASE,
        default_message="d",
        attach_max_bytes=1024,
    )

    assert msg.channel == Channel.SMS
    assert msg.attachments == ()
    assert "Unlock: https://switch.example.com/unlock/7#" in msg.body
    assert "Dear" not in msg.body


def test_long_sms_disclosure_keeps_unlock_line():
    """The owner's text gets shortened, the link with the key never does."""
    recipient = _recipient(address="+15550001111", channel=Channel.SMS, content_filter="f" * 200)

    msg = build_trigger_message(
        _switch(trigger_message="x" * 5000),
        recipient,
        base_url=BASE,
        default_message="d",
    )

    assert len(msg.body) <= MAX_SMS_LENGTH
    assert msg.body.endswith(f"Unlock: {unlock_url(BASE, 7, KEY, recipient.content_filter)}")
    assert "x" * 100 + "..." in msg.body


def test_short_sms_disclosure_is_not_clipped():
    msg = build_trigger_message(
        _switch(),
        _recipient(address="+15550001111", channel=Channel.SMS),
        base_url=BASE,
        default_message="d",
    )

    assert "Passwords are in the blue folder.\n" in msg.body
    assert "..." not in msg.body


def test_reminder_goes_to_owner():
    sw = _switch(has_triggered=False, status=SwitchStatus.ACTIVE)

    msg = build_reminder_message(sw, T0 + timedelta(days=5), base_url=BASE)

    assert msg.address == OWNER_EMAIL
    assert msg.channel == Channel.EMAIL
    assert msg.subject == REMINDER_SUBJECT
    assert "2 days" in msg.body
    assert "https://switch.example.com/switches/7" in msg.body
    assert encode_key(KEY) not in msg.body


def test_warning_notice_uses_its_own_subject():
    sw = _switch(has_triggered=False, status=SwitchStatus.ACTIVE)

    msg = build_reminder_message(sw, T0 + timedelta(days=6), base_url=BASE, subject=WARNING_SUBJECT)

    assert msg.address == OWNER_EMAIL
    assert msg.subject == WARNING_SUBJECT
    assert "1 day" in msg.body
