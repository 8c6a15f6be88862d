"""SMTP and Twilio adapters without touching the network."""

import pytest

from deadswitch.domain import Attachment, Channel, OutboundMessage
from deadswitch.errors import ChannelNotConfigured, DeliveryError
from deadswitch.providers.email_provider import SmtpEmailProvider
from deadswitch.providers.sms_provider import MAX_SMS_LENGTH, TwilioSmsProvider


def test_email_build_with_attachment():
    provider = SmtpEmailProvider("smtp.example.com", from_address="switch@example.com", from_name="Switch")
    msg = OutboundMessage(
        channel=Channel.EMAIL,
        address="alice@example.com",
        subject="Hello",
        body="Body text",
        attachments=(Attachment(filename="switch-1.enc", content=b"\x00\x01"),),
    )

    em = provider._build(msg)

    assert em["To"] == "alice@example.com"
    assert em["From"] == "Switch <switch@example.com>"
    assert em["Subject"] == "Hello"
    attachments = list(em.iter_attachments())
    assert [a.get_filename() for a in attachments] == ["switch-1.enc"]
    assert attachments[0].get_content() == b"\x00\x01"


@pytest.mark.asyncio
async def test_email_send_goes_through_sync_sender(monkeypatch):
    provider = SmtpEmailProvider("smtp.example.com")
    sent = []
    monkeypatch.setattr(provider, "_send_sync", lambda em: sent.append(em["To"]))

    await provider.send(OutboundMessage(Channel.EMAIL, "alice@example.com", "s", "b"))

    assert sent == ["alice@example.com"]


@pytest.mark.asyncio
async def test_email_without_host_is_not_configured():
    provider = SmtpEmailProvider(None)

    assert not provider.is_configured()
    with pytest.raises(ChannelNotConfigured):
        await provider.send(OutboundMessage(Channel.EMAIL, "alice@example.com", "s", "b"))


@pytest.mark.asyncio
async def test_sms_refuses_oversized_body(monkeypatch):
    """Never cut an SMS: a clipped disclosure could lose the unlock link."""
    provider = TwilioSmsProvider("AC123", "token", "+15550000000")
    sent = []
    monkeypatch.setattr(provider, "_send_sync", lambda to, body: sent.append(body) or "SM1")

    with pytest.raises(DeliveryError):
        await provider.send(OutboundMessage(Channel.SMS, "+15550001111", "s", "x" * (MAX_SMS_LENGTH + 1)))
    assert sent == []

    await provider.send(OutboundMessage(Channel.SMS, "+15550001111", "s", "x" * MAX_SMS_LENGTH))
    assert sent == ["x" * MAX_SMS_LENGTH]


@pytest.mark.asyncio
async def test_sms_without_credentials_is_not_configured():
    provider = TwilioSmsProvider(None, None, None)

    with pytest.raises(ChannelNotConfigured):
        await provider.send(OutboundMessage(Channel.SMS, "+15550001111", "s", "b"))
