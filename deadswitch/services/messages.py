# deadswitch/services/messages.py
from __future__ import annotations

import base64
from datetime import datetime
from typing import Optional
from urllib.parse import quote

from deadswitch.domain import MAX_SMS_LENGTH, Attachment, Channel, OutboundMessage, Recipient, Switch
from deadswitch.services.reminder_tracker import format_time_remaining

TRIGGER_SUBJECT = "[IMPORTANT] Dead Man's Switch Triggered"
REMINDER_SUBJECT = "Reminder: check in to your Dead Man's Switch"
WARNING_SUBJECT = "Warning: your Dead Man's Switch is about to trigger"


def encode_key(key: bytes) -> str:
    return base64.urlsafe_b64encode(key).decode("ascii").rstrip("=")


def unlock_url(base_url: str, switch_id: int, key: bytes, content_filter: Optional[str] = None) -> str:
    """Ключ уходит во фрагмент (#...), чтобы браузер не отправлял его на сервер."""
    url = f"{base_url.rstrip('/')}/unlock/{switch_id}"
    if content_filter:
        url += f"?filter={quote(content_filter)}"
    return f"{url}#{encode_key(key)}"


def build_trigger_message(
    switch: Switch,
    recipient: Recipient,
    *,
    base_url: str,
    default_message: str,
    attach_max_bytes: int = 0,
) -> OutboundMessage:
    message = switch.trigger_message or default_message
    key = switch.payload_key if switch.has_payload else None

    if recipient.channel == Channel.SMS:
        header = f"Dead Man's Switch from {switch.owner_email} was triggered."
        tail = f"Unlock: {unlock_url(base_url, switch.id, key, recipient.content_filter)}" if key else ""
        # строка со ссылкой и ключом влезает всегда, сокращаем только текст владельца
        room = MAX_SMS_LENGTH - len(header) - len(tail) - 2
        parts = [header, _clip(message, room), tail]
        return OutboundMessage(
            channel=Channel.SMS,
            address=recipient.address,
            subject=TRIGGER_SUBJECT,
            body="\n".join(p for p in parts if p),
        )

    lines = [
        f"Dear {recipient.display_name},",
        "",
        "A Dead Man's Switch has been triggered. This means the owner of this switch "
        "has not checked in within the specified time period.",
        "",
        "Message from the switch owner:",
        message,
    ]
    if recipient.personal_message:
        lines += ["", "A personal note for you:", recipient.personal_message]

    attachments: tuple[Attachment, ...] = ()
    if key:
        lines += [
            "",
            "The switch owner has left encrypted content for you.",
            f"Open it here: {unlock_url(base_url, switch.id, key, recipient.content_filter)}",
            f"Decryption key: {encode_key(key)}",
        ]
        payload = switch.encrypted_payload
        if payload and 0 < len(payload) <= attach_max_bytes:
            attachments = (Attachment(filename=f"switch-{switch.id}.enc", content=payload),)

    lines += [
        "",
        f"This switch was created by: {switch.owner_email}",
        "",
        "This is an automated message. The switch owner designated you as a recipient.",
    ]
    return OutboundMessage(
        channel=Channel.EMAIL,
        address=recipient.address,
        subject=TRIGGER_SUBJECT,
        body="\n".join(lines),
        attachments=attachments,
    )


def build_reminder_message(
    switch: Switch,
    now: datetime,
    *,
    base_url: str,
    subject: str = REMINDER_SUBJECT,
) -> OutboundMessage:
    """Письмо владельцу: и плановое напоминание, и вход в warning (subject=WARNING_SUBJECT)."""
    left = format_time_remaining(switch.next_deadline - now)
    body = "\n".join([
        f"Your Dead Man's Switch will trigger in {left} "
        f"(at {switch.next_deadline:%Y-%m-%d %H:%M} UTC).",
        "",
        "If you are fine, check in to reset the timer:",
        f"{base_url.rstrip('/')}/switches/{switch.id}",
        "",
        "If you do not check in, your recipients will be notified.",
    ])
    return OutboundMessage(
        channel=Channel.EMAIL,
        address=switch.owner_email,
        subject=subject,
        body=body,
    )


def _clip(text: str, room: int) -> str:
    if len(text) <= room:
        return text
    if room <= 3:
        return ""
    return text[: room - 3] + "..."
