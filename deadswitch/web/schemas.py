# deadswitch/web/schemas.py
from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import Base64Bytes, BaseModel, Field

from deadswitch.domain import Channel, DeliveryStatus, Recipient, Reminder, Switch, SwitchStatus
from deadswitch.services.switch_service import SwitchDetails


# ---------- вход ----------

class RecipientIn(BaseModel):
    address: str = Field(min_length=3, max_length=320)
    channel: Channel = Channel.EMAIL
    name: Optional[str] = Field(default=None, max_length=100)
    personal_message: Optional[str] = None
    content_filter: Optional[str] = Field(default=None, max_length=200)


class SwitchCreate(BaseModel):
    owner_email: str = Field(min_length=3, max_length=320)
    timer_seconds: int
    warning_seconds: int = 0
    trigger_message: Optional[str] = None
    # base64 на входе; шифрует клиент, мы храним как есть
    encrypted_payload: Optional[Base64Bytes] = None
    payload_key: Optional[Base64Bytes] = None
    recipients: List[RecipientIn] = Field(default_factory=list)
    reminder_offsets_seconds: Optional[List[int]] = None
    enabled: bool = False


class SwitchUpdate(BaseModel):
    timer_seconds: Optional[int] = None
    warning_seconds: Optional[int] = None
    trigger_message: Optional[str] = None
    is_enabled: Optional[bool] = None
    encrypted_payload: Optional[Base64Bytes] = None
    payload_key: Optional[Base64Bytes] = None


class ReminderIn(BaseModel):
    offset_seconds: int


# ---------- выход ----------

class RecipientOut(BaseModel):
    id: int
    address: str
    channel: Channel
    name: Optional[str] = None
    personal_message: Optional[str] = None
    content_filter: Optional[str] = None

    @classmethod
    def from_record(cls, r: Recipient) -> "RecipientOut":
        return cls(
            id=r.id,
            address=r.address,
            channel=r.channel,
            name=r.name,
            personal_message=r.personal_message,
            content_filter=r.content_filter,
        )


class ReminderOut(BaseModel):
    id: int
    offset_seconds: int
    sent_at: Optional[datetime] = None

    @classmethod
    def from_record(cls, r: Reminder) -> "ReminderOut":
        return cls(id=r.id, offset_seconds=int(r.offset_before_deadline.total_seconds()), sent_at=r.sent_at)


class SwitchOut(BaseModel):
    """Статус свитча. payload_key сюда не попадает никогда."""

    id: int
    owner_email: str
    is_enabled: bool
    status: SwitchStatus
    timer_seconds: int
    warning_seconds: int
    last_check_in: datetime
    next_deadline: datetime
    has_triggered: bool
    triggered_at: Optional[datetime] = None
    trigger_message: Optional[str] = None
    has_payload: bool
    delivery_status: DeliveryStatus
    recipients_sent: int
    recipients_failed: int
    delivery_error: Optional[str] = None
    version: int

    @classmethod
    def from_record(cls, sw: Switch) -> "SwitchOut":
        return cls(
            id=sw.id,
            owner_email=sw.owner_email,
            is_enabled=sw.is_enabled,
            status=sw.status,
            timer_seconds=int(sw.timer_duration.total_seconds()),
            warning_seconds=int(sw.warning_period.total_seconds()),
            last_check_in=sw.last_check_in,
            next_deadline=sw.next_deadline,
            has_triggered=sw.has_triggered,
            triggered_at=sw.triggered_at,
            trigger_message=sw.trigger_message,
            has_payload=sw.has_payload,
            delivery_status=sw.delivery_status,
            recipients_sent=sw.recipients_sent,
            recipients_failed=sw.recipients_failed,
            delivery_error=sw.delivery_error,
            version=sw.version,
        )


class SwitchDetailsOut(SwitchOut):
    recipients: List[RecipientOut] = Field(default_factory=list)
    reminders: List[ReminderOut] = Field(default_factory=list)
    unconfigured_channels: List[Channel] = Field(default_factory=list)

    @classmethod
    def from_details(cls, d: SwitchDetails) -> "SwitchDetailsOut":
        base = SwitchOut.from_record(d.switch).model_dump()
        return cls(
            **base,
            recipients=[RecipientOut.from_record(r) for r in d.recipients],
            reminders=[ReminderOut.from_record(r) for r in d.reminders],
            unconfigured_channels=d.unconfigured_channels,
        )


class PayloadOut(BaseModel):
    switch_id: int
    encrypted_payload: str  # base64
    triggered_at: Optional[datetime] = None
