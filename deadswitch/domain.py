# deadswitch/domain.py
"""
Плоские записи, которыми оперируют сервисы. ORM-модели живут только внутри
репозиториев, наружу отдаём эти dataclass'ы.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Optional


class SwitchStatus(str, Enum):
    ACTIVE = "active"
    WARNING = "warning"
    DELIVERED = "delivered"
    DISABLED = "disabled"


class DeliveryStatus(str, Enum):
    NONE = "none"
    PENDING = "pending"      # claim взят, итог доставки ещё не записан
    COMPLETE = "complete"
    PARTIAL = "partial"
    FAILED = "failed"


class Channel(str, Enum):
    EMAIL = "email"
    SMS = "sms"


# длинные тексты Twilio режет на сегменты, больше этого не принимает
MAX_SMS_LENGTH = 1600


@dataclass(frozen=True)
class Switch:
    id: int
    owner_id: int
    owner_email: str
    is_enabled: bool
    timer_duration: timedelta
    warning_period: timedelta
    last_check_in: datetime
    next_deadline: datetime
    status: SwitchStatus
    has_triggered: bool
    version: int
    triggered_at: Optional[datetime] = None
    trigger_message: Optional[str] = None
    has_payload: bool = False
    delivery_status: DeliveryStatus = DeliveryStatus.NONE
    recipients_sent: int = 0
    recipients_failed: int = 0
    delivery_error: Optional[str] = None
    # Секреты: грузятся только победителем claim, в repr не попадают
    encrypted_payload: Optional[bytes] = field(default=None, repr=False)
    payload_key: Optional[bytes] = field(default=None, repr=False)

    @property
    def warning_starts_at(self) -> datetime:
        return self.next_deadline - self.warning_period


@dataclass(frozen=True)
class Recipient:
    id: int
    switch_id: int
    address: str
    channel: Channel
    name: Optional[str] = None
    personal_message: Optional[str] = None
    content_filter: Optional[str] = None

    @property
    def display_name(self) -> str:
        return self.name or self.address


@dataclass(frozen=True)
class Reminder:
    id: int
    switch_id: int
    offset_before_deadline: timedelta
    sent_at: Optional[datetime] = None

    @property
    def is_marked(self) -> bool:
        return self.sent_at is not None

    def due_at(self, switch: Switch) -> datetime:
        return switch.next_deadline - self.offset_before_deadline


@dataclass(frozen=True)
class Attachment:
    filename: str
    content: bytes = field(repr=False)
    mime_type: str = "application/octet-stream"


@dataclass(frozen=True)
class OutboundMessage:
    channel: Channel
    address: str
    subject: str
    body: str = field(repr=False)
    attachments: tuple[Attachment, ...] = ()


@dataclass
class TriggerOutcome:
    switch_id: int
    recipients_sent: int = 0
    recipients_failed: int = 0
    errors: list[str] = field(default_factory=list)

    @property
    def delivery_status(self) -> DeliveryStatus:
        if self.recipients_failed == 0 and self.recipients_sent > 0:
            return DeliveryStatus.COMPLETE
        if self.recipients_sent > 0:
            return DeliveryStatus.PARTIAL
        return DeliveryStatus.FAILED
