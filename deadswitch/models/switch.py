from datetime import datetime
from sqlalchemy import BigInteger, Boolean, Integer, LargeBinary, String, Text, Index
from sqlalchemy.orm import Mapped, mapped_column, relationship

from deadswitch.models.base import Base, UTCDateTime
from deadswitch.utils.dates import now_utc


class SwitchModel(Base):
    __tablename__ = "switches"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    owner_id: Mapped[int] = mapped_column(BigInteger, index=True, nullable=False)
    owner_email: Mapped[str] = mapped_column(String(320), nullable=False)

    is_enabled: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    timer_seconds: Mapped[int] = mapped_column(BigInteger, nullable=False)
    warning_seconds: Mapped[int] = mapped_column(BigInteger, default=0, nullable=False)
    last_check_in: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    # = last_check_in + timer_seconds; храним, чтобы claim сравнивал в SQL
    next_deadline: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)

    # active | warning | delivered | disabled
    status: Mapped[str] = mapped_column(String(16), default="disabled", nullable=False)
    has_triggered: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    triggered_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    version: Mapped[int] = mapped_column(Integer, default=1, nullable=False)

    trigger_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    encrypted_payload: Mapped[bytes | None] = mapped_column(LargeBinary, nullable=True)
    payload_key: Mapped[bytes | None] = mapped_column(LargeBinary, nullable=True)
    has_payload: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    # none | pending | complete | partial | failed
    delivery_status: Mapped[str] = mapped_column(String(16), default="none", nullable=False)
    recipients_sent: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    recipients_failed: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    delivery_error: Mapped[str | None] = mapped_column(String(1000), nullable=True)

    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=now_utc, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime, default=now_utc, onupdate=now_utc, nullable=False
    )

    recipients = relationship("RecipientModel", back_populates="switch", cascade="all, delete-orphan")
    reminders = relationship("ReminderModel", back_populates="switch", cascade="all, delete-orphan")

    __table_args__ = (
        Index("ix_switches_eligible", "is_enabled", "has_triggered", "next_deadline"),
    )

    def __repr__(self) -> str:
        return (
            f"<Switch id={self.id} owner={self.owner_id} status={self.status} "
            f"deadline={self.next_deadline} v={self.version}>"
        )
