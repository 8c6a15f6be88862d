from datetime import datetime
from sqlalchemy import BigInteger, ForeignKey, Integer, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from deadswitch.models.base import Base, UTCDateTime


class ReminderModel(Base):
    __tablename__ = "switch_reminders"
    __table_args__ = (UniqueConstraint("switch_id", "offset_seconds"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    switch_id: Mapped[int] = mapped_column(
        ForeignKey("switches.id", ondelete="CASCADE"), index=True, nullable=False
    )
    offset_seconds: Mapped[int] = mapped_column(BigInteger, nullable=False)
    # маркер «отправлено в текущем цикле», сбрасывается при check-in
    sent_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)

    switch = relationship("SwitchModel", back_populates="reminders")
