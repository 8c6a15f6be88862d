from sqlalchemy import ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from deadswitch.models.base import Base


class RecipientModel(Base):
    __tablename__ = "switch_recipients"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    switch_id: Mapped[int] = mapped_column(
        ForeignKey("switches.id", ondelete="CASCADE"), index=True, nullable=False
    )
    address: Mapped[str] = mapped_column(String(320), nullable=False)
    channel: Mapped[str] = mapped_column(String(8), nullable=False)  # email | sms
    name: Mapped[str | None] = mapped_column(String(100), nullable=True)
    personal_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    content_filter: Mapped[str | None] = mapped_column(String(200), nullable=True)

    switch = relationship("SwitchModel", back_populates="recipients")
