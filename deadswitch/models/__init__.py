from .base import Base
from .switch import SwitchModel
from .recipient import RecipientModel
from .reminder import ReminderModel

__all__ = ["Base", "SwitchModel", "RecipientModel", "ReminderModel"]
