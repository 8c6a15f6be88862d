# deadswitch/errors.py
from __future__ import annotations


class SwitchError(Exception):
    """Базовая ошибка домена. code уходит наружу в HTTP-ответ."""

    code = "switch_error"

    def __init__(self, message: str = "", *, switch_id: int | None = None) -> None:
        super().__init__(message or self.code)
        self.switch_id = switch_id


class SwitchNotFound(SwitchError):
    code = "not_found"


class SwitchDisabled(SwitchError):
    code = "disabled"


class AlreadyTriggered(SwitchError):
    """Свитч уже сработал, отката нет."""

    code = "already_triggered"


class InvalidSwitchConfig(SwitchError):
    code = "invalid_config"


class ChannelNotConfigured(SwitchError):
    """Для канала нет провайдера или у провайдера нет кредов."""

    code = "channel_not_configured"


class DeliveryError(SwitchError):
    """Все попытки отправки одному получателю провалились."""

    code = "delivery_failed"


class SwitchConflict(SwitchError):
    """Условный UPDATE проиграл несколько раз подряд, клиенту стоит повторить."""

    code = "conflict"
