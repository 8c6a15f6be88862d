# deadswitch/providers/sms_provider.py
from __future__ import annotations

import asyncio
import logging
from typing import Optional

from twilio.rest import Client as TwilioClient

from deadswitch.domain import MAX_SMS_LENGTH, Channel, OutboundMessage
from deadswitch.errors import ChannelNotConfigured, DeliveryError

logger = logging.getLogger(__name__)



class TwilioSmsProvider:
    channel = Channel.SMS

    def __init__(
        self,
        account_sid: Optional[str],
        auth_token: Optional[str],
        from_number: Optional[str],
    ) -> None:
        self.account_sid = account_sid
        self.auth_token = auth_token
        self.from_number = from_number
        self._client: Optional[TwilioClient] = None

    def is_configured(self) -> bool:
        return bool(self.account_sid and self.auth_token and self.from_number)

    @property
    def client(self) -> TwilioClient:
        """Ленивая инициализация клиента."""
        if self._client is None:
            self._client = TwilioClient(self.account_sid, self.auth_token)
        return self._client

    def _send_sync(self, to: str, body: str) -> str:
        message = self.client.messages.create(from_=self.from_number, to=to, body=body)
        return message.sid

    async def send(self, msg: OutboundMessage) -> None:
        if not self.is_configured():
            raise ChannelNotConfigured("Twilio credentials not configured")
        # не режем: обрезанное раскрытие может потерять ссылку с ключом
        if len(msg.body) > MAX_SMS_LENGTH:
            raise DeliveryError(f"sms body is {len(msg.body)} chars, limit is {MAX_SMS_LENGTH}")
        sid = await asyncio.to_thread(self._send_sync, msg.address, msg.body)
        logger.info("sms sent: sid=%s", sid)
