# deadswitch/providers/email_provider.py
from __future__ import annotations

import asyncio
import logging
import smtplib
from email.message import EmailMessage
from email.utils import formataddr
from typing import Optional

from deadswitch.domain import Channel, OutboundMessage
from deadswitch.errors import ChannelNotConfigured

logger = logging.getLogger(__name__)


class SmtpEmailProvider:
    """
    SMTP-отправка. smtplib синхронный, поэтому уходим в поток: медленный
    сервер не должен держать event loop.
    """

    channel = Channel.EMAIL

    def __init__(
        self,
        host: Optional[str],
        port: int = 587,
        *,
        user: Optional[str] = None,
        password: Optional[str] = None,
        use_ssl: bool = False,
        starttls: bool = True,
        from_address: str = "no-reply@localhost",
        from_name: Optional[str] = None,
        timeout: float = 30.0,
    ) -> None:
        self.host = host
        self.port = port
        self.user = user
        self.password = password
        self.use_ssl = use_ssl
        self.starttls = starttls
        self.from_address = from_address
        self.from_name = from_name
        self.timeout = timeout

    def is_configured(self) -> bool:
        return bool(self.host)

    def _build(self, msg: OutboundMessage) -> EmailMessage:
        em = EmailMessage()
        em["Subject"] = msg.subject
        em["From"] = formataddr((self.from_name or "", self.from_address))
        em["To"] = msg.address
        em.set_content(msg.body)
        for att in msg.attachments:
            maintype, _, subtype = att.mime_type.partition("/")
            em.add_attachment(
                att.content,
                maintype=maintype,
                subtype=subtype or "octet-stream",
                filename=att.filename,
            )
        return em

    def _send_sync(self, em: EmailMessage) -> None:
        if self.use_ssl:
            server = smtplib.SMTP_SSL(self.host, self.port, timeout=self.timeout)
        else:
            server = smtplib.SMTP(self.host, self.port, timeout=self.timeout)
        with server:
            if not self.use_ssl and self.starttls:
                server.starttls()
            if self.user and self.password:
                server.login(self.user, self.password)
            server.send_message(em)

    async def send(self, msg: OutboundMessage) -> None:
        if not self.is_configured():
            raise ChannelNotConfigured("SMTP is not configured")
        await asyncio.to_thread(self._send_sync, self._build(msg))
        logger.info("email sent: subject=%r attachments=%d", msg.subject, len(msg.attachments))
