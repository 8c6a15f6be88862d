# deadswitch/services/trigger_executor.py
from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import Optional

from deadswitch.domain import Recipient, Switch, TriggerOutcome
from deadswitch.errors import ChannelNotConfigured, DeliveryError
from deadswitch.repositories.store import SwitchStore
from deadswitch.services.messages import build_trigger_message
from deadswitch.services.notification_service import NotificationService

logger = logging.getLogger(__name__)


class TriggerExecutor:
    """
    Необратимое раскрытие:
      1) атомарный claim в сторе (ровно один победитель);
      2) веерная доставка всем получателям параллельно;
      3) запись счётчиков sent/failed.
    Ошибки доставки claim не откатывают: раскрытие уже случилось.
    """

    def __init__(
        self,
        store: SwitchStore,
        notifier: NotificationService,
        *,
        base_url: str,
        default_message: str,
        attach_max_bytes: int = 0,
    ) -> None:
        self.store = store
        self.notifier = notifier
        self.base_url = base_url
        self.default_message = default_message
        self.attach_max_bytes = attach_max_bytes

    async def execute(self, switch: Switch, now: datetime) -> Optional[TriggerOutcome]:
        """None: claim проигран (кто-то уже сработал или был check-in)."""
        won, claimed = await self.store.claim_trigger(switch.id, switch.version, now)
        if not won or claimed is None:
            logger.info("trigger claim lost", extra={"switch_id": switch.id})
            return None

        logger.warning(
            "switch triggered: deadline=%s owner=%s",
            claimed.next_deadline.isoformat(), claimed.owner_id,
            extra={"switch_id": claimed.id},
        )
        outcome = await self.deliver(claimed)
        try:
            await self.store.record_delivery(outcome)
        except Exception:
            # доставка уже ушла; статус останется pending и всплывёт при старте
            logger.exception("record_delivery failed", extra={"switch_id": claimed.id})
        return outcome

    async def deliver(self, switch: Switch) -> TriggerOutcome:
        outcome = TriggerOutcome(switch_id=switch.id)
        recipients = await self.store.list_recipients(switch.id)
        if not recipients:
            outcome.errors.append("no recipients")
            logger.error("triggered switch has no recipients", extra={"switch_id": switch.id})
            return outcome

        results = await asyncio.gather(
            *(self._deliver_one(switch, r) for r in recipients),
            return_exceptions=True,
        )
        for recipient, res in zip(recipients, results):
            if isinstance(res, BaseException):
                outcome.recipients_failed += 1
                outcome.errors.append(f"recipient {recipient.id}: {_describe(res)}")
            else:
                outcome.recipients_sent += 1

        level = logging.INFO if outcome.recipients_failed == 0 else logging.WARNING
        logger.log(
            level,
            "delivery finished: sent=%d failed=%d status=%s",
            outcome.recipients_sent, outcome.recipients_failed, outcome.delivery_status.value,
            extra={"switch_id": switch.id},
        )
        return outcome

    async def _deliver_one(self, switch: Switch, recipient: Recipient) -> None:
        msg = build_trigger_message(
            switch,
            recipient,
            base_url=self.base_url,
            default_message=self.default_message,
            attach_max_bytes=self.attach_max_bytes,
        )
        try:
            await self.notifier.send(msg, switch_id=switch.id)
        except (ChannelNotConfigured, DeliveryError) as e:
            logger.error(
                "delivery to recipient %s failed: %s",
                recipient.id, e.code, extra={"switch_id": switch.id},
            )
            raise


def _describe(exc: BaseException) -> str:
    # текст исключения может содержать тело письма, наружу только класс/код
    code = getattr(exc, "code", None)
    return code or type(exc).__name__
