# deadswitch/container.py
from __future__ import annotations

from typing import Any, Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from deadswitch.config import Settings
from deadswitch.domain import Channel
from deadswitch.providers.email_provider import SmtpEmailProvider
from deadswitch.providers.sms_provider import TwilioSmsProvider
from deadswitch.repositories.store import SwitchStore
from deadswitch.scheduler.jobs import ReconciliationLoop
from deadswitch.services.cache import MemoryTTLCache, RedisTTLCache, TTLCache
from deadswitch.services.checkin_service import CheckInService
from deadswitch.services.notification_service import NotificationChannel, NotificationService
from deadswitch.services.switch_service import SwitchService
from deadswitch.services.trigger_executor import TriggerExecutor


def build_providers(cfg: Settings) -> dict[Channel, NotificationChannel]:
    """Провайдеры создаём всегда: ненастроенный канал честно падает ChannelNotConfigured."""
    return {
        Channel.EMAIL: SmtpEmailProvider(
            host=cfg.SMTP_HOST,
            port=cfg.SMTP_PORT,
            user=cfg.SMTP_USER,
            password=cfg.SMTP_PASSWORD,
            use_ssl=cfg.SMTP_USE_SSL,
            starttls=cfg.SMTP_STARTTLS,
            from_address=cfg.SMTP_FROM_ADDRESS,
            from_name=cfg.SMTP_FROM_NAME,
            timeout=cfg.DELIVERY_TIMEOUT_SECONDS,
        ),
        Channel.SMS: TwilioSmsProvider(
            account_sid=cfg.TWILIO_ACCOUNT_SID,
            auth_token=cfg.TWILIO_AUTH_TOKEN,
            from_number=cfg.TWILIO_FROM_NUMBER,
        ),
    }


def build_cache(cfg: Settings) -> TTLCache:
    if cfg.REDIS_DSN:
        return RedisTTLCache.from_url(cfg.REDIS_DSN)
    return MemoryTTLCache()


def build_services(
    cfg: Settings,
    sessions: async_sessionmaker[AsyncSession],
    *,
    providers: Optional[dict[Channel, NotificationChannel]] = None,
    cache: Optional[TTLCache] = None,
) -> dict[str, Any]:
    """
    Единая сборка стора и сервисов. Возвращаем словарь.
    providers/cache можно подменить (тесты, локальный запуск).
    """
    store = SwitchStore(sessions)
    notifier = NotificationService(
        providers if providers is not None else build_providers(cfg),
        timeout=cfg.DELIVERY_TIMEOUT_SECONDS,
        max_attempts=cfg.DELIVERY_MAX_ATTEMPTS,
        retry_delay=cfg.DELIVERY_RETRY_DELAY_SECONDS,
        backoff=cfg.DELIVERY_BACKOFF_MULTIPLIER,
    )
    executor = TriggerExecutor(
        store,
        notifier,
        base_url=cfg.PUBLIC_BASE_URL,
        default_message=cfg.DEFAULT_TRIGGER_MESSAGE,
        attach_max_bytes=cfg.DELIVERY_ATTACH_MAX_BYTES,
    )
    loop = ReconciliationLoop(
        store,
        executor,
        notifier,
        base_url=cfg.PUBLIC_BASE_URL,
        max_workers=cfg.SCHEDULER_MAX_WORKERS,
        cache=cache if cache is not None else build_cache(cfg),
        lease_seconds=cfg.SCHEDULER_LEASE_SECONDS,
    )

    return {
        "store": store,
        "notifier": notifier,
        "executor": executor,
        "loop": loop,
        "switches": SwitchService(store, cfg, notifier=notifier),
        "checkins": CheckInService(store),
    }
