"""Shared fixtures: file-backed SQLite store, recording providers, fixed clock."""

from datetime import datetime, timedelta

import pytest
import pytest_asyncio

from deadswitch.config import Settings
from deadswitch.container import build_services
from deadswitch.db import init_db, make_engine, make_sessionmaker
from deadswitch.domain import Channel
from deadswitch.providers.fake_provider import RecordingProvider
from deadswitch.services.cache import MemoryTTLCache
from deadswitch.utils.dates import UTC

T0 = datetime(2026, 1, 1, 12, 0, 0, tzinfo=UTC)
OWNER_ID = 1001
OWNER_EMAIL = "owner@example.com"


class FakeClock:
    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def set(self, now: datetime) -> None:
        self.now = now

    def advance(self, **kwargs) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


@pytest.fixture
def cfg():
    return Settings(
        _env_file=None,
        DATABASE_URL="sqlite+aiosqlite://",
        PUBLIC_BASE_URL="https://switch.example.com",
        DELIVERY_TIMEOUT_SECONDS=2,
        DELIVERY_MAX_ATTEMPTS=3,
        DELIVERY_RETRY_DELAY_SECONDS=0,
        DELIVERY_BACKOFF_MULTIPLIER=1,
        DEFAULT_REMINDER_HOURS_BEFORE=[],
    )


@pytest_asyncio.fixture
async def engine(tmp_path):
    # файл, а не :memory:, гонкам нужны разные соединения к одной БД
    eng = make_engine(f"sqlite+aiosqlite:///{tmp_path / 'switches.db'}", echo=False)
    await init_db(eng)
    yield eng
    await eng.dispose()


@pytest.fixture
def sessions(engine):
    return make_sessionmaker(engine)


@pytest.fixture
def clock():
    return FakeClock(T0)


@pytest.fixture
def email():
    return RecordingProvider(Channel.EMAIL)


@pytest.fixture
def sms():
    return RecordingProvider(Channel.SMS)


@pytest.fixture
def services(cfg, sessions, clock, email, sms):
    svc = build_services(
        cfg,
        sessions,
        providers={Channel.EMAIL: email, Channel.SMS: sms},
        cache=MemoryTTLCache(),
    )
    svc["switches"].clock = clock
    svc["checkins"].clock = clock
    svc["loop"].clock = clock
    return svc


@pytest.fixture
def store(services):
    return services["store"]


@pytest.fixture
def make_switch(services):
    """Factory: enabled switch owned by OWNER_ID, created at the clock's now."""

    async def _make(
        *,
        timer=timedelta(days=7),
        recipients=("alice@example.com",),
        reminders=(),
        enabled=True,
        owner_id=OWNER_ID,
        **kwargs,
    ):
        items = []
        for r in recipients:
            if isinstance(r, dict):
                items.append(dict(r))
            else:
                items.append({"address": r, "channel": Channel.EMAIL})
        return await services["switches"].create_switch(
            owner_id=owner_id,
            owner_email=OWNER_EMAIL,
            timer_duration=timer,
            recipients=items,
            reminder_offsets=list(reminders),
            enabled=enabled,
            **kwargs,
        )

    return _make
