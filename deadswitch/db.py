# deadswitch/db.py
from __future__ import annotations

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from deadswitch.config import settings
from deadswitch.models.base import Base  # реэкспорт


# === 1. Движок ===
# Пример DSN: postgresql+asyncpg://app:app@db:5432/app
def make_engine(url: str | None = None, *, echo: bool | None = None) -> AsyncEngine:
    url = url or settings.DATABASE_URL
    kwargs = {"echo": settings.SQL_ECHO if echo is None else echo, "future": True}
    if not url.startswith("sqlite"):
        kwargs["pool_pre_ping"] = True
    return create_async_engine(url, **kwargs)


def make_sessionmaker(bind: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(bind=bind, class_=AsyncSession, expire_on_commit=False)


engine = make_engine()


# === 2. Сессия ===
SessionLocal = make_sessionmaker(engine)


async def init_db(bind: AsyncEngine | None = None) -> None:
    """
    Dev-инициализация БД: создаём таблицы, если их нет.
    В проде используй alembic upgrade head.
    """
    import deadswitch.models  # noqa: F401  регистрируем таблицы в metadata

    async with (bind or engine).begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
