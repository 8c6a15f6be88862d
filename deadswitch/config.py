from __future__ import annotations
from typing import Annotated, List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


def _parse_csv_ints(value: str | List[int] | None) -> List[int]:
    if value is None or value == "":
        return []
    if isinstance(value, (list, tuple)):
        return [int(x) for x in value]
    if isinstance(value, int):
        return [value]
    parts = [p.strip() for p in str(value).split(",") if p.strip()]
    return [int(p) for p in parts]


class Settings(BaseSettings):
    # === Storage / DB ===
    DATABASE_URL: Optional[str] = None
    POSTGRES_DSN: Optional[str] = None
    INIT_DB_ON_START: bool = False

    REDIS_DSN: Optional[str] = None  # без него lease тика живёт в памяти процесса

    # === Scheduler ===
    SCHEDULER_TZ: str = "UTC"
    SCHEDULER_TICK_SECONDS: int = 60
    SCHEDULER_MAX_WORKERS: int = 8
    SCHEDULER_LEASE_SECONDS: int = 55
    SCHEDULER_DRAIN_SECONDS: float = 30.0

    # === Delivery ===
    DELIVERY_TIMEOUT_SECONDS: float = 30.0
    DELIVERY_MAX_ATTEMPTS: int = 3
    DELIVERY_RETRY_DELAY_SECONDS: float = 1.0
    DELIVERY_BACKOFF_MULTIPLIER: float = 2.0
    DELIVERY_ATTACH_MAX_BYTES: int = 10 * 1024 * 1024
    DEFAULT_TRIGGER_MESSAGE: str = "This is an automated message from a Dead Man's Switch."

    # === SMTP ===
    SMTP_HOST: Optional[str] = None
    SMTP_PORT: int = 587
    SMTP_USER: Optional[str] = None
    SMTP_PASSWORD: Optional[str] = None
    SMTP_USE_SSL: bool = False
    SMTP_STARTTLS: bool = True
    SMTP_FROM_ADDRESS: str = "no-reply@localhost"
    SMTP_FROM_NAME: str = "Dead Man's Switch"

    # === Twilio (SMS) ===
    TWILIO_ACCOUNT_SID: Optional[str] = None
    TWILIO_AUTH_TOKEN: Optional[str] = None
    TWILIO_FROM_NUMBER: Optional[str] = None

    # === Limits ===
    MAX_RECIPIENTS: int = 10
    MAX_REMINDERS: int = 10
    MIN_TIMER_SECONDS: int = 60
    MAX_TIMER_SECONDS: int = 365 * 24 * 3600
    MAX_TRIGGER_MESSAGE_LEN: int = 5000
    MAX_PERSONAL_MESSAGE_LEN: int = 1000

    # Напоминания по умолчанию (часы до дедлайна) для нового свитча
    DEFAULT_REMINDER_HOURS_BEFORE: Annotated[List[int], NoDecode] = Field(default_factory=list)

    # === Web ===
    PUBLIC_BASE_URL: str = "http://localhost:8080"
    WEBAPP_HOST: str = "0.0.0.0"
    WEBAPP_PORT: int = 8080

    # === SQL debug ===
    SQL_ECHO: bool = False

    # === Logs ===
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    log_json: bool = Field(default=False, alias="LOG_JSON")
    log_sql: str = Field(default="WARNING", alias="LOG_SQL")

    @field_validator("DEFAULT_REMINDER_HOURS_BEFORE", mode="before")
    @classmethod
    def _v_reminders(cls, v):
        return _parse_csv_ints(v)

    def model_post_init(self, __context) -> None:
        # совместимость DSN/URL
        if not self.DATABASE_URL and self.POSTGRES_DSN:
            self.DATABASE_URL = self.POSTGRES_DSN
        if not self.DATABASE_URL:
            self.DATABASE_URL = "sqlite+aiosqlite:///./deadswitch.db"

        # границы ретраев: мусор из env не должен ломать доставку
        if self.DELIVERY_MAX_ATTEMPTS < 1 or self.DELIVERY_MAX_ATTEMPTS > 10:
            self.DELIVERY_MAX_ATTEMPTS = 3
        if self.SCHEDULER_MAX_WORKERS < 1:
            self.SCHEDULER_MAX_WORKERS = 1
        if self.SCHEDULER_LEASE_SECONDS >= self.SCHEDULER_TICK_SECONDS:
            self.SCHEDULER_LEASE_SECONDS = max(1, self.SCHEDULER_TICK_SECONDS - 5)

    @property
    def smtp_configured(self) -> bool:
        return bool(self.SMTP_HOST)

    @property
    def sms_configured(self) -> bool:
        return bool(self.TWILIO_ACCOUNT_SID and self.TWILIO_AUTH_TOKEN and self.TWILIO_FROM_NUMBER)

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )


settings = Settings()
