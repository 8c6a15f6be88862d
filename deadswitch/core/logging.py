import logging
import sys
from logging.config import dictConfig

from deadswitch.config import settings

_CTX_FIELDS = ("switch_id", "tick_id", "rid")


def setup_logging(level: str | None = None, json_fmt: bool | None = None) -> None:
    """Базовая настройка логирования всего приложения."""
    level = (level or settings.log_level).upper()
    json_fmt = settings.log_json if json_fmt is None else json_fmt

    if json_fmt:
        formatter = {
            "()": "pythonjsonlogger.json.JsonFormatter",
            "fmt": "%(asctime)s %(levelname)s %(name)s %(message)s %(switch_id)s %(tick_id)s %(rid)s",
            "json_ensure_ascii": False,
        }
    else:
        formatter = {
            "format": (
                "%(asctime)s | %(levelname)5s | %(name)s | %(message)s "
                "| switch=%(switch_id)s tick=%(tick_id)s rid=%(rid)s"
            ),
            "datefmt": "%Y-%m-%d %H:%M:%S",
        }

    dictConfig({
        "version": 1,
        "disable_existing_loggers": False,
        "filters": {"ctx": {"()": CtxFilter}},
        "formatters": {"default": formatter},
        "handlers": {
            "stdout": {
                "class": "logging.StreamHandler",
                "stream": sys.stdout,
                "formatter": "default",
                "filters": ["ctx"],
            }
        },
        "root": {"level": level, "handlers": ["stdout"]},
        "loggers": {
            "sqlalchemy.engine": {"level": settings.log_sql.upper()},
            "apscheduler": {"level": "WARNING"},
            # twilio логирует тела запросов на DEBUG
            "twilio": {"level": "WARNING"},
            "uvicorn": {"level": level},
            "uvicorn.access": {"level": level},
            "deadswitch": {"level": level},
        },
    })


class CtxFilter(logging.Filter):
    """Добавляет безопасные поля, чтобы форматтер не падал, когда нет extra."""
    def filter(self, record: logging.LogRecord) -> bool:
        for k in _CTX_FIELDS:
            if not hasattr(record, k):
                setattr(record, k, "-")
        return True


def attach_ctx_filter() -> None:
    """Подключает фильтр к каждому хендлеру (в т.ч. навешенным uvicorn'ом)."""
    f = CtxFilter()
    for h in logging.getLogger().handlers:
        h.addFilter(f)
