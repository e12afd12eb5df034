import logging
import logging.config
from contextvars import ContextVar
from pathlib import Path
from app.core.config import settings

# Set per request by RequestLoggingMiddleware; "-" outside a request (scheduler jobs, scripts).
request_id_ctx: ContextVar[str] = ContextVar("request_id", default="-")

ROTATE_BYTES = 10 * 1024 * 1024
ROTATE_BACKUPS = 5

# Loggers whose records also land in attempts.log for incident review.
ATTEMPT_LOGGERS = (
    "app.services.attempt",
    "app.services.attempt_control",
    "app.services.grading",
    "app.core.scheduler",
)


class RequestIdFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "request_id"):
            record.request_id = request_id_ctx.get()
        return True


def _rotating(filename: str, level: str) -> dict:
    return {
        "class": "logging.handlers.RotatingFileHandler",
        "level": level,
        "formatter": "detailed",
        "filters": ["request_id"],
        "filename": str(Path(settings.LOG_DIR) / filename),
        "maxBytes": ROTATE_BYTES,
        "backupCount": ROTATE_BACKUPS,
    }


def build_logging_config(level: str = None) -> dict:
    level = (level or settings.LOG_LEVEL).upper()
    app_handlers = ["console", "file", "error_file"]

    loggers = {
        "app": {"level": level, "handlers": app_handlers, "propagate": False},
        "apscheduler": {"level": "WARNING", "handlers": ["console", "file"], "propagate": False},
        "uvicorn.access": {"level": "WARNING", "handlers": ["console"], "propagate": False},
        "sqlalchemy.engine": {
            "level": "INFO" if settings.SQL_ECHO else "WARNING",
            "handlers": ["console"],
            "propagate": False,
        },
    }
    for name in ATTEMPT_LOGGERS:
        loggers[name] = {"level": level, "handlers": app_handlers + ["attempts_file"], "propagate": False}

    return {
        "version": 1,
        "disable_existing_loggers": False,
        "filters": {"request_id": {"()": RequestIdFilter}},
        "formatters": {
            "default": {
                "format": "%(asctime)s %(levelname)s [%(request_id)s] %(name)s: %(message)s"
            },
            "detailed": {
                "format": "%(asctime)s %(levelname)s [%(request_id)s] %(name)s [%(filename)s:%(lineno)d] %(message)s"
            },
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "level": level,
                "formatter": "default",
                "filters": ["request_id"],
                "stream": "ext://sys.stdout",
            },
            "file": _rotating("app.log", level),
            "error_file": _rotating("error.log", "ERROR"),
            "attempts_file": _rotating("attempts.log", "INFO"),
        },
        "root": {"level": level, "handlers": ["console", "file", "error_file"]},
        "loggers": loggers,
    }


def configure_logging(level: str = None):
    Path(settings.LOG_DIR).mkdir(parents=True, exist_ok=True)
    logging.config.dictConfig(build_logging_config(level))
