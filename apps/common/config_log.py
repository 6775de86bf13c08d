import contextvars
import json
import logging

request_id_ctx: contextvars.ContextVar[str] = contextvars.ContextVar("request_id", default="-")


class RequestIDFilter(logging.Filter):
    """Attaches the current request id (if any) to every record."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = request_id_ctx.get("-")
        return True


SENSITIVE_KEYS = {
    "password", "otp", "token", "access", "authorization", "secret", "api_key",
}


def scrub_for_log(obj, depth=0):
    if depth > 3:
        return "<deep>"
    if isinstance(obj, dict):
        return {
            k: "***" if str(k).lower() in SENSITIVE_KEYS else scrub_for_log(v, depth + 1)
            for k, v in obj.items()
        }
    if isinstance(obj, (list, tuple)):
        return [scrub_for_log(x, depth + 1) for x in list(obj)[:50]]
    return obj


def log_api_event(logger: logging.Logger, event: str, **payload):
    record = {"event": event, **scrub_for_log(payload)}
    try:
        logger.info(json.dumps(record, default=str))
    except (TypeError, ValueError):
        logger.info("%s | %s", event, payload)


VERBOSE_FMT = (
    "[%(asctime)s] [%(levelname)s] [%(name)s] "
    "[req=%(request_id)s] %(message)s"
)
DATE_FMT = "%Y-%m-%d %H:%M:%S"


def build_logging_config(app_level="INFO", django_level="INFO") -> dict:
    app_level = app_level.upper()
    django_level = django_level.upper()
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "filters": {
            "request_id": {"()": RequestIDFilter},
        },
        "formatters": {
            "verbose": {"format": VERBOSE_FMT, "datefmt": DATE_FMT},
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "level": app_level,
                "formatter": "verbose",
                "filters": ["request_id"],
            },
        },
        "loggers": {
            "apps": {
                "handlers": ["console"],
                "level": app_level,
                "propagate": False,
            },
            "django": {
                "handlers": ["console"],
                "level": django_level,
                "propagate": False,
            },
            "django.request": {
                "handlers": ["console"],
                "level": "ERROR",
                "propagate": False,
            },
            "": {
                "handlers": ["console"],
                "level": app_level,
            },
        },
    }
