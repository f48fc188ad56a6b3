import logging.config

from src.core.config import settings


def configure_logging(level: str | None = None) -> None:
    """Configure root logging once at application start."""
    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "default": {
                    "format": "%(asctime)s %(levelname)s [%(name)s] %(message)s",
                },
            },
            "handlers": {
                "console": {
                    "class": "logging.StreamHandler",
                    "formatter": "default",
                    "stream": "ext://sys.stderr",
                },
            },
            "root": {
                "level": (level or settings.log_level).upper(),
                "handlers": ["console"],
            },
            "loggers": {
                # SQL echo is controlled by the engine, keep it out of the app log
                "sqlalchemy.engine": {"level": "WARNING"},
            },
        }
    )
