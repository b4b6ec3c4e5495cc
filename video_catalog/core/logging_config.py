import logging
from logging.config import dictConfig


def configure_logging(level: str = "INFO") -> None:
    level = level.upper()
    dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "default": {"format": "%(asctime)s - %(name)s - %(levelname)s - %(message)s"},
            },
            "handlers": {
                "console": {
                    "class": "logging.StreamHandler",
                    "formatter": "default",
                    "stream": "ext://sys.stdout",
                },
            },
            "loggers": {
                "video_catalog": {"handlers": ["console"], "level": level, "propagate": False},
                # SQL echo is only useful when debugging.
                "sqlalchemy.engine": {"level": "INFO" if level == "DEBUG" else "WARNING"},
                "uvicorn": {"level": "INFO" if level == "DEBUG" else "WARNING"},
            },
        }
    )
    logging.getLogger(__name__).info("Logging initialized - Level: %s", level)
