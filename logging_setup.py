import logging
from logging.config import dictConfig

from pythonjsonlogger import jsonlogger


def configure_logging(level="INFO"):
    ''' Route every logger through one JSON stream handler '''
    dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "json": {
                    "()": jsonlogger.JsonFormatter,
                    "fmt": "%(asctime)s %(levelname)s %(name)s %(message)s",
                }
            },
            "handlers": {
                "default": {
                    "class": "logging.StreamHandler",
                    "formatter": "json",
                }
            },
            "root": {"handlers": ["default"], "level": level},
            "loggers": {
                "werkzeug": {
                    "handlers": ["default"],
                    "level": level,
                    "propagate": False,
                },
            },
        }
    )
    logging.getLogger(__name__).debug("Logging configured", extra={"level": level})
