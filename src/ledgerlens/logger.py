import logging
import logging.config
import os


class ColourizedFormatter(logging.Formatter):
    """
    Formatter that colours the level name of console records.
    """
    GREY = "\x1b[90m"
    GREEN = "\x1b[32m"
    YELLOW = "\x1b[33m"
    RED = "\x1b[31m"
    BOLD_RED = "\x1b[31;1m"
    RESET = "\x1b[0m"

    LEVEL_COLORS = {
        logging.DEBUG: GREY,
        logging.INFO: GREEN,
        logging.WARNING: YELLOW,
        logging.ERROR: RED,
        logging.CRITICAL: BOLD_RED,
    }

    def format(self, record: logging.LogRecord) -> str:
        levelname = record.levelname
        colour = self.LEVEL_COLORS.get(record.levelno)
        if colour:
            record.levelname = f"{colour}{levelname}{self.RESET}"
        try:
            return super().format(record)
        finally:
            record.levelname = levelname


def _uvicorn_logger(handlers: list[str]) -> dict:
    return {"handlers": handlers, "level": "INFO", "propagate": False}


def get_logging_config() -> dict:
    level = os.getenv("LOG_LEVEL", "INFO").upper()
    log_dir = os.getenv("LOG_DIR")

    handlers: dict[str, dict] = {
        "console": {
            "class": "logging.StreamHandler",
            "stream": "ext://sys.stdout",
            "formatter": "colour",
        },
    }
    active = ["console"]
    if log_dir:
        os.makedirs(log_dir, exist_ok=True)
        handlers["file"] = {
            "class": "logging.FileHandler",
            "filename": os.path.join(log_dir, "ledgerlens.log"),
            "formatter": "plain",
        }
        active.append("file")

    fmt = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "colour": {"()": "ledgerlens.logger.ColourizedFormatter", "format": fmt},
            "plain": {"format": fmt},
        },
        "handlers": handlers,
        "loggers": {
            "": {"handlers": active, "level": level},
            # The OpenAI SDK logs every retry at INFO.
            "openai": {"handlers": active, "level": "WARNING", "propagate": False},
            "uvicorn": _uvicorn_logger(active),
            "uvicorn.error": _uvicorn_logger(active),
            "uvicorn.access": _uvicorn_logger(active),
        },
    }


def setup_logging() -> None:
    logging.config.dictConfig(get_logging_config())


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
