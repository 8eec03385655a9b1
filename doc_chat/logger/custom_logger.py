import logging
import os

from rich.console import Console
from rich.logging import RichHandler

# -------------------------------------------------
# Noisy libraries and the level they are capped at
# -------------------------------------------------
QUIET_LOGGERS = {
    "sqlalchemy.engine": logging.WARNING,
    "sqlalchemy.pool": logging.WARNING,
    "sqlalchemy.dialects": logging.WARNING,
    "sqlalchemy.orm": logging.WARNING,
    "aiosqlite": logging.WARNING,
    "uvicorn": logging.INFO,
    "uvicorn.access": logging.WARNING,
    "uvicorn.error": logging.INFO,
    "httpx": logging.WARNING,
    "httpcore": logging.WARNING,
    "urllib3": logging.WARNING,
    "faiss": logging.WARNING,
    "faiss.loader": logging.WARNING,
}


class CustomLogger:
    """
    Configures root logging once with a Rich console handler and hands out
    named loggers.

    Level comes from LOG_LEVEL (default INFO).
    """

    _configured = False

    def __init__(self, name: str = "doc_chat"):
        self.name = name
        if not CustomLogger._configured:
            self._configure()
            CustomLogger._configured = True

    @staticmethod
    def _configure() -> None:
        # Console with proper color handling
        console = Console(force_terminal=True, color_system="truecolor")
        level = os.getenv("LOG_LEVEL", "INFO").upper()

        logging.basicConfig(
            level=level,
            format="%(message)s",  # Rich handles formatting
            datefmt="[%H:%M:%S]",
            handlers=[
                RichHandler(
                    console=console,
                    rich_tracebacks=True,
                    tracebacks_show_locals=False,
                    show_time=True,
                    show_level=True,
                    show_path=True,
                    log_time_format="%H:%M:%S.%f",
                )
            ],
        )

        for logger_name, logger_level in QUIET_LOGGERS.items():
            logging.getLogger(logger_name).setLevel(logger_level)

    def get_logger(self, name: str | None = None) -> logging.Logger:
        return logging.getLogger(name or self.name)
