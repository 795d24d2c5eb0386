import logging
import os
from typing import Optional

from colorama import Fore, Style, init

init(autoreset=True)


class ColoredFormatter(logging.Formatter):
    """Colored formatter for console output with pipeline event highlighting"""

    COLORS = {
        "DEBUG": Fore.CYAN,
        "INFO": Fore.BLUE,
        "WARNING": Fore.YELLOW,
        "ERROR": Fore.RED,
        "CRITICAL": Fore.MAGENTA + Style.BRIGHT,
    }

    EVENT_COLORS = {
        "fetch": Fore.CYAN,
        "reconcile": Fore.GREEN,
        "list_sync": Fore.BLUE,
        "notify": Fore.YELLOW + Style.BRIGHT,
        "batch": Fore.MAGENTA,
        "general": Fore.WHITE,
    }

    def format(self, record):
        record.levelname_colored = (
            self.COLORS.get(record.levelname, Fore.WHITE)
            + record.levelname
            + Style.RESET_ALL
        )

        event_type = getattr(record, "event_type", "general")
        record.event_type_colored = (
            self.EVENT_COLORS.get(event_type, Fore.WHITE)
            + event_type.upper()
            + Style.RESET_ALL
        )
        return super().format(record)


class DefaultEventMetadataFilter(logging.Filter):
    """Ensure log records carry the event_type the formatters expect."""

    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "event_type"):
            record.event_type = "general"
        return True


def setup_logger(
    name="pricewatch",
    level=logging.INFO,
    log_file: Optional[str] = "data/logs/monitor.log",
    console=True,
):
    """Setup logger with file and console handlers"""

    logger = logging.getLogger(name)
    logger.setLevel(level)

    # Avoid duplicate handlers
    if logger.hasHandlers():
        logger.handlers.clear()

    logger.addFilter(DefaultEventMetadataFilter())

    if log_file:
        log_dir = os.path.dirname(log_file)
        if log_dir:
            os.makedirs(log_dir, exist_ok=True)
        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(level)
        file_handler.addFilter(DefaultEventMetadataFilter())
        file_handler.setFormatter(
            logging.Formatter(
                "%(asctime)s - %(name)s - %(levelname)s - [%(event_type)s] - %(message)s"
            )
        )
        logger.addHandler(file_handler)

    if console:
        console_handler = logging.StreamHandler()
        console_handler.setLevel(level)
        console_handler.addFilter(DefaultEventMetadataFilter())
        console_handler.setFormatter(
            ColoredFormatter(
                "%(asctime)s - %(levelname_colored)s - [%(event_type_colored)s] - %(message)s"
            )
        )
        logger.addHandler(console_handler)

    return logger


def configure_logging(level: str = "INFO", log_file: Optional[str] = None) -> logging.Logger:
    """Install handlers on the root logger so every module logger inherits them."""
    numeric_level = getattr(logging, level.upper(), logging.INFO)
    return setup_logger("", numeric_level, log_file, console=True)


def log_batch_summary(logger: logging.Logger, operation: str, summary) -> None:
    """Write the one-line outcome of a batch run."""
    level = logging.WARNING if summary.failed else logging.INFO
    logger.log(
        level,
        "%s finished: %d/%d succeeded, %d failed in %.2fs",
        operation,
        summary.succeeded,
        summary.total,
        summary.failed,
        summary.duration_seconds,
        extra={"event_type": "batch"},
    )
    for failure in summary.failures:
        logger.debug(
            "%s failure for %s [%s]: %s",
            operation,
            failure.unit_id,
            failure.error_kind,
            failure.error,
            extra={"event_type": "batch"},
        )
