import logging
import os

from rich.logging import RichHandler


class PaddedNameFormatter(logging.Formatter):
    name_width = 12

    def format(self, record):
        PaddedNameFormatter.name_width = max(
            PaddedNameFormatter.name_width, len(record.name)
        )
        record.name = record.name.ljust(PaddedNameFormatter.name_width)
        return super().format(record)


def get_logger(name=None) -> logging.Logger:
    """
    Returns a logger writing through RichHandler, configured on first use.
    """
    if name is None:
        name = "shop"
    logger = logging.getLogger(name)
    log_level = logging.DEBUG if os.getenv("DEBUG") else logging.INFO
    logger.setLevel(log_level)

    if not logger.handlers:
        handler = RichHandler(
            show_time=True,
            show_level=True,
            show_path=False,
            rich_tracebacks=True,
            log_time_format="[%X]",
        )
        handler.setFormatter(PaddedNameFormatter("[%(name)s]  %(message)s"))
        handler.setLevel(log_level)
        logger.addHandler(handler)
        logger.propagate = False

    return logger
