import sys

from loguru import logger

from .config import settings


def setup_logging(level: str | None = None, serialize: bool | None = None):
    """
    Configure the loguru sink used across the service.

    Structured context is passed as keyword arguments on each call
    (``logger.info("Gate computed", invoice_id=...)``) and lands in
    ``record["extra"]``; with LOG_JSON=true the whole record is serialized.
    """
    logger.remove()
    logger.add(
        sys.stderr,
        level=(level or settings.log_level).upper(),
        serialize=settings.log_json if serialize is None else serialize,
        format="<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | "
               "<cyan>{name}</cyan> - <level>{message}</level> | {extra}",
    )
    return logger
