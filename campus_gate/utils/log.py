# =======================================================================================
# campus_gate/utils/log.py - Logging Setup
# =======================================================================================
import sys
from loguru import logger
from ..config import config

LOG_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | "
    "<cyan>{extra[module]}</cyan> - <level>{message}</level>"
)


def setup_logging() -> None:
    """Single stderr sink; API_DEBUG lowers the level to DEBUG."""
    level = "DEBUG" if config.API_DEBUG else config.LOG_LEVEL
    logger.remove()
    logger.configure(extra={"module": "app"})
    logger.add(sys.stderr, level=level, format=LOG_FORMAT)
