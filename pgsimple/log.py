import sys
from loguru import logger

STDOUT_FORMAT = "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | <level>{level}</level> | <cyan>{module}:{function}</cyan> | {message}"


def configure_logging(verbose: bool = False):
    logger.remove()
    logger.add(
        sys.stderr,
        colorize=True,
        format=STDOUT_FORMAT,
        level="DEBUG" if verbose else "INFO",
    )
