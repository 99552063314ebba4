"""Loguru sinks for the retrieval engine.

Retrieval records carry their fields as loguru ``extra`` values, so the
console sink prints them inline and the optional file sink writes one JSON
object per record for offline analysis of retrieval quality.
"""

import sys
from pathlib import Path

from loguru import logger

CONSOLE_FORMAT = (
    "<green>{time:HH:mm:ss.SSS}</green> | <level>{level: <8}</level> | "
    "<cyan>{name}</cyan> - <level>{message}</level> <dim>{extra}</dim>"
)


def setup_logger(
    level: str = "INFO",
    log_file: str | None = None,
    rotation: str = "10 MB",
    retention: str = "7 days",
) -> None:
    """Replace loguru's default handler with the engine's sinks.

    Args:
        level: Minimum level for both sinks
        log_file: Optional JSON-lines file for retrieval records
        rotation: Size or age at which the file sink rotates
        retention: How long rotated files are kept
    """
    logger.remove()
    logger.add(sys.stderr, format=CONSOLE_FORMAT, level=level, colorize=True)

    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        logger.add(
            log_path,
            level=level,
            serialize=True,
            rotation=rotation,
            retention=retention,
            compression="zip",
        )

    logger.debug("Logging configured", level=level, log_file=log_file)
