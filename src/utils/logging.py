"""
Logging Configuration
Structured estimator logging with loguru
Source: https://github.com/Delgan/loguru
"""

import sys
from pathlib import Path

from loguru import logger

from src.core.config import EstimatorSettings, get_estimator_settings

CONSOLE_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | "
    "<magenta>{extra[service]}</magenta> | <cyan>{extra[name]}</cyan>:<cyan>{line}</cyan> - "
    "<level>{message}</level>"
)
FILE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {extra[service]} | {extra[name]}:{line} - {message}"


def setup_logging(
    level: str = "INFO",
    log_file: str | None = None,
    json_logs: bool = False,
    service_name: str = "cost-estimator",
) -> None:
    """
    Replace loguru's default sink with the estimator sinks.

    Every record carries ``extra["service"]``; records from ``get_logger``
    also carry ``extra["name"]``.

    Args:
        level: Minimum loguru level name
        log_file: Optional log file path, rotated at 100 MB
        json_logs: Serialize records as JSON instead of colorized text
        service_name: Value bound to every record as ``service``
    """
    logger.remove()
    logger.configure(extra={"service": service_name, "name": "-"})

    if json_logs:
        logger.add(sys.stderr, format="{message}", level=level, serialize=True)
    else:
        logger.add(sys.stderr, format=CONSOLE_FORMAT, level=level, colorize=True)

    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        logger.add(
            log_file,
            rotation="100 MB",
            retention="30 days",
            compression="zip",
            format=FILE_FORMAT,
            level=level,
            serialize=json_logs,
        )

    logger.info(f"Logging configured: level={level}, json_logs={json_logs}, file={log_file or '-'}")


def setup_logging_from_settings(settings: EstimatorSettings | None = None) -> None:
    """Configure logging from ESTIMATOR_* settings."""
    settings = settings or get_estimator_settings()
    setup_logging(
        level=settings.LOG_LEVEL,
        log_file=settings.LOG_FILE,
        json_logs=settings.LOG_JSON,
        service_name=settings.SERVICE_NAME,
    )


def get_logger(name: str = __name__):  # type: ignore[no-untyped-def]
    """
    Logger bound to a module name.

    Example:
        >>> from src.utils.logging import get_logger
        >>> logger = get_logger(__name__)
        >>> logger.info("Estimate calculated")
    """
    return logger.bind(name=name)
