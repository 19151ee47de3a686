import logging
from pathlib import Path
from typing import Any

from .filters import SecretFilter
from .logger import ROOT_LOGGER_NAME

DEFAULT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def setup_logging(config: dict[str, Any]) -> None:
    """Configure logging for the application.

    Args:
        config: Logging configuration dictionary with level, format, file
            and optional ``module_levels`` overrides.
    """
    level = str(config.get("level", "INFO")).upper()
    log_format = config.get("format", DEFAULT_FORMAT)

    handlers: list[logging.Handler] = [logging.StreamHandler()]

    # File output is optional so tests and containers can log to stdout only
    log_file = config.get("file")
    log_dir = Path(config.get("dir", "logs"))
    if log_file:
        log_dir.mkdir(exist_ok=True)
        handlers.append(logging.FileHandler(filename=log_dir / log_file, encoding="utf-8"))

    formatter = logging.Formatter(log_format)
    secret_filter = SecretFilter()
    for handler in handlers:
        handler.setFormatter(formatter)
        handler.addFilter(secret_filter)

    logging.basicConfig(level=level, handlers=handlers)

    # Configure module-specific log levels if specified
    for module, module_level in config.get("module_levels", {}).items():
        logging.getLogger(module).setLevel(module_level.upper())

    # Get application logger and log startup
    logger = logging.getLogger(ROOT_LOGGER_NAME)
    logger.info("Application logging configured with secret masking")
    logger.debug("Log level set to %s", level)
    if log_file:
        logger.debug("Log file: %s", log_dir / log_file)
