import logging

ROOT_LOGGER_NAME = "wavebridge_api"


def get_logger(module_name: str | None = None) -> logging.Logger:
    """Return a logger namespaced under the application root logger.

    Both short names (``"modules.catalog.cache"``) and full module paths
    (``__name__``) are accepted; the package prefix is not repeated.

    Args:
        module_name: Dotted module name, or None for the root application logger

    Returns:
        Logger whose level and handlers come from ``setup_logging``
    """
    if not module_name or module_name == ROOT_LOGGER_NAME:
        return logging.getLogger(ROOT_LOGGER_NAME)
    module_name = module_name.removeprefix(f"{ROOT_LOGGER_NAME}.")
    return logging.getLogger(f"{ROOT_LOGGER_NAME}.{module_name}")
