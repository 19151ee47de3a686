from wavebridge_api.core.logger.logger import get_logger
from wavebridge_api.core.logger.logging_config import setup_logging
from wavebridge_api.core.logger.middleware import RequestLoggingMiddleware

__all__ = ["RequestLoggingMiddleware", "get_logger", "setup_logging"]
