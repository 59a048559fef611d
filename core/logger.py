import logging
import sys
from datetime import datetime
from typing import Optional

import structlog

from config import AppConfig

# Flag to ensure configuration happens only once
_is_configured = False


def setup_logging(app_config: Optional[AppConfig] = None, force: bool = False):
    """
    Set up logging for a scenario execution using structlog on top of the
    standard logging module.

    The function is idempotent: only the first call configures handlers unless
    ``force`` is set.
    """
    global _is_configured
    if _is_configured and not force:
        return

    app_config = app_config or AppConfig()

    # 1. Determine the logging level and clear any existing handlers
    root_logger = logging.getLogger()
    log_level = app_config.logging.log_level.upper()
    numeric_level = getattr(logging, log_level, logging.INFO)
    root_logger.setLevel(numeric_level)

    if root_logger.hasHandlers():
        for handler in root_logger.handlers[:]:
            root_logger.removeHandler(handler)

    # 2. Create a shared formatter
    formatter = logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - [%(filename)s:%(lineno)d] - %(message)s')

    # 3. Create handlers
    handlers = []

    stream_handler = logging.StreamHandler(sys.stdout)
    stream_handler.setFormatter(formatter)
    handlers.append(stream_handler)

    if app_config.logging.log_file_path:
        log_path = app_config.logging.log_file_path
        log_path.parent.mkdir(parents=True, exist_ok=True)

        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        new_log_file = log_path.parent / f"{log_path.stem}_{timestamp}{log_path.suffix}"

        file_handler = logging.FileHandler(new_log_file, encoding='utf-8')
        file_handler.setFormatter(formatter)
        handlers.append(file_handler)

    logging.basicConfig(level=numeric_level, handlers=handlers, force=True)

    # 4. Route structlog events through standard logging
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso", utc=False, key="timestamp"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.stdlib.render_to_log_kwargs,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    _is_configured = True


def get_structured_logger(name: str) -> structlog.BoundLogger:
    """
    Get a structured logger with the given name.

    Example:
        >>> logger = get_structured_logger(__name__)
        >>> logger.info("element_recovered", locator="css=#save", attempts=2)
    """
    return structlog.get_logger(name)


def bind_context(logger: structlog.BoundLogger, **context) -> structlog.BoundLogger:
    """
    Bind context data to a logger for all subsequent log entries.

    Example:
        >>> logger = get_structured_logger(__name__)
        >>> test_logger = bind_context(logger, step="CreateProject", test="test01")
        >>> test_logger.info("test_started")  # Will include step and test
    """
    return logger.bind(**context)
