"""Process-wide logging setup driven by ``settings.log_level``."""

import logging

from fleetflow.config import settings
from fleetflow.middleware.request_id import RequestIdLogFilter

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - [%(request_id)s] %(message)s"


def configure_logging(level: str | None = None) -> None:
    """Configure the root logger once; later calls only adjust the level."""
    level_name = (level or settings.log_level).upper()
    root_logger = logging.getLogger()
    if not root_logger.handlers:
        logging.basicConfig(level=level_name, format=LOG_FORMAT)
        for handler in root_logger.handlers:
            handler.addFilter(RequestIdLogFilter())
    root_logger.setLevel(getattr(logging, level_name, logging.INFO))
