import os
import logging

from bifrost.common.utils.logger import setup_logger

LOG_LEVEL = os.getenv("BIFROST_LOG_LEVEL", "INFO").upper()

logger, log_buffer = setup_logger("bifrost.gateway", level=getattr(logging, LOG_LEVEL, logging.INFO))
