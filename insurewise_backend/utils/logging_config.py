"""
Logging setup for the InsureWise backend.

Console output always; outside testing also a daily rotating application log
and a separate error log under LOG_DIR.
"""

import logging
import os
from logging.handlers import TimedRotatingFileHandler

LOG_FORMAT = '%(asctime)s %(levelname)s [%(name)s] %(message)s'

_configured = False


def setup_logging(level='INFO', log_dir='logs', enable_files=True):
    """Configure the root logger once per process."""
    global _configured
    if _configured:
        return logging.getLogger()

    logging.basicConfig(level=getattr(logging, str(level).upper(), logging.INFO), format=LOG_FORMAT)
    root = logging.getLogger()

    if enable_files:
        os.makedirs(log_dir, exist_ok=True)
        formatter = logging.Formatter(LOG_FORMAT)

        app_handler = TimedRotatingFileHandler(
            os.path.join(log_dir, 'insurewise.log'), when='midnight', backupCount=14, encoding='utf-8'
        )
        app_handler.setFormatter(formatter)
        root.addHandler(app_handler)

        error_handler = TimedRotatingFileHandler(
            os.path.join(log_dir, 'insurewise-error.log'), when='midnight', backupCount=30, encoding='utf-8'
        )
        error_handler.setLevel(logging.ERROR)
        error_handler.setFormatter(formatter)
        root.addHandler(error_handler)

    _configured = True
    return root
