"""
logging_config.py
~~~~~~~~~~~~~~~~~

Process-wide logging setup shared by the training service and the
command-line scripts.
"""

import logging
import os
from typing import Optional

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'

# Third-party loggers that are chatty at INFO
NOISY_LOGGERS = ['socketio', 'engineio', 'engineio.server',
                 'socketio.server', 'werkzeug']


def configure_logging(level: Optional[str] = None) -> None:
    """
    Set up logging based on environment.

    - In production: Show fewer logs (less noise) but keep our own logs
    - In development: Show more detailed logs for debugging

    Args:
        level: Log level name. Defaults to the LOG_LEVEL environment
            variable, then INFO.
    """
    log_level_str = (level or os.getenv('LOG_LEVEL', 'INFO')).upper()
    log_level = getattr(logging, log_level_str, logging.INFO)
    is_production = os.getenv('FLASK_ENV') == 'production'

    logging.basicConfig(level=log_level, format=LOG_FORMAT)

    if is_production:
        for logger_name in NOISY_LOGGERS:
            logging.getLogger(logger_name).setLevel(logging.WARNING)
        # Keep training progress visible in production
        logging.getLogger('feedforward').setLevel(logging.INFO)
    else:
        logging.getLogger('socketio').setLevel(logging.INFO)
        logging.getLogger('engineio').setLevel(logging.INFO)
