"""Logging setup for the Peteat client."""
import os
import sys
import logging
from typing import Optional

from .config_loader import config as config_manager
from .path_config import get_logs_dir

def setup_logging(level: Optional[str] = None, log_file: Optional[str] = None,
                  console: Optional[bool] = None) -> logging.Logger:
    """Configure the package loggers.

    Messages go to a file in the logs directory; a stderr handler is added when
    ``console`` is set (or ``logging.console`` is true in the configuration).
    Returns the root logger so callers can adjust it further.
    """
    level = level or config_manager.get('logging', 'level', default='INFO')
    fmt = config_manager.get('logging', 'format',
                             default="%(asctime)s - %(name)s - %(levelname)s - %(message)s")
    if console is None:
        console = config_manager.get('logging', 'console', default=False)
    if log_file is None:
        log_file = os.path.join(get_logs_dir(),
                                config_manager.get('logging', 'file', default='peteat_client.log'))

    root = logging.getLogger()
    root.setLevel(getattr(logging, str(level).upper(), logging.INFO))

    formatter = logging.Formatter(fmt)
    root.handlers = []  # Remove any existing handlers

    file_handler = logging.FileHandler(log_file)
    file_handler.setFormatter(formatter)
    root.addHandler(file_handler)

    if console:
        stream_handler = logging.StreamHandler(sys.stderr)
        stream_handler.setFormatter(formatter)
        root.addHandler(stream_handler)

    # python-socketio and engineio are chatty at INFO
    logging.getLogger('socketio').setLevel(logging.WARNING)
    logging.getLogger('engineio').setLevel(logging.WARNING)
    return root
