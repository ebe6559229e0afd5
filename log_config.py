"""
Logging setup for the launcher.

Everything is written to a log file in the cache directory. The console only
shows warnings unless verbose mode is on.
"""

import logging
import sys
from pathlib import Path

LOG_FILE_NAME = 'turtle-manager.log'
LOG_FORMAT = '%(asctime)s %(levelname)-7s %(name)s: %(message)s'
CONSOLE_FORMAT = '%(levelname)s: %(message)s'


def setup_logging(verbose=False, log_dir=None):
    """Configure the root logger.

    Args:
        verbose: bool - Show debug output on stderr
        log_dir: Optional str/Path - Directory for the log file

    Returns:
        Path - Log file path, or None when logging to stderr only
    """
    root = logging.getLogger()
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()
    root.setLevel(logging.DEBUG)

    console = logging.StreamHandler(sys.stderr)
    console.setLevel(logging.DEBUG if verbose else logging.WARNING)
    console.setFormatter(logging.Formatter(CONSOLE_FORMAT))
    root.addHandler(console)

    if log_dir is None:
        return None

    log_path = Path(log_dir) / LOG_FILE_NAME
    try:
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_path, mode='a', encoding='utf-8')
    except OSError as e:
        root.warning(f"Could not open log file {log_path}, logging to stderr only: {e}")
        return None

    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(logging.Formatter(LOG_FORMAT))
    root.addHandler(file_handler)
    return log_path


def get_logger(name):
    return logging.getLogger(name)
