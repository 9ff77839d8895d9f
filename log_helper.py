"""
Logging setup: coloured console output plus a daily log file in
<config dir>/logs/autoclipsend_YYYY-MM-DD.log
"""
import logging
import os
import sys
from datetime import datetime

import config_helper
import defaults

LOG_FORMAT = "[%(levelname)-5s] %(asctime)s [%(filename)s:%(lineno)d] %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

LEVEL_COLORS = {
    logging.DEBUG: "\033[37m",
    logging.INFO: "\033[34m",
    logging.WARNING: "\033[33m",
    logging.ERROR: "\033[31m",
    logging.CRITICAL: "\033[31m",
}
COLOR_RESET = "\033[0m"

_HANDLER_MARKER = '_autoclipsend_handler'


class ColorFormatter(logging.Formatter):
    def format(self, record):
        message = super().format(record)
        color = LEVEL_COLORS.get(record.levelno)
        if not color:
            return message
        return f"{color}{message}{COLOR_RESET}"


def get_log_file_path():
    logs_dir = os.path.join(config_helper.get_user_config_dir(), defaults.LOGS_DIR)
    os.makedirs(logs_dir, exist_ok=True)
    return os.path.join(logs_dir, f"autoclipsend_{datetime.now():%Y-%m-%d}.log")


def setup_logging(level="INFO", log_to_file=True, stream=None):
    """Configure the root logger once, later calls only change the level"""
    root = logging.getLogger()
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO
    root.setLevel(level)

    if any(getattr(h, _HANDLER_MARKER, False) for h in root.handlers):
        return root

    console = logging.StreamHandler(stream or sys.stdout)
    use_color = hasattr(console.stream, 'isatty') and console.stream.isatty()
    formatter_cls = ColorFormatter if use_color else logging.Formatter
    console.setFormatter(formatter_cls(LOG_FORMAT, DATE_FORMAT))
    setattr(console, _HANDLER_MARKER, True)
    root.addHandler(console)

    if log_to_file:
        try:
            file_handler = logging.FileHandler(get_log_file_path(), encoding='utf-8')
        except OSError as e:
            root.warning("Could not open log file, logging to console only: %s", e)
        else:
            file_handler.setFormatter(logging.Formatter(LOG_FORMAT, DATE_FORMAT))
            setattr(file_handler, _HANDLER_MARKER, True)
            root.addHandler(file_handler)

    return root
