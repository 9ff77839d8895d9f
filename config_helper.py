"""
Helper module for configuration and statistics files.
Everything lives in the user configuration directory (~/.autoclipsend by default).
"""
import json
import logging
import os
import sys
import threading
from datetime import datetime

from dotenv import load_dotenv

import defaults

logger = logging.getLogger(__name__)

_stats_lock = threading.Lock()


def get_application_path():
    """Get the application path for both script and frozen executable modes"""
    if getattr(sys, 'frozen', False):
        # Running as executable
        return os.path.dirname(sys.executable)
    else:
        # Running as script
        return os.path.dirname(os.path.abspath(__file__))


def get_user_config_dir():
    """Get the directory for user configuration files, creating it if needed"""
    config_dir = os.environ.get(defaults.CONFIG_DIR_ENV) or os.path.join(
        os.path.expanduser('~'), defaults.CONFIG_DIR_NAME)
    os.makedirs(config_dir, exist_ok=True)
    return config_dir


def get_config_file_path(filename):
    """Get the full path for a configuration file"""
    return os.path.join(get_user_config_dir(), filename)


def load_environment():
    """Load .env files from the application and configuration directories"""
    loaded = False
    for env_path in (os.path.join(get_application_path(), defaults.ENV_FILE),
                     get_config_file_path(defaults.ENV_FILE)):
        if os.path.exists(env_path):
            logger.debug("Loading environment variables from: %s", env_path)
            loaded = load_dotenv(dotenv_path=env_path) or loaded
    return loaded


def load_json_config(filename):
    """Load a JSON configuration file with proper error handling"""
    config_path = get_config_file_path(filename)
    if not os.path.exists(config_path):
        logger.info("Config file not found: %s", config_path)
        return None
    try:
        with open(config_path, 'r', encoding='utf-8') as f:
            return json.load(f)
    except (OSError, ValueError) as e:
        logger.error("Error loading configuration file %s: %s", filename, e)
        return None


def save_json_config(filename, data):
    """Save data to a JSON configuration file"""
    config_path = get_config_file_path(filename)
    try:
        with open(config_path, 'w', encoding='utf-8') as f:
            json.dump(data, f, indent=4)
        return True
    except (OSError, TypeError) as e:
        logger.error("Error saving configuration file %s: %s", filename, e)
        return False


def ensure_config_files():
    """Ensure that the configuration file exists"""
    if os.path.exists(get_config_file_path(defaults.CONFIG_FILE)):
        return True
    logger.info("Creating %s from defaults", defaults.CONFIG_FILE)
    return save_json_config(defaults.CONFIG_FILE, dict(defaults.DEFAULT_CONFIG))


def load_config():
    """Load configuration with fallback to defaults"""
    config = dict(defaults.DEFAULT_CONFIG)
    stored = load_json_config(defaults.CONFIG_FILE)
    if isinstance(stored, dict):
        config.update(stored)
    elif stored is not None:
        logger.warning("Ignoring malformed %s, using defaults", defaults.CONFIG_FILE)

    # A webhook in .env or the environment fills in an empty setting
    if not config.get('WEBHOOK_URL'):
        config['WEBHOOK_URL'] = os.environ.get('WEBHOOK_URL', "")

    paths = config.get('MONITOR_PATHS') or []
    if isinstance(paths, str):
        paths = [paths]
    config['MONITOR_PATHS'] = [p for p in paths if p]
    return config


def save_config(config):
    return save_json_config(defaults.CONFIG_FILE, config)


def get_max_size_bytes(config):
    """Size ceiling in bytes from the MAX_FILE_SIZE_MB setting"""
    max_size_mb = float(config.get('MAX_FILE_SIZE_MB', defaults.DEFAULT_CONFIG['MAX_FILE_SIZE_MB']))
    if max_size_mb <= 0:
        raise ValueError(f"MAX_FILE_SIZE_MB must be positive, got {max_size_mb}")
    return int(max_size_mb * 1024 * 1024)


def get_encode_timeout(config):
    """ffmpeg timeout in seconds, or None when unbounded"""
    timeout = float(config.get('ENCODE_TIMEOUT') or 0)
    return timeout if timeout > 0 else None


def load_stats():
    stats = dict(defaults.DEFAULT_STATS)
    stored = load_json_config(defaults.STATS_FILE)
    if isinstance(stored, dict):
        stats.update(stored)
    return stats


def increment_clip_count(file_size):
    """Count one sent clip of file_size bytes"""
    with _stats_lock:
        stats = load_stats()
        now = datetime.now().isoformat(timespec='seconds')
        stats['TOTAL_CLIPS'] += 1
        stats['SESSION_CLIPS'] += 1
        stats['TOTAL_SIZE_BYTES'] += int(file_size)
        stats['LAST_CLIP_TIME'] = now
        stats['LAST_UPDATE_TIME'] = now
        save_json_config(defaults.STATS_FILE, stats)
        return stats


def reset_session_stats():
    with _stats_lock:
        stats = load_stats()
        now = datetime.now().isoformat(timespec='seconds')
        stats['SESSION_CLIPS'] = 0
        stats['START_TIME'] = now
        stats['LAST_UPDATE_TIME'] = now
        save_json_config(defaults.STATS_FILE, stats)
        return stats
