"""
Default configuration settings for the auto-clip-sender application.
Do not modify this file directly. Changes to settings should be made in config.json.
"""

# File names inside the user configuration directory
CONFIG_FILE = 'config.json'
STATS_FILE = 'stats.json'
ENV_FILE = '.env'
LOGS_DIR = 'logs'

# Configuration directory name under the user's home
CONFIG_DIR_NAME = '.autoclipsend'
# Environment variable that overrides the configuration directory
CONFIG_DIR_ENV = 'AUTOCLIPSEND_HOME'

# Video files picked up by the folder watcher
VIDEO_EXTENSIONS = ('.mp4', '.avi', '.mov', '.mkv', '.wmv', '.flv', '.webm', '.m4v')

DEFAULT_CONFIG = {
    'WEBHOOK_URL': "",
    'MONITOR_PATHS': [],          # Folders watched for new recordings
    'RECURSIVE_MONITORING': False,
    'MAX_FILE_SIZE_MB': 10,       # Discord upload limit
    'CHECK_INTERVAL': 2,          # Seconds to let the recorder finish writing
    'SEND_AS_AUDIO': False,       # Send extracted MP3 audio instead of video
    'USER_NAME': "",              # Name shown in Discord messages
    'ENCODE_TIMEOUT': 0,          # Seconds per ffmpeg run, 0 means no limit
    'CPU_THREADS': 0,             # 0 means auto/all threads
    'LOG_LEVEL': "INFO",
}

DEFAULT_STATS = {
    'TOTAL_CLIPS': 0,
    'SESSION_CLIPS': 0,
    'TOTAL_SIZE_BYTES': 0,
    'LAST_CLIP_TIME': None,
    'START_TIME': None,
    'LAST_UPDATE_TIME': None,
}
