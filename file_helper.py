"""
File helpers shared by the compressors and the clip processor.
Recorders and Discord clients may still hold a file open for a moment,
so removals and renames are retried on PermissionError.
"""

import logging
import os
import re
import time

logger = logging.getLogger(__name__)

MAX_ATTEMPTS = 5
RETRY_DELAY = 2  # seconds

# Name markers of files the pipeline writes next to the source
COMPRESSED_SUFFIX = "_compressed"
TEMP_MARKER = "_temp_"
BITRATE_MARKER = "_bitrate_"
AUDIO_SUFFIX = "_audio"
ARTIFACT_PATTERN = re.compile(
    rf"({COMPRESSED_SUFFIX}|{AUDIO_SUFFIX}|{TEMP_MARKER}\d+|{BITRATE_MARKER}\d+)$"
)


def safe_remove(filepath):
    """Safely remove a file with retries and proper error handling."""
    for attempt in range(MAX_ATTEMPTS):
        try:
            if os.path.exists(filepath):
                os.remove(filepath)
            return True
        except PermissionError:
            logger.warning("File %s is still in use. Waiting before retry (%d/%d)...",
                           filepath, attempt + 1, MAX_ATTEMPTS)
            time.sleep(RETRY_DELAY)
        except OSError as e:
            logger.error("Error removing file %s: %s", filepath, e)
            return False

    logger.error("Could not remove file %s after %d attempts", filepath, MAX_ATTEMPTS)
    return False


def safe_rename(src, dst):
    """Safely rename a file over dst with retries and proper error handling."""
    for attempt in range(MAX_ATTEMPTS):
        try:
            if not os.path.exists(src):
                logger.error("Cannot rename missing file %s", src)
                return False
            # If destination exists, remove it first
            if os.path.exists(dst):
                os.remove(dst)
            os.rename(src, dst)
            return True
        except PermissionError:
            logger.warning("File %s or %s is still in use. Waiting before retry (%d/%d)...",
                           src, dst, attempt + 1, MAX_ATTEMPTS)
            time.sleep(RETRY_DELAY)
        except OSError as e:
            logger.error("Error renaming file %s to %s: %s", src, dst, e)
            return False

    logger.error("Could not rename file %s to %s after %d attempts", src, dst, MAX_ATTEMPTS)
    return False


def output_path_for(source_path, suffix, extension):
    """<dir>/<stem><suffix><extension> next to source_path"""
    stem = os.path.splitext(str(source_path))[0]
    return f"{stem}{suffix}{extension}"


def is_pipeline_artifact(filename):
    """True for files written by the pipeline itself (compressed outputs, attempts, audio)"""
    name = os.path.splitext(os.path.basename(str(filename)))[0]
    return ARTIFACT_PATTERN.search(name) is not None


def get_size_mb(filepath):
    return os.path.getsize(filepath) / (1024 * 1024)
