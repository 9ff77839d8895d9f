"""
FFmpeg helper module to run the bundled FFmpeg/FFprobe executables.
This ensures the application uses its own FFmpeg instead of relying on system PATH,
and that no console window pops up for every encode on Windows.
"""

import logging
import math
import os
import subprocess
import sys

import ffmpeg

from errors import EncodeError, ProbeError

logger = logging.getLogger(__name__)

CREATE_NO_WINDOW = 0x08000000

# Lines of ffmpeg stderr kept on an EncodeError
STDERR_TAIL_LINES = 5


def get_ffmpeg_path():
    """Get the path to the bundled FFmpeg executable"""
    return _bundled_executable("ffmpeg")


def get_ffprobe_path():
    """Get the path to the bundled FFprobe executable"""
    return _bundled_executable("ffprobe")


def _bundled_executable(name):
    if getattr(sys, 'frozen', False):
        # PyInstaller puts the bundled executables in the same directory as the main exe
        app_dir = os.path.dirname(sys.executable)
        for candidate in (os.path.join(app_dir, f"{name}.exe"),
                          os.path.join(app_dir, 'ffmpeg', f"{name}.exe")):
            if os.path.exists(candidate):
                return candidate

    # Either running as script or bundled executable not found
    return name


def no_window_kwargs():
    """Popen keyword arguments that keep child processes from opening a console"""
    if os.name == 'nt':
        return {'creationflags': CREATE_NO_WINDOW}
    return {}


def hide_console_windows():
    """
    Patch subprocess.Popen so every child process (including the ones started
    by ffmpeg-python itself) is created without a console window on Windows.
    """
    if os.name != 'nt':
        return False

    if getattr(subprocess.Popen, '_no_console', False):
        return True

    class NoConsolePopen(subprocess.Popen):
        _no_console = True

        def __init__(self, *args, **kwargs):
            if 'creationflags' not in kwargs:
                kwargs['creationflags'] = CREATE_NO_WINDOW
            super().__init__(*args, **kwargs)

    subprocess.Popen = NoConsolePopen
    logger.info("Patched subprocess to hide console windows")
    return True


def _stderr_tail(stderr):
    if not stderr:
        return ""
    if isinstance(stderr, bytes):
        stderr = stderr.decode('utf-8', errors='replace')
    lines = [line for line in stderr.splitlines() if line.strip()]
    return "\n".join(lines[-STDERR_TAIL_LINES:])


class FFmpegEncoder:
    """
    Runs one ffmpeg transcode per call.

    A timeout of None (the default) lets ffmpeg run for as long as it needs.
    """

    def __init__(self, timeout=None, threads=0, cmd=None):
        self.timeout = timeout or None
        self.threads = threads
        self.cmd = cmd or get_ffmpeg_path()

    def build_command(self, input_path, output_path, options):
        options = dict(options)
        if self.threads and self.threads > 0:
            options['threads'] = str(self.threads)
        stream = ffmpeg.input(str(input_path)).output(str(output_path), **options)
        return ffmpeg.compile(stream, cmd=self.cmd, overwrite_output=True)

    def invoke(self, input_path, output_path, options):
        """Transcode input_path into output_path, returning output_path"""
        args = self.build_command(input_path, output_path, options)
        logger.debug("Running: %s", " ".join(args))

        try:
            process = subprocess.Popen(args, stdin=subprocess.DEVNULL, stdout=subprocess.DEVNULL,
                                       stderr=subprocess.PIPE, **no_window_kwargs())
        except OSError as e:
            raise EncodeError(f"Could not start ffmpeg ({self.cmd}): {e}") from e

        try:
            _, stderr = process.communicate(timeout=self.timeout)
        except subprocess.TimeoutExpired:
            process.kill()
            process.communicate()
            raise EncodeError(f"ffmpeg did not finish within {self.timeout} seconds")

        if process.returncode != 0:
            tail = _stderr_tail(stderr)
            raise EncodeError(f"ffmpeg exited with code {process.returncode}", stderr=tail)

        if not os.path.exists(output_path):
            raise EncodeError(f"ffmpeg did not create {output_path}")

        return output_path


class FFprobeDurationProber:
    """Reads the container duration of a media file with ffprobe"""

    def __init__(self, timeout=None, cmd=None):
        self.timeout = timeout or None
        self.cmd = cmd or get_ffprobe_path()

    def probe_duration(self, path):
        probe_kwargs = {}
        if self.timeout:
            probe_kwargs['timeout'] = self.timeout

        try:
            info = ffmpeg.probe(str(path), cmd=self.cmd, **probe_kwargs)
        except ffmpeg.Error as e:
            raise ProbeError(f"ffprobe failed for {path}: {_stderr_tail(e.stderr)}") from e
        except subprocess.TimeoutExpired as e:
            raise ProbeError(f"ffprobe did not finish within {self.timeout} seconds") from e
        except OSError as e:
            raise ProbeError(f"Could not start ffprobe ({self.cmd}): {e}") from e
        except ValueError as e:
            raise ProbeError(f"ffprobe returned unreadable output for {path}") from e

        raw_duration = info.get('format', {}).get('duration')
        try:
            duration = float(raw_duration)
        except (TypeError, ValueError):
            raise ProbeError(f"No readable duration for {path}: {raw_duration!r}")

        if not math.isfinite(duration) or duration <= 0:
            raise ProbeError(f"Invalid duration for {path}: {duration}")

        return duration
