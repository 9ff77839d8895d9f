"""Exceptions raised by the compression pipeline."""


class CompressionError(Exception):
    """Base class for compression pipeline failures"""


class ProbeError(CompressionError):
    """The duration of a media file could not be determined"""


class EncodeError(CompressionError):
    """A single ffmpeg invocation failed"""

    def __init__(self, message, stderr=""):
        super().__init__(message)
        self.stderr = stderr


class CompressionExhausted(CompressionError):
    """Every strategy of the applicable ladders failed to fit the size ceiling"""
