import os

import pytest

from errors import EncodeError, ProbeError
from progress import ProgressReporter


class StubEncoder:
    """Writes an output file of a preset size per call instead of running ffmpeg.

    `sizes` holds one entry per invocation, in call order. None makes that
    invocation fail with EncodeError. When the list runs out the last entry
    is reused. A callable instead gets the output options and returns the size.
    """

    def __init__(self, sizes):
        self.sizes = sizes if callable(sizes) else list(sizes)
        self.calls = []

    def invoke(self, input_path, output_path, options):
        index = len(self.calls)
        self.calls.append((input_path, output_path, dict(options)))
        if callable(self.sizes):
            size = self.sizes(options)
        else:
            size = self.sizes[index] if index < len(self.sizes) else self.sizes[-1]
        if size is None:
            raise EncodeError("stub encoder failure")
        with open(output_path, 'wb') as f:
            f.truncate(size)
        return output_path

    @property
    def output_paths(self):
        return [call[1] for call in self.calls]

    @property
    def options(self):
        return [call[2] for call in self.calls]


class StubProber:
    def __init__(self, duration=None, error=None):
        self.duration = duration
        self.error = error
        self.calls = []

    def probe_duration(self, path):
        self.calls.append(path)
        if self.error is not None:
            raise self.error
        return self.duration


class EventCollector:
    def __init__(self):
        self.events = []

    def __call__(self, event):
        self.events.append(event)


@pytest.fixture
def config_home(tmp_path, monkeypatch):
    """Point the configuration directory at a temp folder"""
    home = tmp_path / "config_home"
    monkeypatch.setenv("AUTOCLIPSEND_HOME", str(home))
    return home


@pytest.fixture
def media_dir(tmp_path):
    d = tmp_path / "clips"
    d.mkdir()
    return d


@pytest.fixture
def make_source(media_dir):
    """Create a (sparse) source file of the given size"""
    def _make(name="clip.mp4", size=60 * 1024 * 1024):
        source = media_dir / name
        with open(source, 'wb') as f:
            f.truncate(size)
        return str(source)
    return _make


@pytest.fixture
def events():
    return EventCollector()


@pytest.fixture
def reporter(events):
    return ProgressReporter(events)


@pytest.fixture
def probe_failure():
    return StubProber(error=ProbeError("no duration"))


def dir_listing(directory):
    return sorted(os.listdir(directory))
