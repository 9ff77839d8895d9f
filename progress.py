"""Progress events sent from the compressors to whoever is watching (GUI, console)."""

import logging
from dataclasses import dataclass

logger = logging.getLogger(__name__)

STAGE_COMPRESSION = "compression"
STAGE_UPLOAD = "upload"


@dataclass(frozen=True)
class ProgressEvent:
    stage: str
    progress: float
    message: str
    is_complete: bool = False
    error: str = ""

    def __post_init__(self):
        # Clamp into [0, 1]
        object.__setattr__(self, 'progress', min(max(float(self.progress), 0.0), 1.0))

    def to_dict(self):
        return {
            'stage': self.stage,
            'progress': self.progress,
            'message': self.message,
            'isComplete': self.is_complete,
            'error': self.error,
        }


class ProgressReporter:
    """
    Forwards progress events to a sink callable.

    The sink runs on the compressing thread. Errors raised by the sink are
    logged and never interrupt the compression.
    """

    def __init__(self, sink=None):
        self.sink = sink

    def emit(self, event):
        logger.debug("Progress [%s] %.0f%% %s", event.stage, event.progress * 100, event.message)
        if self.sink is None:
            return
        try:
            self.sink(event)
        except Exception:
            logger.exception("Progress sink failed for event: %s", event.message)

    def update(self, stage, progress, message):
        self.emit(ProgressEvent(stage=stage, progress=progress, message=message))

    def complete(self, stage, message):
        self.emit(ProgressEvent(stage=stage, progress=1.0, message=message, is_complete=True))

    def fail(self, stage, message, error):
        self.emit(ProgressEvent(stage=stage, progress=1.0, message=message,
                                is_complete=True, error=str(error)))
