"""Fire-and-forget progress notifications."""

import logging
from typing import Any, Callable


OPERATION_PROGRESS = "operation-progress"
DOWNLOAD_PROGRESS = "model-download-progress"
DOWNLOAD_COMPLETE = "model-download-complete"

EventSink = Callable[[str, dict[str, Any]], None]
log = logging.getLogger(__name__)


def emit(sink: EventSink | None, event: str, payload: dict[str, Any]) -> None:
    """Deliver one event to ``sink``; delivery failures are logged and dropped."""
    if sink is None:
        return
    try:
        sink(event, payload)
    except Exception as err:
        log.debug(f"dropped '{event}' notification ({err})")


def emit_stage(sink: EventSink | None, stage: str, percent: int) -> None:
    """Emit an ``operation-progress`` event for one pipeline stage."""
    emit(sink, OPERATION_PROGRESS, {"stage": stage, "percent": int(percent)})


class LoggingSink:
    """Sink that forwards events to a logger at debug level."""

    def __init__(self, logger=None):
        self.log = logger or log

    def __call__(self, event: str, payload: dict[str, Any]) -> None:
        if event == OPERATION_PROGRESS:
            self.log.debug(f"{payload['stage']} {payload['percent']}%")
        elif event == DOWNLOAD_PROGRESS:
            self.log.debug(f"{payload['modelId']} download {payload['percent']:.1f}%")
        else:
            self.log.debug(f"{event}: {payload}")
