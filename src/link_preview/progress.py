"""Fire-and-forget progress reporting."""

import logging
from collections.abc import Callable

from link_preview.models.progress import ProgressEvent

logger = logging.getLogger(__name__)

ProgressSink = Callable[[ProgressEvent], None]


def emit_progress(sink: ProgressSink | None, event: ProgressEvent) -> None:
    """Deliver an event to the sink. A failing sink never breaks extraction."""
    if sink is None:
        return
    try:
        sink(event)
    except Exception:
        logger.warning("Progress sink raised on %s event", event.kind, exc_info=True)
