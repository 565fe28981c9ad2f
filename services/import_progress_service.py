"""
Import progress reporting.

Progress sinks receive (status, current_action, stats) at fixed
checkpoints. Emission is fire-and-forget: a failing sink is logged
and never stops the import. ProgressReporter keeps one stream
monotonic, so consumers always see reading_file -> validating ->
resolving_parents -> matching -> creating/updating -> completed (or
error).
"""

import threading
import uuid
from typing import Iterable, Mapping, Optional, Protocol

import structlog

from exceptions import ImportNotFoundError
from models.catalog_import import PROGRESS_RANK, ProgressEvent, ProgressStatus

logger = structlog.get_logger(__name__)


class ProgressSink(Protocol):
    """Anything that can receive progress checkpoints."""

    def emit(self, status: str, current_action: str, stats: Mapping[str, int]) -> None: ...


# ===================
# REPORTER
# ===================

class ProgressReporter:
    """
    Ordered, fire-and-forget emitter for one import.

    Events that would move the stream backwards are dropped with a
    warning. creating/updating share a rank and may alternate.
    """

    def __init__(self, sink: Optional[ProgressSink] = None, import_id: Optional[str] = None):
        self.sink = sink
        self.import_id = import_id or str(uuid.uuid4())
        self.stats: dict[str, int] = {}
        self.emitted: list[ProgressStatus] = []
        self._rank = -1

    @property
    def finished(self) -> bool:
        return self._rank >= PROGRESS_RANK[ProgressStatus.COMPLETED]

    def emit(
        self,
        status: ProgressStatus,
        current_action: str,
        stats: Optional[Mapping[str, int]] = None,
    ) -> bool:
        """
        Emit one checkpoint.

        Returns:
            True if the event was passed to the sink
        """
        rank = PROGRESS_RANK[status]
        if rank < self._rank or self.finished:
            logger.warning(
                "progress_out_of_order",
                import_id=self.import_id,
                status=status.value,
                last=self.emitted[-1].value if self.emitted else None
            )
            return False

        if stats is not None:
            self.stats = dict(stats)
        self._rank = rank
        self.emitted.append(status)

        if self.sink is None:
            return True
        try:
            self.sink.emit(status.value, current_action, dict(self.stats))
        except Exception as e:
            logger.warning(
                "progress_emit_failed",
                import_id=self.import_id,
                status=status.value,
                error=str(e)
            )
        return True

    def phase(self, status: ProgressStatus, current_action: str) -> bool:
        """Planner checkpoint; carries the last known stats."""
        return self.emit(status, current_action)

    def catch_up(self, upto: ProgressStatus, current_action: str) -> None:
        """Emit every checkpoint before `upto` that this stream has not seen yet."""
        target = PROGRESS_RANK[upto]
        for status in (
            ProgressStatus.READING_FILE,
            ProgressStatus.VALIDATING,
            ProgressStatus.RESOLVING_PARENTS,
            ProgressStatus.MATCHING,
        ):
            rank = PROGRESS_RANK[status]
            if self._rank < rank <= target:
                self.emit(status, current_action)


# ===================
# SINKS
# ===================

class LoggingProgressSink:
    """Writes every checkpoint to the structured log."""

    def __init__(self, import_id: str):
        self.import_id = import_id

    def emit(self, status: str, current_action: str, stats: Mapping[str, int]) -> None:
        logger.info(
            "import_progress",
            import_id=self.import_id,
            status=status,
            current_action=current_action,
            **stats
        )


class CompositeProgressSink:
    """Fans one stream out to several sinks; one failing sink does not starve the rest."""

    def __init__(self, sinks: Iterable[ProgressSink]):
        self.sinks = list(sinks)

    def emit(self, status: str, current_action: str, stats: Mapping[str, int]) -> None:
        for sink in self.sinks:
            try:
                sink.emit(status, current_action, stats)
            except Exception as e:
                logger.warning(
                    "progress_sink_failed",
                    sink=type(sink).__name__,
                    status=status,
                    error=str(e)
                )


class ImportProgressTracker:
    """
    In-memory progress history per import, read by the progress endpoint.

    Single-process only, like the preview cache.
    """

    def __init__(self, max_imports: int = 200):
        self.max_imports = max_imports
        self._events: dict[str, list[ProgressEvent]] = {}
        self._lock = threading.Lock()

    def sink_for(self, import_id: str) -> "TrackerSink":
        with self._lock:
            self._events.setdefault(import_id, [])
            while len(self._events) > self.max_imports:
                oldest = next(iter(self._events))
                del self._events[oldest]
        return TrackerSink(self, import_id)

    def record(self, event: ProgressEvent) -> None:
        with self._lock:
            self._events.setdefault(event.import_id, []).append(event)

    def get_events(self, import_id: str) -> list[ProgressEvent]:
        """
        Events for one import, in emission order.

        Raises:
            ImportNotFoundError: If nothing was ever tracked for import_id
        """
        with self._lock:
            events = self._events.get(import_id)
            if events is None:
                raise ImportNotFoundError(import_id)
            return list(events)

    def latest(self, import_id: str) -> Optional[ProgressEvent]:
        events = self.get_events(import_id)
        return events[-1] if events else None


class TrackerSink:
    """Sink that appends to an ImportProgressTracker."""

    def __init__(self, tracker: ImportProgressTracker, import_id: str):
        self.tracker = tracker
        self.import_id = import_id

    def emit(self, status: str, current_action: str, stats: Mapping[str, int]) -> None:
        self.tracker.record(ProgressEvent(
            import_id=self.import_id,
            status=ProgressStatus(status),
            current_action=current_action,
            stats=dict(stats),
        ))


# Singleton instance for convenience
_progress_tracker: Optional[ImportProgressTracker] = None

def get_progress_tracker() -> ImportProgressTracker:
    """Get or create ImportProgressTracker instance."""
    global _progress_tracker
    if _progress_tracker is None:
        _progress_tracker = ImportProgressTracker()
    return _progress_tracker
