"""
Progress and Result Reporting

Jobs never print or log user-facing output directly. They push events into
an EventSink passed in by the caller:

- ProgressEvent: completion fraction of a job in percent
- MessageEvent: informational / warning / error text with a display-duration hint
- ResultEvent: a structured result (one per job, one per slot for thumbnail jobs)
- OpenFailedEvent: the source could not be opened
- JobFailedEvent: the job hit an unexpected fault
"""

import logging
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional

from tqdm import tqdm


logger = logging.getLogger(__name__)


class MessageLevel(str, Enum):
    INFO = 'info'
    WARNING = 'warning'
    ERROR = 'error'


@dataclass
class ProgressEvent:
    job_id: str
    file_id: str
    percent: float


@dataclass
class MessageEvent:
    job_id: str
    file_id: str
    level: MessageLevel
    text: str
    duration_ms: Optional[int] = None


@dataclass
class ResultEvent:
    job_id: str
    file_id: str
    kind: str
    result: Any


@dataclass
class OpenFailedEvent:
    job_id: str
    file_id: str
    file_path: str
    reason: str


@dataclass
class JobFailedEvent:
    job_id: str
    file_id: str
    reason: str


class EventSink:
    """Receives job events. Implementations must tolerate calls from worker threads."""

    def emit(self, event: Any) -> None:
        raise NotImplementedError

    def close(self) -> None:
        pass


class CollectingSink(EventSink):
    """Keeps every event in memory"""

    def __init__(self):
        self.events: List[Any] = []
        self._lock = threading.Lock()

    def emit(self, event: Any) -> None:
        with self._lock:
            self.events.append(event)

    def of_type(self, event_type: type) -> List[Any]:
        with self._lock:
            return [e for e in self.events if isinstance(e, event_type)]

    def results(self, job_id: Optional[str] = None) -> List[Any]:
        return [e.result for e in self.of_type(ResultEvent) if job_id is None or e.job_id == job_id]

    def progress(self, job_id: Optional[str] = None) -> List[float]:
        return [e.percent for e in self.of_type(ProgressEvent) if job_id is None or e.job_id == job_id]

    def messages(self, level: Optional[MessageLevel] = None) -> List[str]:
        return [e.text for e in self.of_type(MessageEvent) if level is None or e.level == level]


class LoggingSink(EventSink):
    """Forwards messages and failures to the logging system"""

    _levels = {
        MessageLevel.INFO: logging.INFO,
        MessageLevel.WARNING: logging.WARNING,
        MessageLevel.ERROR: logging.ERROR,
    }

    def __init__(self, log: Optional[logging.Logger] = None):
        self.log = log or logger

    def emit(self, event: Any) -> None:
        if isinstance(event, MessageEvent):
            self.log.log(self._levels.get(event.level, logging.INFO), f"[{event.file_id}] {event.text}")
        elif isinstance(event, OpenFailedEvent):
            self.log.error(f"[{event.file_id}] Failed to open {event.file_path}: {event.reason}")
        elif isinstance(event, JobFailedEvent):
            self.log.error(f"[{event.file_id}] Job {event.job_id} failed: {event.reason}")
        elif isinstance(event, ProgressEvent):
            self.log.debug(f"[{event.file_id}] {event.percent:.1f}%")


class TqdmProgressSink(EventSink):
    """Renders one tqdm bar per job"""

    def __init__(self, disable: bool = False):
        self.disable = disable
        self._bars: Dict[str, tqdm] = {}
        self._lock = threading.Lock()

    def _bar(self, event: Any) -> tqdm:
        bar = self._bars.get(event.job_id)
        if bar is None:
            bar = tqdm(
                total=100,
                desc=str(event.file_id),
                unit='%',
                bar_format='{desc}: {percentage:3.0f}%|{bar}| [{elapsed}<{remaining}]',
                disable=self.disable,
                leave=False,
            )
            self._bars[event.job_id] = bar
        return bar

    def emit(self, event: Any) -> None:
        with self._lock:
            if isinstance(event, ProgressEvent):
                bar = self._bar(event)
                bar.update(max(0.0, event.percent - bar.n))
                if event.percent >= 100:
                    bar.close()
                    del self._bars[event.job_id]
            elif isinstance(event, (OpenFailedEvent, JobFailedEvent)):
                bar = self._bars.pop(event.job_id, None)
                if bar is not None:
                    bar.close()

    def close(self) -> None:
        with self._lock:
            for bar in self._bars.values():
                bar.close()
            self._bars.clear()


class FanOutSink(EventSink):
    """Broadcasts every event to several sinks"""

    def __init__(self, *sinks: EventSink):
        self.sinks = list(sinks)

    def emit(self, event: Any) -> None:
        for sink in self.sinks:
            sink.emit(event)

    def close(self) -> None:
        for sink in self.sinks:
            sink.close()


class JobReporter:
    """Binds a sink to one job; every call is a direct pass-through"""

    def __init__(self, sink: EventSink, job_id: str, file_id: str, message_duration_ms: int = 3000):
        self.sink = sink
        self.job_id = job_id
        self.file_id = file_id
        self.message_duration_ms = message_duration_ms

    def progress(self, percent: float) -> None:
        self.sink.emit(ProgressEvent(self.job_id, self.file_id, min(max(float(percent), 0.0), 100.0)))

    def message(self, level: MessageLevel, text: str, duration_ms: Optional[int] = None) -> None:
        self.sink.emit(MessageEvent(self.job_id, self.file_id, level, text, duration_ms))

    def info(self, text: str, duration_ms: Optional[int] = None) -> None:
        self.message(MessageLevel.INFO, text, duration_ms)

    def warning(self, text: str, duration_ms: Optional[int] = None) -> None:
        self.message(MessageLevel.WARNING, text, duration_ms or self.message_duration_ms)

    def error(self, text: str, duration_ms: Optional[int] = None) -> None:
        self.message(MessageLevel.ERROR, text, duration_ms or self.message_duration_ms)

    def result(self, kind: str, result: Any) -> None:
        self.sink.emit(ResultEvent(self.job_id, self.file_id, kind, result))

    def open_failed(self, file_path: str, reason: str) -> None:
        self.sink.emit(OpenFailedEvent(self.job_id, self.file_id, str(file_path), reason))

    def job_failed(self, reason: str) -> None:
        self.sink.emit(JobFailedEvent(self.job_id, self.file_id, reason))


class NullReporter(JobReporter):
    """Reporter that drops everything, for callers driving detectors directly"""

    class _NullSink(EventSink):
        def emit(self, event: Any) -> None:
            pass

    def __init__(self):
        super().__init__(self._NullSink(), job_id='', file_id='')
