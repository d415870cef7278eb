"""Context-aware logging and timing for batch items."""

import dataclasses
import itertools
import logging
import threading
import uuid
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Deque, Dict, List, Optional, Tuple

from .logging_config import get_logger

DEFAULT_METRICS_WINDOW = 1000


def _new_correlation_id() -> str:
    return uuid.uuid4().hex[:12]


@dataclass(frozen=True)
class LogContext:
    """
    Identifies one unit of work across log lines.

    Items of a batch share the batch's user but each gets its own correlation
    id; the resolve, transform and write stages of an item reuse that id with
    a different ``operation``.
    """

    correlation_id: str = field(default_factory=_new_correlation_id)
    operation: str = ""
    component: str = ""
    user_id: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    def with_operation(self, operation: str) -> "LogContext":
        return dataclasses.replace(self, operation=operation, metadata=dict(self.metadata))

    def with_metadata(self, **kwargs) -> "LogContext":
        return dataclasses.replace(self, metadata={**self.metadata, **kwargs})

    def render(self, message: str, extra: Dict[str, Any]) -> str:
        prefix = f"[{self.operation}] " if self.operation else ""
        details = {**self.metadata, **extra}
        if self.user_id:
            details["user_id"] = self.user_id
        return _with_details(f"{prefix}[{self.correlation_id}] {message}", details)


def _with_details(message: str, details: Dict[str, Any]) -> str:
    if not details:
        return message
    return f"{message} ({', '.join(f'{k}={v}' for k, v in details.items())})"


class StructuredLogger:
    """LoggerProtocol implementation writing under the package logger."""

    def __init__(self, name: str = "pipeline", level: Optional[int] = None):
        self._logger = get_logger(name)
        if level is not None:
            self._logger.setLevel(level)

    @property
    def logger(self) -> logging.Logger:
        return self._logger

    @staticmethod
    def _format(message: str, context: Optional[LogContext], extra: Dict[str, Any]) -> str:
        if context is None:
            return _with_details(message, extra)
        return context.render(message, extra)

    def debug(self, message: str, context: Optional[LogContext] = None, **kwargs):
        self._logger.debug(self._format(message, context, kwargs))

    def info(self, message: str, context: Optional[LogContext] = None, **kwargs):
        self._logger.info(self._format(message, context, kwargs))

    def warning(self, message: str, context: Optional[LogContext] = None, **kwargs):
        self._logger.warning(self._format(message, context, kwargs))

    def error(self, message: str, context: Optional[LogContext] = None, **kwargs):
        self._logger.error(self._format(message, context, kwargs))

    def critical(self, message: str, context: Optional[LogContext] = None, **kwargs):
        self._logger.critical(self._format(message, context, kwargs))


@dataclass
class PerformanceMetrics:
    """Timing of one processed image or one whole batch."""

    operation: str
    start_time: float
    end_time: float
    success: bool
    error_message: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def duration(self) -> float:
        return self.end_time - self.start_time

    @property
    def duration_ms(self) -> float:
        return self.duration * 1000


class MetricsCollector:
    """
    Recent timings per operation, shared by the worker threads of a batch.

    Only the newest ``max_per_operation`` entries of each operation are
    kept, so a long-running API process holds a bounded window.
    """

    def __init__(self, max_per_operation: int = DEFAULT_METRICS_WINDOW):
        self._lock = threading.Lock()
        self._max_per_operation = max_per_operation
        self._sequence = itertools.count()
        self._by_operation: Dict[str, Deque[Tuple[int, PerformanceMetrics]]] = {}

    def record_metric(self, metric: PerformanceMetrics):
        with self._lock:
            window = self._by_operation.get(metric.operation)
            if window is None:
                window = deque(maxlen=self._max_per_operation)
                self._by_operation[metric.operation] = window
            window.append((next(self._sequence), metric))

    def get_metrics(self, operation: Optional[str] = None) -> List[PerformanceMetrics]:
        with self._lock:
            if operation:
                entries = list(self._by_operation.get(operation, ()))
            else:
                entries = sorted(e for w in self._by_operation.values() for e in w)
        return [metric for _, metric in entries]

    def get_summary(self, operation: Optional[str] = None) -> Dict[str, Any]:
        """Counts and duration statistics (seconds); empty when nothing was recorded."""
        metrics = self.get_metrics(operation)
        if not metrics:
            return {}

        durations = sorted(m.duration for m in metrics)
        succeeded = sum(1 for m in metrics if m.success)
        total = sum(durations)
        return {
            "total_operations": len(metrics),
            "successful_operations": succeeded,
            "failed_operations": len(metrics) - succeeded,
            "success_rate": succeeded / len(metrics),
            "avg_duration": total / len(metrics),
            "min_duration": durations[0],
            "max_duration": durations[-1],
            "total_duration": total,
        }

    def clear_metrics(self):
        with self._lock:
            self._by_operation.clear()
