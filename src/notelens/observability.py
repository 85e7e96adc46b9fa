"""Logging setup and per-operation metrics for the search engine.

``timed_operation`` and ``traced`` wrap engine operations (search,
build_index, find_similar, ...). Besides durations and error counts they tally
the outcome labels an operation reports, such as ``cache_hit`` or
``semantic_timeout``, so a metrics dump shows how searches were answered.
"""
import functools
import json
import logging
import time
import uuid
from collections import Counter, defaultdict
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from threading import Lock
from typing import Any, Callable, Dict, Iterable, Optional, TypeVar, Union

logger = logging.getLogger(__name__)

ROOT_LOGGER_NAME = "notelens"
DEFAULT_LOG_DIR = Path.home() / ".notelens" / "logs"
LOG_FILE_NAME = "notelens.log"

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s - %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%dT%H:%M:%S%z"

F = TypeVar('F', bound=Callable[..., Any])


def configure_logging(
    log_dir: Optional[Union[str, Path]] = None,
    level: int = logging.INFO,
    max_bytes: int = 10 * 1024 * 1024,
    backup_count: int = 5,
    console: bool = True,
) -> Path:
    """Send the ``notelens`` logger hierarchy to a rotating log file.

    Calling it again swaps the file handler for one in the new directory;
    at most one console handler is ever attached.

    Args:
        log_dir: Directory for ``notelens.log``. Defaults to ~/.notelens/logs/
        level: Level for the logger and its handlers.
        max_bytes: Size at which the file rotates.
        backup_count: Rotated files kept.
        console: Also log to stderr.

    Returns:
        The log directory.
    """
    log_path = Path(log_dir) if log_dir else DEFAULT_LOG_DIR
    log_path.mkdir(parents=True, exist_ok=True)

    engine_logger = logging.getLogger(ROOT_LOGGER_NAME)
    engine_logger.setLevel(level)
    formatter = logging.Formatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT)

    for handler in list(engine_logger.handlers):
        if isinstance(handler, RotatingFileHandler):
            engine_logger.removeHandler(handler)
            handler.close()

    file_handler = RotatingFileHandler(
        log_path / LOG_FILE_NAME,
        maxBytes=max_bytes,
        backupCount=backup_count,
        encoding="utf-8",
    )
    file_handler.setLevel(level)
    file_handler.setFormatter(formatter)
    engine_logger.addHandler(file_handler)

    has_console = any(
        type(h) is logging.StreamHandler for h in engine_logger.handlers
    )
    if console and not has_console:
        console_handler = logging.StreamHandler()
        console_handler.setLevel(level)
        console_handler.setFormatter(formatter)
        engine_logger.addHandler(console_handler)

    engine_logger.info(f"Logging to {log_path / LOG_FILE_NAME}")
    return log_path


@dataclass
class OperationMetrics:
    """Aggregates for one operation name."""
    count: int = 0
    success_count: int = 0
    error_count: int = 0
    total_duration_ms: float = 0.0
    min_duration_ms: float = float('inf')
    max_duration_ms: float = 0.0
    outcomes: Counter = field(default_factory=Counter)
    last_error: Optional[str] = None
    last_error_time: Optional[datetime] = None

    def as_dict(self) -> Dict[str, Any]:
        return {
            'count': self.count,
            'success_count': self.success_count,
            'error_count': self.error_count,
            'avg_duration_ms': round(self.total_duration_ms / self.count, 2) if self.count else 0,
            'min_duration_ms': round(self.min_duration_ms, 2) if self.count else 0,
            'max_duration_ms': round(self.max_duration_ms, 2),
            'outcomes': dict(self.outcomes),
            'last_error': self.last_error,
            'last_error_time': self.last_error_time.isoformat() if self.last_error_time else None,
        }


class MetricsCollector:
    """Thread-safe per-operation metrics.

    Held in memory; ``save_metrics`` dumps a JSON snapshot, which the command
    line does when given ``--metrics-file``.
    """

    def __init__(self):
        self._metrics: Dict[str, OperationMetrics] = defaultdict(OperationMetrics)
        self._lock = Lock()
        self._start_time = datetime.now(timezone.utc)

    def record_operation(
        self,
        operation: str,
        duration_ms: float,
        success: bool,
        error: Optional[str] = None,
        outcomes: Iterable[str] = (),
    ) -> None:
        """Record one finished operation and the outcome labels it reported."""
        with self._lock:
            m = self._metrics[operation]
            m.count += 1
            m.total_duration_ms += duration_ms
            m.min_duration_ms = min(m.min_duration_ms, duration_ms)
            m.max_duration_ms = max(m.max_duration_ms, duration_ms)
            m.outcomes.update(outcomes)
            if success:
                m.success_count += 1
            else:
                m.error_count += 1
                m.last_error = error
                m.last_error_time = datetime.now(timezone.utc)

    def get_metrics(self) -> Dict[str, Dict[str, Any]]:
        """Snapshot of every operation's aggregates, keyed by name."""
        with self._lock:
            return {op: m.as_dict() for op, m in self._metrics.items()}

    def get_summary(self) -> Dict[str, Any]:
        """Totals across all operations."""
        with self._lock:
            total = sum(m.count for m in self._metrics.values())
            errors = sum(m.error_count for m in self._metrics.values())
            return {
                'uptime_seconds': (datetime.now(timezone.utc) - self._start_time).total_seconds(),
                'total_operations': total,
                'total_errors': errors,
                'overall_success_rate': (total - errors) / total if total else 1.0,
                'operations_tracked': sorted(self._metrics),
            }

    def save_metrics(self, path: Union[str, Path]) -> bool:
        """Write summary and per-operation metrics to ``path`` as JSON.

        Returns:
            True if written, False when the write failed.
        """
        target = Path(path)
        data = {
            "saved_at": datetime.now(timezone.utc).isoformat(),
            "summary": self.get_summary(),
            "operations": self.get_metrics(),
        }
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            temp_file = target.with_suffix(target.suffix + ".tmp")
            temp_file.write_text(json.dumps(data, indent=2), encoding="utf-8")
            temp_file.replace(target)
        except OSError as e:
            logger.error(f"Failed to save metrics to {target}: {e}")
            return False
        logger.debug(f"Saved metrics to {target}")
        return True


# Global metrics collector instance
metrics = MetricsCollector()


@contextmanager
def timed_operation(operation: str, **context):
    """Time a block, log start and end, and record it in ``metrics``.

    Yields a dict the block fills with result details. An ``outcomes`` entry
    (a list of labels) is tallied by the collector rather than logged.

    Example:
        with timed_operation('search', mode='combined') as op:
            response = run_search()
            op['result_count'] = len(response.results)
            op['outcomes'] = ['cache_miss', 'hybrid']
    """
    correlation_id = uuid.uuid4().hex[:8]
    started = time.perf_counter()
    info: Dict[str, Any] = {'correlation_id': correlation_id}
    logger.debug(
        f"[{correlation_id}] START {operation} "
        f"({', '.join(f'{k}={v}' for k, v in context.items())})"
    )

    error_msg = None
    try:
        yield info
    except Exception as e:
        error_msg = str(e)
        raise
    finally:
        duration_ms = (time.perf_counter() - started) * 1000
        info['duration_ms'] = duration_ms
        outcomes = info.get('outcomes') or ()
        metrics.record_operation(
            operation, duration_ms, error_msg is None, error_msg, outcomes
        )
        details = ', '.join(
            f'{k}={v}' for k, v in info.items()
            if k not in ('correlation_id', 'duration_ms', 'outcomes')
        )
        status = 'OK' if error_msg is None else f'ERROR: {error_msg}'
        logger.debug(
            f"[{correlation_id}] END {operation} ({duration_ms:.2f}ms) [{status}] "
            f"{details} {list(outcomes) if outcomes else ''}".rstrip()
        )


def traced(operation_name: Optional[str] = None) -> Callable[[F], F]:
    """Run the decorated function inside ``timed_operation``.

    Example:
        @traced('find_similar')
        def find_similar(self, note_id: str) -> List[SimilarNote]:
            ...
    """
    def decorator(func: F) -> F:
        op_name = operation_name or func.__name__

        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            context = {k: kwargs[k] for k in ('note_id', 'limit') if k in kwargs}
            with timed_operation(op_name, **context) as op:
                result = func(*args, **kwargs)
                if hasattr(result, '__len__'):
                    op['result_count'] = len(result)
                return result

        return wrapper  # type: ignore
    return decorator
