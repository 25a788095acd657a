"""
Structured Logging and Bundle Metrics
=====================================
- Per-bundle performance metrics (duration, endpoint, tip, outcome)
- Thread-safe aggregation with a rich summary table
- JSON log file with size rotation for machine parsing
"""

import json
import logging
import logging.handlers
import threading
import time
from collections import deque
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Deque, Dict, Optional

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

DEFAULT_MAX_METRICS = 1000


@dataclass
class PerformanceMetrics:
    """Container for one operation's metrics."""
    operation: str
    start_time: float
    end_time: Optional[float] = None
    duration_ms: Optional[float] = None
    success: bool = False
    error: Optional[str] = None
    bundle_id: Optional[str] = None
    endpoint: Optional[str] = None
    tx_count: Optional[int] = None
    tip_lamports: Optional[int] = None
    extra: Optional[Dict[str, Any]] = None

    @classmethod
    def start(cls, operation: str, **kwargs) -> "PerformanceMetrics":
        return cls(operation=operation, start_time=time.time(), **kwargs)

    def finalize(self, success: bool = True, error: Optional[str] = None):
        """Finalize the metrics with result."""
        self.end_time = time.time()
        self.duration_ms = (self.end_time - self.start_time) * 1000
        self.success = success
        self.error = error

    def to_dict(self) -> Dict[str, Any]:
        return {
            'operation': self.operation,
            'start_time': datetime.fromtimestamp(self.start_time).isoformat(),
            'end_time': datetime.fromtimestamp(self.end_time).isoformat() if self.end_time else None,
            'duration_ms': round(self.duration_ms, 2) if self.duration_ms is not None else None,
            'success': self.success,
            'error': self.error,
            'bundle_id': self.bundle_id,
            'endpoint': self.endpoint,
            'tx_count': self.tx_count,
            'tip_lamports': self.tip_lamports,
            'extra': self.extra or {}
        }


class MetricsCollector:
    """Collects and aggregates performance metrics.

    Aggregates are running totals; only the most recent `max_metrics`
    records are retained, so an endless volume run stays bounded.
    """

    def __init__(self, max_metrics: int = DEFAULT_MAX_METRICS):
        if max_metrics < 1:
            raise ValueError("max_metrics must be at least 1")
        self.metrics: Deque[PerformanceMetrics] = deque(maxlen=max_metrics)
        self.total_operations = 0
        self._lock = threading.Lock()
        self._operation_counts: Dict[str, Dict[str, int]] = {}
        self._operation_times: Dict[str, Dict[str, float]] = {}

    def add_metric(self, metric: PerformanceMetrics):
        with self._lock:
            self.metrics.append(metric)
            self.total_operations += 1

            op = metric.operation
            counts = self._operation_counts.setdefault(op, {'total': 0, 'success': 0, 'failure': 0})
            counts['total'] += 1
            if metric.success:
                counts['success'] += 1
            else:
                counts['failure'] += 1

            if metric.duration_ms is not None:
                times = self._operation_times.get(op)
                if times is None:
                    self._operation_times[op] = {
                        'count': 1,
                        'sum': metric.duration_ms,
                        'min': metric.duration_ms,
                        'max': metric.duration_ms,
                    }
                else:
                    times['count'] += 1
                    times['sum'] += metric.duration_ms
                    times['min'] = min(times['min'], metric.duration_ms)
                    times['max'] = max(times['max'], metric.duration_ms)

    def get_summary(self) -> Dict[str, Any]:
        with self._lock:
            summary = {
                'total_operations': self.total_operations,
                'operations': {},
                'overall_success_rate': 0,
                'avg_duration_ms': 0
            }

            total_success = 0
            timed_count = 0
            timed_sum = 0.0

            for op, counts in self._operation_counts.items():
                times = self._operation_times.get(op)
                summary['operations'][op] = {
                    'total': counts['total'],
                    'success': counts['success'],
                    'failure': counts['failure'],
                    'success_rate': round(counts['success'] / counts['total'] * 100, 2) if counts['total'] > 0 else 0,
                    'avg_duration_ms': round(times['sum'] / times['count'], 2) if times else 0,
                    'min_duration_ms': round(times['min'], 2) if times else 0,
                    'max_duration_ms': round(times['max'], 2) if times else 0
                }
                total_success += counts['success']
                if times:
                    timed_count += times['count']
                    timed_sum += times['sum']

            if self.total_operations:
                summary['overall_success_rate'] = round(total_success / self.total_operations * 100, 2)
            if timed_count:
                summary['avg_duration_ms'] = round(timed_sum / timed_count, 2)

            return summary

    def save_to_file(self, filepath: str):
        """Save the summary and the retained metrics to a JSON file."""
        summary = self.get_summary()
        with self._lock:
            data = {
                'summary': summary,
                'metrics': [m.to_dict() for m in self.metrics]
            }
        Path(filepath).parent.mkdir(parents=True, exist_ok=True)
        with open(filepath, 'w') as f:
            json.dump(data, f, indent=2)


class JSONFormatter(logging.Formatter):
    """JSON formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            'timestamp': datetime.fromtimestamp(record.created).isoformat(),
            'level': record.levelname,
            'logger': record.name,
            'message': record.getMessage(),
            'source': {
                'file': record.filename,
                'line': record.lineno,
                'function': record.funcName
            }
        }

        if hasattr(record, 'extra'):
            log_data['extra'] = record.extra

        if record.exc_info:
            log_data['exception'] = self.formatException(record.exc_info)

        return json.dumps(log_data)


def add_json_file_handler(
    logger: logging.Logger,
    log_file: str,
    max_bytes: int = 10 * 1024 * 1024,  # 10MB
    backup_count: int = 5,
) -> logging.Handler:
    """Attach a size-rotated JSON log file to `logger`."""
    log_path = Path(log_file)
    log_path.parent.mkdir(parents=True, exist_ok=True)

    handler = logging.handlers.RotatingFileHandler(
        log_file,
        maxBytes=max_bytes,
        backupCount=backup_count
    )
    handler.setLevel(logging.DEBUG)
    handler.setFormatter(JSONFormatter())
    logger.addHandler(handler)
    return handler


def print_metrics_summary(collector: MetricsCollector, console: Optional[Console] = None):
    """Print a formatted metrics summary to console."""
    console = console or Console()
    summary = collector.get_summary()

    table = Table(title="Bundle Metrics Summary")
    table.add_column("Operation", style="cyan")
    table.add_column("Total", justify="right")
    table.add_column("Success", justify="right", style="green")
    table.add_column("Failure", justify="right", style="red")
    table.add_column("Success %", justify="right")
    table.add_column("Avg ms", justify="right")
    table.add_column("Min ms", justify="right")
    table.add_column("Max ms", justify="right")

    for op, stats in summary['operations'].items():
        table.add_row(
            op,
            str(stats['total']),
            str(stats['success']),
            str(stats['failure']),
            f"{stats['success_rate']:.1f}%",
            f"{stats['avg_duration_ms']:.2f}",
            f"{stats['min_duration_ms']:.2f}",
            f"{stats['max_duration_ms']:.2f}"
        )

    console.print(Panel(
        f"Total Operations: {summary['total_operations']}\n"
        f"Overall Success Rate: {summary['overall_success_rate']:.1f}%\n"
        f"Average Duration: {summary['avg_duration_ms']:.2f}ms",
        title="Summary",
        border_style="blue"
    ))
    console.print(table)
