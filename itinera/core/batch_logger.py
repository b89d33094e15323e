"""Console and file logging for batch calculation runs.

Prints one line per finished target while a batch runs, a header per chunk,
and a summary block at the end. File logs (optional) keep everything,
including DEBUG lines, for later analysis.
"""

import logging
import sys
import time
from datetime import datetime
from pathlib import Path
from typing import Any


class BatchLogger:
    """Structured logger for calculate-all-missing runs."""

    def __init__(self, name: str = "itinera", verbose: bool = False, log_dir: str | Path | None = None):
        """Initialize the batch logger.

        Args:
            name: Logger name.
            verbose: If True, show DEBUG level logs.
            log_dir: Directory for log files. If None, no file logging.
        """
        self.logger = logging.getLogger(name)
        self.verbose = verbose
        self._log_dir = Path(log_dir) if log_dir else None
        self._log_file: Path | None = None
        self._batch_start: float = 0
        self._tick_count: int = 0
        self._tick_total: int = 0

        if not self.logger.handlers:
            console_handler = logging.StreamHandler(sys.stdout)
            console_handler.setFormatter(ConsoleFormatter())
            console_handler.setLevel(logging.DEBUG if verbose else logging.INFO)
            self.logger.addHandler(console_handler)

        self.logger.setLevel(logging.DEBUG)
        self.logger.propagate = False

    def set_verbose(self, verbose: bool):
        """Update verbose setting."""
        self.verbose = verbose
        for handler in self.logger.handlers:
            if isinstance(handler, logging.StreamHandler) and not isinstance(handler, logging.FileHandler):
                handler.setLevel(logging.DEBUG if verbose else logging.INFO)

    def _ts(self) -> str:
        return datetime.now().strftime("%H:%M:%S")

    def _elapsed(self) -> str:
        """Elapsed time since batch start, e.g. '2m 13s' or '8.4s'."""
        if not self._batch_start:
            return ""
        elapsed = time.time() - self._batch_start
        mins = int(elapsed // 60)
        if mins > 0:
            return f"{mins}m {elapsed % 60:.0f}s"
        return f"{elapsed:.1f}s"

    def start_batch(self, label: str, total: int, max_parallel: int, model: str = ""):
        """Mark batch start and set up file logging."""
        self._batch_start = time.time()
        self._tick_count = 0
        self._tick_total = total

        if self._log_dir:
            self._log_dir.mkdir(parents=True, exist_ok=True)
            timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
            self._log_file = self._log_dir / f"{Path(label).stem}_{timestamp}.log"
            file_handler = logging.FileHandler(self._log_file, encoding="utf-8")
            file_handler.setFormatter(FileFormatter())
            file_handler.setLevel(logging.DEBUG)
            self.logger.addHandler(file_handler)

        parts = [f"{total} targets", f"max_parallel={max_parallel}"]
        if model:
            parts.append(model.split("/")[-1])
        self.logger.info(f"[{self._ts()}] Calculating missing indicators: {label} ({', '.join(parts)})")

    def start_chunk(self, number: int, count: int, chunks: int):
        """Header line for one chunk (DEBUG)."""
        self.debug(f"Chunk {number}/{chunks}: {count} targets")

    def tick(self, item: str = "", failed: bool = False):
        """Log one finished target.

        Shows:   [3/15] 0.1/ift = 1.2 (4.1s)
        """
        self._tick_count += 1
        count = f"[{self._tick_count}/{self._tick_total}]" if self._tick_total else f"[{self._tick_count}]"
        marker = " FAILED" if failed else ""
        elapsed = f" ({self._elapsed()})" if self._batch_start else ""
        self.logger.info(f"  {count}{marker} {item}{elapsed}".rstrip())

    def cancelled(self, done: int, total: int):
        self.logger.info(f"  -> Cancelled after {done}/{total} targets")

    def end_batch(self, success: bool = True, stats: dict | None = None):
        """Mark batch end, with an optional summary block."""
        status = "COMPLETE" if success else "PARTIAL"
        if stats:
            self.summary(stats)
        self.logger.info(f"{'=' * 50}")
        self.logger.info(f"Batch {status} [{self._elapsed()}]")
        self.logger.info(f"{'=' * 50}")
        if self._log_file:
            self.logger.info(f"Log: {self._log_file}")

    def debug(self, message: str, **data):
        """Log debug message (only in verbose mode)."""
        if data:
            message = f"{message} | {_format_data(data)}"
        self.logger.debug(f"[{self._ts()}] {message}")

    def info(self, message: str, **data):
        if data:
            message = f"{message} | {_format_data(data)}"
        self.logger.info(f"  {message}")

    def warning(self, message: str, **data):
        if data:
            message = f"{message} | {_format_data(data)}"
        self.logger.warning(f"[{self._ts()}] WARN: {message}")

    def error(self, message: str, exc: Exception | None = None, **data):
        if data:
            message = f"{message} | {_format_data(data)}"
        if exc:
            message = f"{message} | {type(exc).__name__}: {exc}"
        self.logger.error(f"[{self._ts()}] ERROR: {message}")

    def summary(self, stats: dict):
        """Log a summary block."""
        lines = ["SUMMARY"]
        for key, value in stats.items():
            if isinstance(value, dict):
                lines.append(f"  {key}:")
                for k, v in value.items():
                    lines.append(f"    {k}: {v}")
            else:
                lines.append(f"  {key}: {value}")
        self.logger.info("\n".join(lines))


class ConsoleFormatter(logging.Formatter):
    """Console formatter: the message as written by BatchLogger."""

    def format(self, record: logging.LogRecord) -> str:
        return record.getMessage()


class FileFormatter(logging.Formatter):
    """File formatter with full timestamp and level."""

    def format(self, record: logging.LogRecord) -> str:
        ts = datetime.now().strftime("%Y-%m-%d %H:%M:%S.%f")[:-3]
        return f"{ts} [{record.levelname[:4]}] {record.getMessage()}"


def _format_data(data: dict[str, Any]) -> str:
    parts = []
    for k, v in data.items():
        if isinstance(v, str) and len(v) > 50:
            v = v[:47] + "..."
        elif isinstance(v, list) and len(v) > 5:
            v = f"[{len(v)} items]"
        parts.append(f"{k}={v}")
    return ", ".join(parts)


# Global logger instance
_logger: BatchLogger | None = None


def get_logger(verbose: bool = False, log_dir: str | Path | None = None) -> BatchLogger:
    """Get or create the global batch logger."""
    global _logger
    if _logger is None:
        _logger = BatchLogger(verbose=verbose, log_dir=log_dir)
    else:
        if verbose and not _logger.verbose:
            _logger.set_verbose(True)
        if log_dir and not _logger._log_dir:
            _logger._log_dir = Path(log_dir)
    return _logger


def reset_logger():
    """Reset the global logger (for testing)."""
    global _logger
    if _logger:
        for handler in _logger.logger.handlers[:]:
            if isinstance(handler, logging.FileHandler):
                handler.close()
                _logger.logger.removeHandler(handler)
    _logger = None
