"""
Structured logging for the bot.

Every component logs through log_event(), which attaches the event name and
its fields to the LogRecord:

- console (rich): one readable line, "order_placed symbol=BNBBTC role=stop ..."
- file: one flat JSON object per line, {"ts": ..., "event": ..., **fields}

File writes go through a background thread so the event loop never blocks
on disk, and the per-tick trade update is throttled on the console.
"""

from __future__ import annotations

import atexit
import json
import logging
import queue
import sys
import threading
import time
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Iterable, Optional, Set

from rich.logging import RichHandler


# Log level constants for semantic clarity
ERROR = logging.ERROR       # Fatal: the position is abandoned to the operator
WARNING = logging.WARNING   # Unexpected but handled (stale completions, signals)
INFO = logging.INFO         # Lifecycle: placements, fills, cancels, outcome
DEBUG = logging.DEBUG       # High-frequency: ignored pushes, transitions


def _json_default(value: Any) -> Any:
    if isinstance(value, Decimal):
        return str(value)
    if hasattr(value, "value"):  # Enum
        return value.value
    return str(value)


def format_fields(fields: Dict[str, Any]) -> str:
    """key=value pairs for the console line; None values are left out."""
    return " ".join(f"{key}={value}" for key, value in fields.items() if value is not None)


class JsonFormatter(logging.Formatter):
    """Flat JSON line per record: structured events keep their fields at top level."""

    def format(self, record: logging.LogRecord) -> str:
        payload: Dict[str, Any] = {
            "ts": record.created,
            "ts_iso": datetime.fromtimestamp(record.created).isoformat(timespec="milliseconds"),
            "level": record.levelname,
        }
        event = getattr(record, "event", None)
        if event is not None:
            payload["event"] = event
            payload.update(getattr(record, "fields", {}))
        else:
            payload["msg"] = record.getMessage()
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, separators=(",", ":"), default=_json_default)


class AsyncQueueHandler(logging.Handler):
    """
    Hands records to a writer thread so file I/O stays off the event loop.

    Records are dropped (and counted) rather than blocking when the queue
    is full.
    """

    def __init__(self, target_handler: logging.Handler, max_queue_size: int = 10000):
        super().__init__()
        self._records: queue.Queue = queue.Queue(maxsize=max_queue_size)
        self._target = target_handler
        self._closed = False
        self.dropped = 0
        self._writer = threading.Thread(target=self._drain, daemon=True, name="log-writer")
        self._writer.start()
        atexit.register(self.close)

    def emit(self, record: logging.LogRecord) -> None:
        if self._closed:
            return
        try:
            self._records.put_nowait(record)
        except queue.Full:
            self.dropped += 1

    def _drain(self) -> None:
        while True:
            try:
                record = self._records.get(timeout=0.1)
            except queue.Empty:
                if self._closed:
                    return
                continue
            self._target.handle(record)

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._writer.join(timeout=2.0)
        if self.dropped:
            sys.stderr.write(f"[logging] dropped {self.dropped} records, log queue full\n")
        self._target.close()
        super().close()


class ThrottledFilter(logging.Filter):
    """
    Lets a throttled event through at most once per cooldown per symbol.

    Applied to the console only: the file keeps every trade update.
    """

    def __init__(self, cooldown_sec: float = 5.0, throttled_events: Optional[Iterable[str]] = None):
        super().__init__()
        self._cooldown = cooldown_sec
        self._last_seen: Dict[str, float] = {}
        self._throttled_events: Set[str] = set(throttled_events or {"trade_update"})

    def filter(self, record: logging.LogRecord) -> bool:
        event = getattr(record, "event", None)
        if event not in self._throttled_events:
            return True
        key = f"{event}:{getattr(record, 'fields', {}).get('symbol', '')}"
        now = time.monotonic()
        last = self._last_seen.get(key)
        if last is not None and now - last < self._cooldown:
            return False
        self._last_seen[key] = now
        return True


def build_logger(
    name: str = "ocobot",
    level: int = logging.INFO,
    file_path: Optional[str] = "ocobot.log",
    async_file: bool = True,
    tick_log_cooldown_sec: float = 5.0,
) -> logging.Logger:
    """
    Configure the bot logger (idempotent: a second call only updates levels).

    Args:
        name: Logger name
        level: Minimum log level
        file_path: JSON-lines log file (None or "" disables the file)
        async_file: Write the file from a background thread
        tick_log_cooldown_sec: Console throttle window for trade_update (0 disables)
    """
    logger = logging.getLogger(name)
    logger.setLevel(level)
    if logger.handlers:
        for h in logger.handlers:
            h.setLevel(level)
        return logger

    console = RichHandler(
        rich_tracebacks=False,
        show_time=True,
        show_level=True,
        show_path=False,
        markup=False,
    )
    console.setFormatter(logging.Formatter("%(message)s"))
    console.setLevel(level)
    if tick_log_cooldown_sec > 0:
        console.addFilter(ThrottledFilter(cooldown_sec=tick_log_cooldown_sec))
    logger.addHandler(console)

    if file_path:
        file_handler = logging.FileHandler(file_path)
        file_handler.setFormatter(JsonFormatter())
        file_handler.setLevel(level)
        handler: logging.Handler = file_handler
        if async_file:
            handler = AsyncQueueHandler(file_handler)
            handler.setLevel(level)
        logger.addHandler(handler)

    logger.propagate = False
    return logger


def log_event(
    logger: logging.Logger,
    event: str,
    level: int = logging.INFO,
    **fields: Any,
) -> None:
    """
    Log a structured event.

    Usage:
        log_event(log, "order_placed", role="stop", qty=Decimal("0.5"))
    """
    if not logger.isEnabledFor(level):
        return
    logger.log(level, "%s %s", event, format_fields(fields), extra={"event": event, "fields": fields})
