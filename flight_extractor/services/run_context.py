"""
Per-run state: identity, injected logger and captured log lines.

A RunContext lives for exactly one single-page run or one batch. It
replaces process-wide "extraction in progress" flags and log buffers.
"""

import logging
import uuid
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Deque, List, Optional

from flight_extractor.scrapers.records import RunResult

RUN_LOGGER_NAME = "flight_extractor.run"


@dataclass
class LogEntry:
    timestamp: datetime
    level: str
    message: str

    def format(self) -> str:
        return f"[{self.timestamp.isoformat()}] [{self.level}] {self.message}"


class RunLogBuffer(logging.Handler):
    """Keeps the log lines of one run in memory for download."""

    def __init__(self, run_id: str, max_entries: int = 5000):
        super().__init__(level=logging.DEBUG)
        self.run_id = run_id
        self.entries: Deque[LogEntry] = deque(maxlen=max_entries)

    def filter(self, record: logging.LogRecord) -> bool:
        return getattr(record, "run_id", None) == self.run_id

    def emit(self, record: logging.LogRecord) -> None:
        self.entries.append(LogEntry(
            timestamp=datetime.fromtimestamp(record.created, tz=timezone.utc),
            level=record.levelname,
            message=record.getMessage(),
        ))

    def format_text(self) -> str:
        return "\n".join(entry.format() for entry in self.entries)


class RunLoggerAdapter(logging.LoggerAdapter):
    """Tags every record with the run id and prefixes the message with it."""

    def process(self, msg, kwargs):
        extra = dict(kwargs.get("extra") or {})
        extra.update(self.extra)
        kwargs["extra"] = extra
        return f"[run {self.extra['run_id']}] {msg}", kwargs


@dataclass
class RunContext:
    kind: str = "single"
    run_id: str = field(default_factory=lambda: uuid.uuid4().hex[:8])
    started_at: datetime = field(default_factory=datetime.utcnow)
    finished_at: Optional[datetime] = None
    in_progress: bool = False
    results: List[RunResult] = field(default_factory=list)
    log_buffer: Optional[RunLogBuffer] = None
    log: Optional[logging.LoggerAdapter] = None

    def __post_init__(self):
        self.log_buffer = RunLogBuffer(self.run_id)
        self.log = RunLoggerAdapter(logging.getLogger(RUN_LOGGER_NAME), {"run_id": self.run_id})

    def begin(self) -> "RunContext":
        run_logger = logging.getLogger(RUN_LOGGER_NAME)
        if run_logger.level == logging.NOTSET:
            run_logger.setLevel(logging.INFO)
        run_logger.addHandler(self.log_buffer)
        self.in_progress = True
        self.log.info(f"Started {self.kind} run")
        return self

    def finish(self) -> None:
        self.finished_at = datetime.utcnow()
        self.log.info(
            f"Finished {self.kind} run: {len(self.results)} job(s), "
            f"{sum(r.record_count for r in self.results)} record(s)"
        )
        self.in_progress = False
        logging.getLogger(RUN_LOGGER_NAME).removeHandler(self.log_buffer)

    def logs_text(self) -> str:
        return self.log_buffer.format_text()
