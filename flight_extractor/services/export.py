"""Writes output payloads to disk as JSON files."""

import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Optional

from flight_extractor.config import get_settings
from flight_extractor.scrapers.records import RunResult

logger = logging.getLogger(__name__)


class ResultExporter:
    def __init__(self, output_dir: Optional[Path] = None):
        self.output_dir = Path(output_dir or get_settings().output_dir)

    def filename_for(self, result: RunResult, now: Optional[datetime] = None) -> str:
        """``flight-data-<trip kind>[-<route>-d<offset>]-<timestamp>.json``"""
        now = now or datetime.utcnow()
        timestamp = now.strftime("%Y-%m-%dT%H-%M-%S-%f")
        parts = ["flight-data", result.trip_kind]
        if result.job is not None:
            parts.append(f"{result.job.origin}-{result.job.destination}-d{result.job.date_offset_days}")
        parts.append(timestamp)
        return "-".join(parts) + ".json"

    def save(self, result: RunResult) -> Path:
        self.output_dir.mkdir(parents=True, exist_ok=True)
        path = self.output_dir / self.filename_for(result)
        path.write_text(
            json.dumps(result.to_payload(), indent=2, ensure_ascii=False, default=str),
            encoding="utf-8",
        )
        logger.info(f"Saved {result.record_count} records to {path}")
        return path
