"""Per-job processing metrics.

Provides the JobMetrics dataclass, a StageTimer context manager for
measuring fetch and transcription durations, and log_job_metrics() for
emitting one structured JSON line per processed job.
"""

from __future__ import annotations

import json
import time
from dataclasses import asdict, dataclass
from datetime import UTC, datetime


@dataclass
class JobMetrics:
    """Metrics collected for a single processing attempt of a job."""

    job_id: str
    user_id: str
    status: str
    attempts: int
    mime_type: str = ""
    audio_size_bytes: int = 0
    fetch_duration_seconds: float = 0.0
    transcribe_duration_seconds: float = 0.0
    transcript_chars: int = 0
    error_message: str | None = None


class StageTimer:
    """Context manager that records wall-clock duration of a stage.

    Usage:
        timer = StageTimer("fetch")
        with timer:
            do_work()
        print(timer.duration_seconds)
    """

    def __init__(self, stage_name: str) -> None:
        self.stage_name = stage_name
        self.duration_seconds: float = 0.0
        self._mono_start: float = 0.0

    def __enter__(self) -> StageTimer:
        self._mono_start = time.monotonic()
        return self

    def __exit__(self, exc_type: object, exc_val: object, exc_tb: object) -> None:
        self.duration_seconds = time.monotonic() - self._mono_start


def log_job_metrics(metrics: JobMetrics) -> None:
    """Emit job metrics as a single structured JSON line to stdout.

    Args:
        metrics: Populated JobMetrics dataclass.
    """
    entry = {
        "timestamp": datetime.now(UTC).isoformat(),
        "severity": "INFO",
        "metric_type": "transcription_job",
        **asdict(metrics),
    }
    print(json.dumps(entry))
