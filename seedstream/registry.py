"""
Process-wide status registry for SeedStream jobs.

Holds the latest status message, lifecycle state and accumulated playlist
results per job. Nothing is persisted; entries live as long as the process.
"""

import logging
import threading
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from .models import JobState, PlaylistResult

logger = logging.getLogger(__name__)

UNKNOWN_STATUS = "Unknown ID or process not started."


@dataclass
class _Entry:
    state: JobState = JobState.SUBMITTED
    status: str = "Submitted."
    results: List[PlaylistResult] = field(default_factory=list)


class StatusRegistry:
    """Thread-safe job id -> status/results mapping with atomic operations."""

    def __init__(self):
        self._lock = threading.Lock()
        self._entries: Dict[str, _Entry] = {}

    def create(self, job_id: str) -> None:
        with self._lock:
            self._entries.setdefault(job_id, _Entry())

    def __contains__(self, job_id: str) -> bool:
        with self._lock:
            return job_id in self._entries

    def set_status(self, job_id: str, message: str, state: Optional[JobState] = None) -> None:
        """Record a status message, optionally moving the job to a new state."""
        with self._lock:
            entry = self._entries.setdefault(job_id, _Entry())
            entry.status = message
            if state is not None:
                entry.state = state
        logger.info(f"[{job_id}] Status: {message}")

    def get_status(self, job_id: str) -> str:
        with self._lock:
            entry = self._entries.get(job_id)
            return entry.status if entry else UNKNOWN_STATUS

    def get_state(self, job_id: str) -> Optional[JobState]:
        with self._lock:
            entry = self._entries.get(job_id)
            return entry.state if entry else None

    def append_result(self, job_id: str, result: PlaylistResult) -> None:
        with self._lock:
            self._entries.setdefault(job_id, _Entry()).results.append(result)

    def get_results(self, job_id: str) -> List[PlaylistResult]:
        """Snapshot of the job's results; empty for unknown jobs."""
        with self._lock:
            entry = self._entries.get(job_id)
            return list(entry.results) if entry else []

    def job_ids(self) -> List[str]:
        with self._lock:
            return list(self._entries.keys())
