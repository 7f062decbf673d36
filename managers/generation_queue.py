"""Generation queue bookkeeping"""

import logging
import threading
from dataclasses import replace
from datetime import datetime
from typing import Dict, List, Optional

from errors import DependencyError, NotFoundError, ValidationError
from models.asset import QueueEntry, QueueStatus

logger = logging.getLogger("AssetPipeline")

DEFAULT_PRIORITY = 5
DEFAULT_MAX_ATTEMPTS = 3


class GenerationQueue:
    """Tracks generation attempts per asset.

    The queue is a ledger, not a worker: callers drive each transition.
    An asset has at most one open (non-completed) entry at a time.
    """

    def __init__(self, max_attempts: int = DEFAULT_MAX_ATTEMPTS, default_priority: int = DEFAULT_PRIORITY):
        self.max_attempts = max_attempts
        self.default_priority = default_priority
        self._entries: Dict[int, QueueEntry] = {}
        self._next_id = 1
        self._lock = threading.Lock()

    def _open_entry(self, asset_id: int) -> Optional[QueueEntry]:
        # Caller holds the lock
        candidates = [
            e for e in self._entries.values()
            if e.asset_id == asset_id and e.status != QueueStatus.COMPLETED
        ]
        return max(candidates, key=lambda e: e.id) if candidates else None

    def enqueue(self, asset_id: int, priority: Optional[int] = None) -> QueueEntry:
        """Return the open entry for an asset, or create a fresh one"""
        if priority is not None and not 1 <= priority <= 10:
            raise ValidationError(f"Priority must be between 1 and 10, got {priority}", {"priority": priority})
        with self._lock:
            entry = self._open_entry(asset_id)
            if entry is not None:
                if priority is not None:
                    entry.priority = priority
                return replace(entry)
            entry = QueueEntry(
                id=self._next_id,
                asset_id=asset_id,
                priority=priority if priority is not None else self.default_priority,
                max_attempts=self.max_attempts,
            )
            self._next_id += 1
            self._entries[entry.id] = entry
            logger.debug(f"Queued asset {asset_id} as entry {entry.id} (priority {entry.priority})")
            return replace(entry)

    def current_for(self, asset_id: int) -> Optional[QueueEntry]:
        """Latest entry for an asset regardless of status"""
        with self._lock:
            candidates = [e for e in self._entries.values() if e.asset_id == asset_id]
            if not candidates:
                return None
            return replace(max(candidates, key=lambda e: e.id))

    @staticmethod
    def _check_exhausted(entry: Optional[QueueEntry]):
        if entry is not None and entry.exhausted:
            raise DependencyError(
                f"Generation for asset {entry.asset_id} exhausted {entry.max_attempts} attempts; restart it first",
                {"asset_id": entry.asset_id, "attempts": entry.attempts, "max_attempts": entry.max_attempts}
            )

    def require_available(self, asset_id: int):
        """Raise DependencyError if the asset's open entry has used up its attempts"""
        with self._lock:
            self._check_exhausted(self._open_entry(asset_id))

    def mark_processing(self, asset_id: int, priority: Optional[int] = None) -> QueueEntry:
        """Start an attempt, enqueueing first if needed.

        Raises:
            DependencyError: If the open entry has used up its attempts
        """
        self.require_available(asset_id)
        self.enqueue(asset_id, priority)
        with self._lock:
            entry = self._open_entry(asset_id)
            self._check_exhausted(entry)
            entry.status = QueueStatus.PROCESSING
            entry.started_at = datetime.now()
            return replace(entry)

    def complete(self, asset_id: int) -> QueueEntry:
        with self._lock:
            entry = self._require_open(asset_id)
            entry.status = QueueStatus.COMPLETED
            entry.error_message = None
            entry.completed_at = datetime.now()
            return replace(entry)

    def fail(self, asset_id: int, error_message: str) -> QueueEntry:
        """Count a failed attempt. The entry goes back to queued until it is exhausted."""
        with self._lock:
            entry = self._require_open(asset_id)
            entry.attempts = min(entry.attempts + 1, entry.max_attempts)
            entry.error_message = error_message
            if entry.exhausted:
                entry.status = QueueStatus.FAILED
                entry.completed_at = datetime.now()
                logger.warning(f"Asset {asset_id} exhausted {entry.max_attempts} generation attempts")
            else:
                entry.status = QueueStatus.QUEUED
            return replace(entry)

    def restart(self, asset_id: int) -> QueueEntry:
        """Explicitly reset an asset's open entry so it may be attempted again"""
        with self._lock:
            entry = self._require_open(asset_id)
            entry.attempts = 0
            entry.status = QueueStatus.QUEUED
            entry.error_message = None
            entry.started_at = None
            entry.completed_at = None
            return replace(entry)

    def _require_open(self, asset_id: int) -> QueueEntry:
        entry = self._open_entry(asset_id)
        if entry is None:
            raise NotFoundError(f"No open queue entry for asset {asset_id}", {"asset_id": asset_id})
        return entry

    def list_entries(self, status: Optional[QueueStatus] = None) -> List[QueueEntry]:
        """Entries ordered by priority then age"""
        with self._lock:
            entries = [e for e in self._entries.values() if status is None or e.status == status]
            entries.sort(key=lambda e: (e.priority, e.id))
            return [replace(e) for e in entries]

    def status_counts(self) -> Dict[str, int]:
        counts = {status.value: 0 for status in QueueStatus}
        with self._lock:
            for entry in self._entries.values():
                counts[entry.status.value] += 1
        return counts
