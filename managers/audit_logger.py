"""System-wide append-only audit log"""

import logging
import threading
from typing import Any, Dict, List, Optional

from models.asset import AuditLogEntry

logger = logging.getLogger("AssetPipeline")

DEFAULT_ACTOR = "system"


class AuditLogger:
    """Records every mutating action. Entries are never mutated or deleted."""

    def __init__(self):
        self._entries: List[AuditLogEntry] = []
        self._lock = threading.Lock()

    def log(
        self,
        action: str,
        asset_id: Optional[int] = None,
        actor: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ) -> AuditLogEntry:
        with self._lock:
            entry = AuditLogEntry(
                id=len(self._entries) + 1,
                action=action,
                asset_id=asset_id,
                actor=actor or DEFAULT_ACTOR,
                details=dict(details or {}),
            )
            self._entries.append(entry)
        logger.info(f"Audit: {action} asset={asset_id} actor={entry.actor}")
        return entry

    def recent(self, limit: int = 50, action: Optional[str] = None) -> List[AuditLogEntry]:
        """Newest entries first, optionally filtered by action"""
        with self._lock:
            entries = [e for e in reversed(self._entries) if action is None or e.action == action]
        return entries[:max(limit, 0)]

    def for_asset(self, asset_id: int) -> List[AuditLogEntry]:
        with self._lock:
            return [e for e in reversed(self._entries) if e.asset_id == asset_id]
