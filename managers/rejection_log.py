"""Append-only rejection history"""

import logging
import threading
from typing import Dict, List, Optional

from models.asset import RejectionRecord

logger = logging.getLogger("AssetPipeline")


class RejectionLog:
    """Stores review feedback per asset. Entries are never altered or removed."""

    def __init__(self):
        self._records: List[RejectionRecord] = []
        self._by_asset: Dict[int, List[RejectionRecord]] = {}
        self._lock = threading.Lock()

    def append(
        self,
        asset_id: int,
        reason: str,
        prompt_snapshot: str,
        prompt_version_at_rejection: int,
        rejected_by: str,
        rejected_storage_key: Optional[str] = None
    ) -> RejectionRecord:
        with self._lock:
            record = RejectionRecord(
                id=len(self._records) + 1,
                asset_id=asset_id,
                reason=reason,
                prompt_snapshot=prompt_snapshot,
                prompt_version_at_rejection=prompt_version_at_rejection,
                rejected_by=rejected_by,
                rejected_storage_key=rejected_storage_key,
            )
            self._records.append(record)
            self._by_asset.setdefault(asset_id, []).append(record)
        logger.debug(f"Recorded rejection {record.id} for asset {asset_id}")
        return record

    def history(self, asset_id: int) -> List[RejectionRecord]:
        """Rejections for an asset, newest first"""
        with self._lock:
            return list(reversed(self._by_asset.get(asset_id, [])))

    def count(self, asset_id: int) -> int:
        with self._lock:
            return len(self._by_asset.get(asset_id, []))
