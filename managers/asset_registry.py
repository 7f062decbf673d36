"""Asset registry: the authoritative store of asset records and lifecycle state"""

import copy
import logging
import threading
from datetime import datetime
from typing import Dict, List, Optional, Tuple

from errors import ConflictError, NotFoundError
from models.asset import AssetRecord, AssetStatus

logger = logging.getLogger("AssetPipeline")


class AssetRegistry:
    """Repository of AssetRecords keyed by id and unique on (category, asset_key, variant).

    Records handed out are copies. Callers mutate their copy and write it
    back with save(), which rejects the write if another save landed first.
    """

    def __init__(self):
        self._assets: Dict[int, AssetRecord] = {}
        self._key_to_asset_id: Dict[Tuple[str, str, int], int] = {}  # Uniqueness index
        self._next_id = 1
        self._lock = threading.Lock()
        logger.info("Initialized AssetRegistry")

    def upsert(
        self,
        category: str,
        asset_key: str,
        variant: int,
        base_prompt: str,
        parent_asset_id: Optional[int] = None
    ) -> AssetRecord:
        """Create a record or reset the existing one for the same triple back to pending"""
        key = (category, asset_key, variant)
        now = datetime.now()
        with self._lock:
            asset_id = self._key_to_asset_id.get(key)
            if asset_id is None:
                record = AssetRecord(
                    id=self._next_id,
                    category=category,
                    asset_key=asset_key,
                    variant=variant,
                    base_prompt=base_prompt,
                    current_prompt=base_prompt,
                    parent_asset_id=parent_asset_id,
                    created_at=now,
                    updated_at=now,
                )
                self._next_id += 1
                self._assets[record.id] = record
                self._key_to_asset_id[key] = record.id
                logger.debug(f"Created asset {record.id} for {category}/{asset_key} v{variant}")
            else:
                record = self._assets[asset_id]
                record.base_prompt = base_prompt
                record.current_prompt = base_prompt
                record.status = AssetStatus.PENDING
                record.parent_asset_id = parent_asset_id
                record.error_message = None
                record.approved_at = None
                record.approved_by = None
                record.is_active = False
                record.row_version += 1
                record.updated_at = now
                logger.debug(f"Reset asset {asset_id} for {category}/{asset_key} v{variant} to pending")
            return copy.deepcopy(record)

    def get(self, asset_id: int) -> AssetRecord:
        """Retrieve a record by id, raising NotFoundError if it does not exist"""
        with self._lock:
            record = self._assets.get(asset_id)
            if record is None:
                raise NotFoundError(f"Asset {asset_id} not found", {"asset_id": asset_id})
            return copy.deepcopy(record)

    def find(self, category: str, asset_key: str, variant: int) -> Optional[AssetRecord]:
        with self._lock:
            asset_id = self._key_to_asset_id.get((category, asset_key, variant))
            if asset_id is None:
                return None
            return copy.deepcopy(self._assets[asset_id])

    def save(self, record: AssetRecord) -> AssetRecord:
        """Write back a modified copy.

        Raises:
            NotFoundError: If the record was never created through upsert()
            ConflictError: If the stored row_version moved since the copy was taken
        """
        with self._lock:
            current = self._assets.get(record.id)
            if current is None:
                raise NotFoundError(f"Asset {record.id} not found", {"asset_id": record.id})
            if current.row_version != record.row_version:
                raise ConflictError(
                    f"Asset {record.id} was modified concurrently "
                    f"(expected row_version {record.row_version}, found {current.row_version})",
                    {"asset_id": record.id}
                )
            stored = copy.deepcopy(record)
            stored.row_version += 1
            stored.updated_at = datetime.now()
            self._assets[record.id] = stored
            return copy.deepcopy(stored)

    def list_by_category(
        self,
        category: str,
        parent_asset_id: Optional[int] = None,
        status: Optional[AssetStatus] = None
    ) -> List[AssetRecord]:
        """List records of a category ordered by (asset_key, variant), optionally filtered"""
        with self._lock:
            records = [
                record for record in self._assets.values()
                if record.category == category
                and (parent_asset_id is None or record.parent_asset_id == parent_asset_id)
                and (status is None or record.status == status)
            ]
            records.sort(key=lambda r: (r.asset_key, r.variant))
            return [copy.deepcopy(r) for r in records]

    def list_children(self, parent_asset_id: int) -> List[AssetRecord]:
        """Query the records derived from a parent. Parents never store this list."""
        with self._lock:
            children = [r for r in self._assets.values() if r.parent_asset_id == parent_asset_id]
            children.sort(key=lambda r: (r.category, r.asset_key, r.variant))
            return [copy.deepcopy(r) for r in children]

    def list_all(self, status: Optional[AssetStatus] = None) -> List[AssetRecord]:
        with self._lock:
            records = [r for r in self._assets.values() if status is None or r.status == status]
            records.sort(key=lambda r: r.id)
            return [copy.deepcopy(r) for r in records]

    def set_active(self, asset_id: int) -> AssetRecord:
        """Mark one record active and deactivate the others sharing its (category, asset_key)"""
        with self._lock:
            target = self._assets.get(asset_id)
            if target is None:
                raise NotFoundError(f"Asset {asset_id} not found", {"asset_id": asset_id})
            now = datetime.now()
            for record in self._assets.values():
                if record.category != target.category or record.asset_key != target.asset_key:
                    continue
                should_be_active = record.id == asset_id
                if record.is_active != should_be_active:
                    record.is_active = should_be_active
                    record.row_version += 1
                    record.updated_at = now
            return copy.deepcopy(target)
