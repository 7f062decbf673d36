"""Publish manager: moves approved assets from the private store to the public store"""

import logging
import threading
from typing import Any, Dict, Optional, Protocol, Tuple

from asset_processor import get_image_metadata, normalize_image
from errors import DependencyError, PipelineError, ValidationError
from managers.asset_registry import AssetRegistry
from managers.audit_logger import AuditLogger
from managers.blob_store import FilesystemBlobStore
from models.asset import AssetRecord, AssetStatus
from models.category import CategoryInfo, get_category, public_storage_key, transparent_storage_key

logger = logging.getLogger("AssetPipeline")


class BackgroundRemover(Protocol):
    def remove_background(self, image_bytes: bytes) -> bytes:
        ...


class PublishManager:
    """Linear publish pipeline: fetch -> remove background -> normalize -> upload.

    Each stage raises its own error kind. The record's publish fields are
    written only after the public upload succeeded, so a failure at any
    stage leaves a previous publish intact.
    """

    def __init__(
        self,
        registry: AssetRegistry,
        audit: AuditLogger,
        private_store: FilesystemBlobStore,
        public_store: FilesystemBlobStore,
        background_remover: BackgroundRemover
    ):
        self.registry = registry
        self.audit = audit
        self.private_store = private_store
        self.public_store = public_store
        self.background_remover = background_remover
        self._publish_lock = threading.Lock()  # Serializes uploads that share a public key
        logger.info(f"Initialized PublishManager with public store at {public_store.root}")

    def _require_approved(self, asset_id: int) -> AssetRecord:
        record = self.registry.get(asset_id)
        if record.status != AssetStatus.APPROVED:
            raise DependencyError(
                f"Asset {asset_id} must be approved before publishing (status: {record.status.value})",
                {"asset_id": asset_id, "status": record.status.value}
            )
        if not record.private_storage_key:
            raise DependencyError(f"Asset {asset_id} has no generated image", {"asset_id": asset_id})
        return record

    @staticmethod
    def _require_publishable(record: AssetRecord) -> CategoryInfo:
        info = get_category(record.category)
        if info is None or not info.publishable or info.target_size is None:
            raise ValidationError(
                f"Category '{record.category}' is not publishable",
                {"asset_id": record.id, "category": record.category}
            )
        return info

    def _record_failure(self, record: AssetRecord, error: PipelineError, actor: Optional[str], action: str):
        """Keep the error on the record; status and publish fields are left as they were"""
        record.error_message = error.message
        self.registry.save(record)
        logger.warning(f"{action} of asset {record.id} failed ({error.error_code}): {error.message}")
        self.audit.log(f"{action}_failed", record.id, actor, {
            "stage": "remove_background",
            "error": error.message,
            "error_code": error.error_code,
        })

    def _ensure_background_removed(
        self,
        record: AssetRecord,
        source: bytes,
        actor: Optional[str],
        action: str
    ) -> Tuple[AssetRecord, bytes]:
        """Run background removal once and persist the transparent copy as the private source"""
        key = transparent_storage_key(record.private_storage_key)
        try:
            transparent = self.background_remover.remove_background(source)
            self.private_store.put(key, transparent, "image/png")
        except PipelineError as e:
            self._record_failure(record, e, actor, action)
            raise

        record.private_storage_key = key
        record.background_removed = True
        record.error_message = None
        record = self.registry.save(record)
        self.audit.log("remove_background", record.id, actor, {"storage_key": key})
        logger.info(f"Removed background for asset {record.id} -> {key}")
        return record, transparent

    def remove_background_for(self, asset_id: int, actor: Optional[str] = None) -> Dict[str, Any]:
        """Run only the fetch and background-removal stages.

        Returns:
            Dict with the updated asset and whether removal was skipped because it already ran
        """
        record = self._require_approved(asset_id)
        info = self._require_publishable(record)
        if not info.requires_background_removal:
            raise ValidationError(
                f"Category '{record.category}' does not use background removal",
                {"asset_id": asset_id, "category": record.category}
            )
        if record.background_removed:
            return {"asset": record.to_dict(), "skipped": True}

        source = self.private_store.get(record.private_storage_key)
        record, _ = self._ensure_background_removed(record, source, actor, "remove_background")
        return {"asset": record.to_dict(), "skipped": False}

    def publish(self, asset_id: int, actor: Optional[str] = None) -> Dict[str, Any]:
        """Publish an approved asset to the public store.

        Args:
            asset_id: Approved asset to publish
            actor: Identity recorded in the audit log

        Returns:
            Dict with the updated asset, public key, URL and output metadata

        Raises:
            DependencyError: Asset not approved (nothing is written)
            ValidationError: Category is never published
            StorageError: Private read or public write failed
            ExternalServiceError: Background removal failed
        """
        record = self._require_approved(asset_id)
        info = self._require_publishable(record)

        source = self.private_store.get(record.private_storage_key)

        if info.requires_background_removal and not record.background_removed:
            record, source = self._ensure_background_removed(record, source, actor, "publish")

        output = normalize_image(source, info.target_size)
        public_key = public_storage_key(record.category, record.asset_key, record.variant)

        with self._publish_lock:
            self.public_store.put(public_key, output, "image/webp")
            url = self.public_store.url_for(public_key)
            record.public_storage_key = public_key
            record.public_url = url
            record.error_message = None
            record = self.registry.save(record)

        metadata = get_image_metadata(output)
        self.audit.log("publish", asset_id, actor, {
            "public_storage_key": public_key,
            "public_url": url,
            "bytes_size": len(output),
        })
        logger.info(f"Published asset {asset_id} -> {public_key} ({len(output)} bytes)")
        return {
            "asset": record.to_dict(),
            "public_storage_key": public_key,
            "public_url": url,
            "bytes_size": len(output),
            "width": metadata["width"],
            "height": metadata["height"],
            "mime_type": "image/webp",
        }
