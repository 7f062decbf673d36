"""Review/feedback controller: generation orchestration and the review state machine"""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional, Protocol

from errors import DependencyError, PipelineError, ValidationError
from managers.asset_registry import AssetRegistry
from managers.audit_logger import AuditLogger
from managers.blob_store import FilesystemBlobStore
from managers.derivation_gate import DerivationGate
from managers.generation_queue import GenerationQueue
from managers.rejection_log import RejectionLog
from models.asset import AssetRecord, AssetStatus, QueueStatus, RejectionRecord
from models.category import private_storage_key

logger = logging.getLogger("AssetPipeline")

GENERATABLE_STATUSES = (AssetStatus.PENDING, AssetStatus.REJECTED, AssetStatus.FAILED)


class GenerationService(Protocol):
    def generate(self, prompt: str) -> bytes:
        ...


def build_feedback_prompt(base_prompt: str, reason: str) -> str:
    """Fold reviewer feedback into the next prompt.

    Always built from base_prompt so feedback from earlier rejections
    does not pile up.
    """
    return (
        f"{base_prompt}\n\n"
        f"IMPORTANT FEEDBACK FROM PREVIOUS ATTEMPT:\n{reason}\n\n"
        f"Please address the above feedback in this generation."
    )


class ReviewController:
    """Drives assets through generate -> review -> approve/reject and back.

    Every mutating method writes one audit entry on success.
    """

    def __init__(
        self,
        registry: AssetRegistry,
        rejections: RejectionLog,
        queue: GenerationQueue,
        audit: AuditLogger,
        gate: DerivationGate,
        generator: GenerationService,
        private_store: FilesystemBlobStore
    ):
        self.registry = registry
        self.rejections = rejections
        self.queue = queue
        self.audit = audit
        self.gate = gate
        self.generator = generator
        self.private_store = private_store

    # -- requests -------------------------------------------------------

    @staticmethod
    def _validate_request(asset_key: str, prompt: str, variant: int):
        if not asset_key or not asset_key.strip():
            raise ValidationError("asset_key is required")
        if not prompt or not prompt.strip():
            raise ValidationError("prompt is required")
        if not isinstance(variant, int) or variant < 1:
            raise ValidationError(f"variant must be a positive integer, got {variant!r}", {"variant": variant})

    def _upsert_for_request(
        self,
        category: str,
        asset_key: str,
        variant: int,
        prompt: str,
        parent_asset_id: Optional[int] = None
    ) -> AssetRecord:
        existing = self.registry.find(category, asset_key, variant)
        if existing is not None:
            if existing.status == AssetStatus.GENERATING:
                raise DependencyError(
                    f"Asset {existing.id} is already generating",
                    {"asset_id": existing.id, "status": existing.status.value}
                )
            # Refuse before the record is reset so an exhausted asset stays failed
            self.queue.require_available(existing.id)
        return self.registry.upsert(category, asset_key, variant, prompt, parent_asset_id)

    def generate(
        self,
        category: str,
        asset_key: str,
        prompt: str,
        variant: int = 1,
        actor: Optional[str] = None,
        priority: Optional[int] = None
    ) -> AssetRecord:
        """Create or reset the record for (category, asset_key, variant) and generate it now.

        Raises:
            ValidationError: Unknown category or missing key/prompt
            DependencyError: Required parent or prerequisite not approved, or attempts exhausted
            ExternalServiceError: The generation service failed or timed out
            StorageError: The generated bytes could not be stored
        """
        info = self.gate.require_category(category)
        self._validate_request(asset_key, prompt, variant)
        parent_id = self.gate.check_generation_allowed(info, asset_key)

        record = self._upsert_for_request(category, asset_key, variant, prompt, parent_id)
        return self._run_generation(record, actor, "generate", priority)

    def enqueue(
        self,
        category: str,
        asset_key: str,
        prompt: str,
        variant: int = 1,
        priority: Optional[int] = None,
        actor: Optional[str] = None
    ) -> Dict[str, Any]:
        """Register a generation request without calling the generation service"""
        info = self.gate.require_category(category)
        self._validate_request(asset_key, prompt, variant)
        parent_id = self.gate.check_generation_allowed(info, asset_key)

        record = self._upsert_for_request(category, asset_key, variant, prompt, parent_id)
        entry = self.queue.enqueue(record.id, priority)
        self.audit.log("enqueue", record.id, actor, {"priority": entry.priority, "queue_entry_id": entry.id})
        return {"asset": record.to_dict(), "queue_entry": entry.to_dict()}

    def generate_from_ref(
        self,
        parent_id: int,
        sprite_prompt: str,
        variant: int = 1,
        actor: Optional[str] = None
    ) -> AssetRecord:
        """Generate the derived child of an approved reference record.

        The child takes the parent's asset_key and the first category that
        derives from the parent's category.
        """
        parent, child_info = self.gate.require_approved_parent(parent_id)
        self._validate_request(parent.asset_key, sprite_prompt, variant)

        child = self._upsert_for_request(child_info.id, parent.asset_key, variant, sprite_prompt, parent.id)
        logger.info(f"Deriving {child_info.id} asset {child.id} from approved {parent.category} {parent.id}")
        return self._run_generation(child, actor, "generate_from_ref", details={"parent_asset_id": parent.id})

    def regenerate(self, asset_id: int, actor: Optional[str] = None) -> AssetRecord:
        """Re-run generation with the current prompt. prompt_version is not changed."""
        record = self.registry.get(asset_id)
        if record.status not in (AssetStatus.REJECTED, AssetStatus.FAILED):
            raise DependencyError(
                f"Asset {asset_id} can only be regenerated from rejected or failed (status: {record.status.value})",
                {"asset_id": asset_id, "status": record.status.value}
            )
        return self._run_generation(record, actor, "regenerate")

    def restart_generation(self, asset_id: int, actor: Optional[str] = None) -> Dict[str, Any]:
        """Give an asset whose queue entry exhausted its attempts a fresh set of attempts"""
        record = self.registry.get(asset_id)
        entry = self.queue.current_for(asset_id)
        if entry is None or entry.status != QueueStatus.FAILED:
            raise DependencyError(
                f"Asset {asset_id} has no exhausted generation to restart",
                {"asset_id": asset_id, "queue_status": entry.status.value if entry else None}
            )
        entry = self.queue.restart(asset_id)
        self.audit.log("restart_generation", asset_id, actor, {"queue_entry_id": entry.id})
        return {"asset": record.to_dict(), "queue_entry": entry.to_dict()}

    # -- generation ------------------------------------------------------

    def _run_generation(
        self,
        record: AssetRecord,
        actor: Optional[str],
        action: str,
        priority: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None
    ) -> AssetRecord:
        if record.status not in GENERATABLE_STATUSES:
            raise DependencyError(
                f"Asset {record.id} cannot be generated from status {record.status.value}",
                {"asset_id": record.id, "status": record.status.value}
            )

        entry = self.queue.mark_processing(record.id, priority)
        record.status = AssetStatus.GENERATING
        record.error_message = None
        record = self.registry.save(record)
        logger.info(f"Generating asset {record.id} ({record.category}/{record.asset_key} v{record.variant}), "
                    f"attempt {entry.attempts + 1}/{entry.max_attempts}")

        try:
            image_bytes = self.generator.generate(record.current_prompt)
            key = private_storage_key(record.category, record.asset_key, record.variant)
            self.private_store.put(key, image_bytes, "image/png")
        except PipelineError as e:
            self._mark_failed(record, e, actor, action)
            raise
        except Exception as e:
            logger.exception(f"Unexpected failure generating asset {record.id}")
            self._mark_failed(record, e, actor, action)
            raise

        record.status = AssetStatus.AWAITING_REVIEW
        record.private_storage_key = key
        record.background_removed = False
        record = self.registry.save(record)
        self.queue.complete(record.id)

        audit_details = {"storage_key": key, "prompt_version": record.prompt_version}
        audit_details.update(details or {})
        self.audit.log(action, record.id, actor, audit_details)
        return record

    def _mark_failed(self, record: AssetRecord, error: Exception, actor: Optional[str], action: str):
        message = str(error)
        record.status = AssetStatus.FAILED
        record.error_message = message
        self.registry.save(record)
        entry = self.queue.fail(record.id, message)
        error_code = error.error_code if isinstance(error, PipelineError) else "INTERNAL_ERROR"
        logger.warning(f"Generation of asset {record.id} failed ({error_code}): {message}")
        self.audit.log(f"{action}_failed", record.id, actor, {
            "error": message,
            "error_code": error_code,
            "attempts": entry.attempts,
            "max_attempts": entry.max_attempts,
        })

    # -- review ----------------------------------------------------------

    def approve(self, asset_id: int, actor: Optional[str] = None) -> AssetRecord:
        """Approve an asset awaiting review and make it the active one for its key"""
        record = self.registry.get(asset_id)
        if record.status != AssetStatus.AWAITING_REVIEW:
            raise DependencyError(
                f"Asset {asset_id} is not awaiting review (status: {record.status.value})",
                {"asset_id": asset_id, "status": record.status.value}
            )
        record.status = AssetStatus.APPROVED
        record.approved_at = datetime.now()
        record.approved_by = actor
        self.registry.save(record)
        record = self.registry.set_active(asset_id)
        self.audit.log("approve", asset_id, actor, {"prompt_version": record.prompt_version})
        logger.info(f"Approved asset {asset_id} ({record.category}/{record.asset_key} v{record.variant})")
        return record

    def reject(
        self,
        asset_id: int,
        reason: str,
        incorporate_feedback: bool = True,
        actor: Optional[str] = None
    ) -> AssetRecord:
        """Reject an asset awaiting review, optionally folding the reason into its prompt.

        Args:
            asset_id: Asset to reject
            reason: Reviewer feedback; must not be blank
            incorporate_feedback: If True, current_prompt becomes base_prompt plus the feedback block
            actor: Reviewer identity for the rejection and audit records

        Returns:
            The updated record with status rejected
        """
        if not reason or not reason.strip():
            raise ValidationError("A rejection reason is required", {"asset_id": asset_id})
        record = self.registry.get(asset_id)
        if record.status != AssetStatus.AWAITING_REVIEW:
            raise DependencyError(
                f"Asset {asset_id} is not awaiting review (status: {record.status.value})",
                {"asset_id": asset_id, "status": record.status.value}
            )

        prompt_snapshot = record.current_prompt
        version_at_rejection = record.prompt_version
        record.status = AssetStatus.REJECTED
        record.rejection_count += 1
        record.prompt_version += 1
        if incorporate_feedback:
            record.current_prompt = build_feedback_prompt(record.base_prompt, reason.strip())
        record = self.registry.save(record)

        rejection = self.rejections.append(
            asset_id=asset_id,
            reason=reason.strip(),
            prompt_snapshot=prompt_snapshot,
            prompt_version_at_rejection=version_at_rejection,
            rejected_by=actor or "system",
            rejected_storage_key=record.private_storage_key,
        )
        self.audit.log("reject", asset_id, actor, {
            "reason": rejection.reason,
            "incorporate_feedback": incorporate_feedback,
            "prompt_version": record.prompt_version,
        })
        return record

    def reset_prompt(self, asset_id: int, actor: Optional[str] = None) -> AssetRecord:
        """Drop accumulated feedback: current_prompt goes back to base_prompt"""
        record = self.registry.get(asset_id)
        if record.status not in (AssetStatus.REJECTED, AssetStatus.APPROVED):
            raise DependencyError(
                f"Prompt of asset {asset_id} can only be reset when rejected or approved (status: {record.status.value})",
                {"asset_id": asset_id, "status": record.status.value}
            )
        record.current_prompt = record.base_prompt
        record.prompt_version += 1
        record = self.registry.save(record)
        self.audit.log("reset_prompt", asset_id, actor, {"prompt_version": record.prompt_version})
        return record

    def set_active(self, asset_id: int, actor: Optional[str] = None) -> AssetRecord:
        record = self.registry.get(asset_id)
        if record.status != AssetStatus.APPROVED:
            raise DependencyError(
                f"Only approved assets can be made active (status: {record.status.value})",
                {"asset_id": asset_id, "status": record.status.value}
            )
        record = self.registry.set_active(asset_id)
        self.audit.log("set_active", asset_id, actor, {"category": record.category, "asset_key": record.asset_key})
        return record

    # -- queries ---------------------------------------------------------

    def get_rejection_history(self, asset_id: int) -> List[RejectionRecord]:
        self.registry.get(asset_id)
        return self.rejections.history(asset_id)

    def get_queue_status(self) -> Dict[str, Any]:
        return {
            "counts": self.queue.status_counts(),
            "entries": [e.to_dict() for e in self.queue.list_entries() if e.status != QueueStatus.COMPLETED],
        }
