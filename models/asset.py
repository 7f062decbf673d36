"""Asset data models"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional


class AssetStatus(str, Enum):
    """Lifecycle states of a generated asset."""
    PENDING = "pending"
    GENERATING = "generating"
    AWAITING_REVIEW = "awaiting_review"
    APPROVED = "approved"
    REJECTED = "rejected"
    FAILED = "failed"


class QueueStatus(str, Enum):
    QUEUED = "queued"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class AssetRecord:
    """One generated visual unit, unique per (category, asset_key, variant)"""
    id: int
    category: str
    asset_key: str
    variant: int
    base_prompt: str
    current_prompt: str
    prompt_version: int = 1
    status: AssetStatus = AssetStatus.PENDING
    private_storage_key: Optional[str] = None
    public_storage_key: Optional[str] = None
    public_url: Optional[str] = None
    background_removed: bool = False
    rejection_count: int = 0
    parent_asset_id: Optional[int] = None  # Weak reference, children are always queried
    is_active: bool = False
    approved_at: Optional[datetime] = None
    approved_by: Optional[str] = None
    error_message: Optional[str] = None
    row_version: int = 0  # Optimistic concurrency counter, bumped on every save
    created_at: datetime = field(default_factory=datetime.now)
    updated_at: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "category": self.category,
            "asset_key": self.asset_key,
            "variant": self.variant,
            "base_prompt": self.base_prompt,
            "current_prompt": self.current_prompt,
            "prompt_version": self.prompt_version,
            "status": self.status.value,
            "private_storage_key": self.private_storage_key,
            "public_storage_key": self.public_storage_key,
            "public_url": self.public_url,
            "background_removed": self.background_removed,
            "rejection_count": self.rejection_count,
            "parent_asset_id": self.parent_asset_id,
            "is_active": self.is_active,
            "approved_at": self.approved_at.isoformat() if self.approved_at else None,
            "approved_by": self.approved_by,
            "error_message": self.error_message,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }


@dataclass(frozen=True)
class RejectionRecord:
    """Immutable review feedback entry"""
    id: int
    asset_id: int
    reason: str
    prompt_snapshot: str  # Prompt in effect before this rejection
    prompt_version_at_rejection: int
    rejected_by: str
    rejected_storage_key: Optional[str] = None
    created_at: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "asset_id": self.asset_id,
            "reason": self.reason,
            "prompt_snapshot": self.prompt_snapshot,
            "prompt_version_at_rejection": self.prompt_version_at_rejection,
            "rejected_by": self.rejected_by,
            "rejected_storage_key": self.rejected_storage_key,
            "created_at": self.created_at.isoformat(),
        }


@dataclass
class QueueEntry:
    """One tracked generation attempt series for an asset"""
    id: int
    asset_id: int
    priority: int = 5
    attempts: int = 0
    max_attempts: int = 3
    status: QueueStatus = QueueStatus.QUEUED
    error_message: Optional[str] = None
    created_at: datetime = field(default_factory=datetime.now)
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    @property
    def exhausted(self) -> bool:
        return self.attempts >= self.max_attempts

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "asset_id": self.asset_id,
            "priority": self.priority,
            "attempts": self.attempts,
            "max_attempts": self.max_attempts,
            "status": self.status.value,
            "error_message": self.error_message,
            "created_at": self.created_at.isoformat(),
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
        }


@dataclass(frozen=True)
class AuditLogEntry:
    """Append-only record of a mutating action"""
    id: int
    action: str
    asset_id: Optional[int]
    actor: str
    details: Dict[str, Any] = field(default_factory=dict)
    created_at: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "action": self.action,
            "asset_id": self.asset_id,
            "actor": self.actor,
            "details": dict(self.details),
            "created_at": self.created_at.isoformat(),
        }
