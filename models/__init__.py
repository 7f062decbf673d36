"""Data models for the asset pipeline"""

from models.asset import AssetRecord, AssetStatus, AuditLogEntry, QueueEntry, QueueStatus, RejectionRecord
from models.building import BuildingConfiguration, BuildingType
from models.category import CategoryInfo
from models.composite import (
    AvatarCompositeCacheEntry,
    AvatarLayer,
    AvatarSlot,
    SceneComposedCacheEntry,
    SceneTemplate,
)

__all__ = [
    "AssetRecord",
    "AssetStatus",
    "AuditLogEntry",
    "AvatarCompositeCacheEntry",
    "AvatarLayer",
    "AvatarSlot",
    "BuildingConfiguration",
    "BuildingType",
    "CategoryInfo",
    "QueueEntry",
    "QueueStatus",
    "RejectionRecord",
    "SceneComposedCacheEntry",
    "SceneTemplate",
]
