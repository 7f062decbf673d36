"""Manager classes for the asset pipeline"""

from managers.asset_registry import AssetRegistry
from managers.audit_logger import AuditLogger
from managers.blob_store import FilesystemBlobStore
from managers.building_registry import BuildingRegistry
from managers.composite_cache import CompositeCacheManager
from managers.defaults_manager import SettingsManager
from managers.derivation_gate import DerivationGate
from managers.generation_queue import GenerationQueue
from managers.publish_manager import PublishManager
from managers.rejection_log import RejectionLog
from managers.review_controller import ReviewController

__all__ = [
    "AssetRegistry",
    "AuditLogger",
    "BuildingRegistry",
    "CompositeCacheManager",
    "DerivationGate",
    "FilesystemBlobStore",
    "GenerationQueue",
    "PublishManager",
    "RejectionLog",
    "ReviewController",
    "SettingsManager",
]
