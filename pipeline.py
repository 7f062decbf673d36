"""Wiring of the asset pipeline components"""

import logging
from dataclasses import dataclass
from typing import Optional

from background_removal import BackgroundRemovalClient
from comfyui_client import ComfyUIClient
from managers.asset_registry import AssetRegistry
from managers.audit_logger import AuditLogger
from managers.blob_store import FilesystemBlobStore, create_blob_store
from managers.building_registry import BuildingRegistry, load_building_types
from managers.composite_cache import CompositeCacheManager
from managers.defaults_manager import SettingsManager
from managers.derivation_gate import DerivationGate
from managers.generation_queue import GenerationQueue
from managers.publish_manager import BackgroundRemover, PublishManager
from managers.rejection_log import RejectionLog
from managers.review_controller import GenerationService, ReviewController

logger = logging.getLogger("AssetPipeline")


@dataclass
class Pipeline:
    settings: SettingsManager
    registry: AssetRegistry
    rejections: RejectionLog
    queue: GenerationQueue
    audit: AuditLogger
    gate: DerivationGate
    private_store: FilesystemBlobStore
    public_store: FilesystemBlobStore
    controller: ReviewController
    publisher: PublishManager
    composites: CompositeCacheManager
    buildings: BuildingRegistry


def build_pipeline(
    settings: SettingsManager,
    generator: Optional[GenerationService] = None,
    background_remover: Optional[BackgroundRemover] = None
) -> Pipeline:
    """Create every component from settings.

    generator and background_remover default to the HTTP clients built
    from settings; tests pass in fakes.
    """
    if generator is None:
        generator = ComfyUIClient(
            settings.get("comfyui_url"),
            settings.get("workflow_path"),
            timeout=settings.get("generation_timeout"),
        )
    if background_remover is None:
        background_remover = BackgroundRemovalClient(
            settings.get("background_removal_api_key"),
            url=settings.get("background_removal_url"),
            timeout=settings.get("background_removal_timeout"),
        )

    registry = AssetRegistry()
    rejections = RejectionLog()
    queue = GenerationQueue(
        max_attempts=settings.get("max_attempts"),
        default_priority=settings.get("queue_priority"),
    )
    audit = AuditLogger()
    gate = DerivationGate(registry)
    private_store = create_blob_store(settings.get("private_root"), name="private")
    public_store = create_blob_store(settings.get("public_root"), settings.get("public_base_url"), name="public")

    building_types = None
    if settings.get("building_types_file"):
        building_types = load_building_types(settings.get("building_types_file"))

    pipeline = Pipeline(
        settings=settings,
        registry=registry,
        rejections=rejections,
        queue=queue,
        audit=audit,
        gate=gate,
        private_store=private_store,
        public_store=public_store,
        controller=ReviewController(registry, rejections, queue, audit, gate, generator, private_store),
        publisher=PublishManager(registry, audit, private_store, public_store, background_remover),
        composites=CompositeCacheManager(public_store, audit),
        buildings=BuildingRegistry(registry, audit, building_types),
    )
    logger.info("Asset pipeline ready")
    return pipeline
