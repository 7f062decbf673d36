"""Composite cache manager: avatar composites and composed scenes with hash invalidation"""

import hashlib
import logging
import threading
from datetime import datetime
from numbers import Number
from typing import Any, Dict, Iterable, List, Optional, Tuple

from asset_processor import get_image_metadata
from errors import DependencyError, NotFoundError, ValidationError
from managers.audit_logger import AuditLogger
from managers.blob_store import FilesystemBlobStore
from models.composite import (
    AVATAR_LAYER_ORDER,
    AvatarCompositeCacheEntry,
    AvatarLayer,
    AvatarSlot,
    SceneComposedCacheEntry,
    SceneTemplate,
)

logger = logging.getLogger("AssetPipeline")

MAIN_CONTEXT = "main"


def hash_string(value: str) -> str:
    """First 16 hex characters of the SHA-256 of value"""
    return hashlib.sha256(value.encode("utf-8")).hexdigest()[:16]


def avatar_hash(layer_ids: Iterable[Optional[str]]) -> str:
    """Order-independent hash of an avatar selection.

    Raises:
        ValidationError: If no non-empty layer id is given
    """
    ids = sorted(str(layer_id) for layer_id in layer_ids if layer_id is not None and str(layer_id) != "")
    if not ids:
        raise ValidationError("An avatar selection needs at least one layer id")
    return hash_string("|".join(ids))


def template_hash(background_key: str, foreground_key: Optional[str]) -> str:
    return hash_string(f"{background_key}|{foreground_key or ''}")


def _validate_slot(avatar_slot: Dict[str, Any]) -> AvatarSlot:
    if not isinstance(avatar_slot, dict):
        raise ValidationError("avatar_slot must be an object with x, y, width and height")
    values = {}
    for field_name in ("x", "y", "width", "height"):
        value = avatar_slot.get(field_name)
        if not isinstance(value, Number) or isinstance(value, bool):
            raise ValidationError(
                f"avatar_slot.{field_name} must be a number",
                {"field": f"avatar_slot.{field_name}", "value": value}
            )
        values[field_name] = value
    rotation = avatar_slot.get("rotation", 0)
    if not isinstance(rotation, Number) or isinstance(rotation, bool):
        raise ValidationError("avatar_slot.rotation must be a number", {"field": "avatar_slot.rotation"})
    if values["width"] <= 0 or values["height"] <= 0:
        raise ValidationError("avatar_slot width and height must be positive", {"avatar_slot": avatar_slot})
    return AvatarSlot(rotation=rotation, **values)


class CompositeCacheManager:
    """Decides when avatar and scene composites must be recomputed.

    Callers do the pixel work. This manager hashes inputs, stores the
    bytes it is handed, and deletes every scene composite that depended
    on an avatar composite the moment that avatar changes.
    """

    def __init__(self, public_store: FilesystemBlobStore, audit: AuditLogger):
        self.public_store = public_store
        self.audit = audit
        self._layers: Dict[str, AvatarLayer] = {}
        self._selections: Dict[str, List[str]] = {}  # subject_id -> last known layer ids
        self._avatar_cache: Dict[Tuple[str, str], AvatarCompositeCacheEntry] = {}
        self._templates: Dict[str, SceneTemplate] = {}
        self._scene_cache: Dict[Tuple[str, str], SceneComposedCacheEntry] = {}
        self._lock = threading.RLock()

    # -- avatar layers ---------------------------------------------------

    def register_avatar_layer(self, layer_id: str, layer_category: str, storage_key: str) -> AvatarLayer:
        if not layer_id:
            raise ValidationError("layer_id is required")
        if layer_category not in AVATAR_LAYER_ORDER:
            raise ValidationError(
                f"Unknown avatar layer category: {layer_category}",
                {"layer_category": layer_category, "known": list(AVATAR_LAYER_ORDER)}
            )
        if not storage_key:
            raise ValidationError("storage_key is required")
        layer = AvatarLayer(id=layer_id, layer_category=layer_category, storage_key=storage_key)
        with self._lock:
            self._layers[layer_id] = layer
        return layer

    def ordered_layers(self, layer_ids: Iterable[Optional[str]]) -> List[Dict[str, Any]]:
        """Layer references in compositing order (background first); unknown ids go last"""
        known: List[AvatarLayer] = []
        unknown: List[str] = []
        with self._lock:
            for layer_id in layer_ids:
                if layer_id is None or layer_id == "":
                    continue
                layer = self._layers.get(str(layer_id))
                if layer is None:
                    unknown.append(str(layer_id))
                else:
                    known.append(layer)
        known.sort(key=lambda layer: AVATAR_LAYER_ORDER.index(layer.layer_category))
        result = [
            {
                "id": layer.id,
                "layer_category": layer.layer_category,
                "storage_key": layer.storage_key,
                "url": self.public_store.url_for(layer.storage_key),
            }
            for layer in known
        ]
        result.extend({"id": layer_id, "layer_category": None, "storage_key": None, "url": None} for layer_id in unknown)
        return result

    # -- avatar composites -----------------------------------------------

    def _avatar_entry_dict(self, entry: AvatarCompositeCacheEntry, cached: bool) -> Dict[str, Any]:
        return {
            "cached": cached,
            "subject_id": entry.subject_id,
            "context": entry.context,
            "avatar_hash": entry.avatar_hash,
            "storage_key": entry.storage_key,
            "url": entry.url,
            "width": entry.width,
            "height": entry.height,
            "updated_at": entry.updated_at.isoformat(),
        }

    def upsert_avatar_composite(
        self,
        subject_id: str,
        context: str,
        selected_layer_ids: List[Optional[str]],
        image_bytes: Optional[bytes] = None,
        width: Optional[int] = None,
        height: Optional[int] = None,
        actor: Optional[str] = None
    ) -> Dict[str, Any]:
        """Store or confirm the composite for a subject's current avatar selection.

        Args:
            subject_id: Owner of the avatar
            context: Composite variant such as "main"
            selected_layer_ids: Current selection; order and null ids do not matter
            image_bytes: Freshly composited PNG, required whenever the selection changed
            width: Composite width, read from the image when omitted
            height: Composite height, read from the image when omitted
            actor: Identity recorded in the audit log

        Returns:
            The cache entry, with "cached" True when nothing had to be written
            and "invalidated_scenes" counting dropped scene composites

        Raises:
            ValidationError: Empty selection, or a changed selection without image_bytes
                (details carry the ordered layers to composite)
        """
        if not subject_id:
            raise ValidationError("subject_id is required")
        context = context or MAIN_CONTEXT
        new_hash = avatar_hash(selected_layer_ids)
        cache_key = (subject_id, context)

        selection = [str(i) for i in selected_layer_ids if i is not None and str(i) != ""]

        with self._lock:
            existing = self._avatar_cache.get(cache_key)

            if existing is not None and existing.avatar_hash == new_hash:
                self._selections[subject_id] = selection
                return self._avatar_entry_dict(existing, cached=True)
            # A refused upsert leaves the previous selection and entry in place
            if image_bytes is None:
                raise ValidationError(
                    f"Avatar selection for {subject_id} changed; composite the layers and upload image_bytes",
                    {"avatar_hash": new_hash, "layers": self.ordered_layers(selected_layer_ids)}
                )

            if width is None or height is None:
                metadata = get_image_metadata(image_bytes)
                width = width if width is not None else metadata["width"]
                height = height if height is not None else metadata["height"]

            storage_key = f"composites/avatar_{subject_id}_{context}.png"
            self.public_store.put(storage_key, image_bytes, "image/png")
            entry = AvatarCompositeCacheEntry(
                subject_id=subject_id,
                context=context,
                avatar_hash=new_hash,
                storage_key=storage_key,
                url=self.public_store.url_for(storage_key),
                width=width,
                height=height,
            )
            self._avatar_cache[cache_key] = entry
            self._selections[subject_id] = selection
            invalidated = self._invalidate_subject_scenes(subject_id)

        self.audit.log("upsert_avatar_composite", None, actor, {
            "subject_id": subject_id,
            "context": context,
            "avatar_hash": new_hash,
            "previous_hash": existing.avatar_hash if existing else None,
            "invalidated_scenes": invalidated,
        })
        result = self._avatar_entry_dict(entry, cached=False)
        result["invalidated_scenes"] = invalidated
        return result

    def _invalidate_subject_scenes(self, subject_id: str) -> int:
        # Caller holds the lock
        stale = [key for key in self._scene_cache if key[1] == subject_id]
        for key in stale:
            del self._scene_cache[key]
        if stale:
            logger.info(f"Invalidated {len(stale)} composed scenes for subject {subject_id}")
        return len(stale)

    def _valid_avatar_entry(self, subject_id: str, context: str) -> Optional[AvatarCompositeCacheEntry]:
        """Cached entry only while its hash matches the subject's current selection"""
        # Caller holds the lock
        entry = self._avatar_cache.get((subject_id, context))
        selection = self._selections.get(subject_id)
        if entry is None or not selection or entry.avatar_hash != avatar_hash(selection):
            return None
        return entry

    def get_avatar_composite(self, subject_id: str, context: str = MAIN_CONTEXT) -> Dict[str, Any]:
        """Cached composite if still valid, otherwise the layers of the current selection"""
        with self._lock:
            entry = self._valid_avatar_entry(subject_id, context)
            if entry is not None:
                return self._avatar_entry_dict(entry, cached=True)
            selection = self._selections.get(subject_id)
        if selection is None:
            raise NotFoundError(f"No avatar known for subject {subject_id}", {"subject_id": subject_id})
        return {
            "cached": False,
            "subject_id": subject_id,
            "context": context,
            "avatar_hash": avatar_hash(selection),
            "layers": self.ordered_layers(selection),
        }

    # -- scene templates -------------------------------------------------

    def _template_dict(self, template: SceneTemplate) -> Dict[str, Any]:
        return {
            "id": template.id,
            "name": template.name,
            "description": template.description,
            "background_key": template.background_key,
            "foreground_key": template.foreground_key,
            "avatar_slot": template.avatar_slot.to_dict(),
            "width": template.width,
            "height": template.height,
            "is_active": template.is_active,
            "template_hash": template_hash(template.background_key, template.foreground_key),
            "updated_at": template.updated_at.isoformat(),
        }

    def upsert_scene_template(
        self,
        template_id: str,
        name: str,
        background_key: str,
        avatar_slot: Dict[str, Any],
        foreground_key: Optional[str] = None,
        description: Optional[str] = None,
        width: int = 1920,
        height: int = 1080,
        is_active: bool = True,
        actor: Optional[str] = None
    ) -> Dict[str, Any]:
        """Create or update a scene template.

        Changing the background or foreground drops every composed scene
        built from the old layers.
        """
        if not template_id:
            raise ValidationError("template id is required")
        if not name or not name.strip():
            raise ValidationError("name is required")
        if not background_key:
            raise ValidationError("background_key is required")
        slot = _validate_slot(avatar_slot)
        if not isinstance(width, int) or not isinstance(height, int) or width <= 0 or height <= 0:
            raise ValidationError("width and height must be positive integers", {"width": width, "height": height})
        foreground_key = foreground_key or None

        with self._lock:
            existing = self._templates.get(template_id)
            layers_changed = existing is not None and (
                existing.background_key != background_key or existing.foreground_key != foreground_key
            )
            template = SceneTemplate(
                id=template_id,
                name=name.strip(),
                description=description,
                background_key=background_key,
                foreground_key=foreground_key,
                avatar_slot=slot,
                width=width,
                height=height,
                is_active=is_active,
                created_at=existing.created_at if existing else datetime.now(),
            )
            self._templates[template_id] = template
            invalidated = 0
            if layers_changed:
                stale = [key for key in self._scene_cache if key[0] == template_id]
                for key in stale:
                    del self._scene_cache[key]
                invalidated = len(stale)
                logger.info(f"Template {template_id} layers changed; invalidated {invalidated} composed scenes")

        self.audit.log("upsert_scene_template", None, actor, {
            "template_id": template_id,
            "created": existing is None,
            "invalidated_scenes": invalidated,
        })
        result = self._template_dict(template)
        result["invalidated_scenes"] = invalidated
        return result

    def get_scene_template(self, template_id: str) -> Dict[str, Any]:
        with self._lock:
            template = self._templates.get(template_id)
        if template is None:
            raise NotFoundError(f"Scene template {template_id} not found", {"template_id": template_id})
        return self._template_dict(template)

    def list_scene_templates(self, active_only: bool = False) -> List[Dict[str, Any]]:
        with self._lock:
            templates = sorted(self._templates.values(), key=lambda t: t.name)
        return [self._template_dict(t) for t in templates if t.is_active or not active_only]

    def _require_active_template(self, template_id: str) -> SceneTemplate:
        template = self._templates.get(template_id)
        if template is None or not template.is_active:
            raise NotFoundError(f"Active scene template {template_id} not found", {"template_id": template_id})
        return template

    # -- composed scenes -------------------------------------------------

    def compose_scene(self, scene_template_id: str, subject_id: str) -> Dict[str, Any]:
        """Return the cached composed scene, or the raw layers needed to compose it.

        Raises:
            NotFoundError: If the template does not exist or is inactive
        """
        with self._lock:
            template = self._require_active_template(scene_template_id)
            t_hash = template_hash(template.background_key, template.foreground_key)
            avatar_entry = self._valid_avatar_entry(subject_id, MAIN_CONTEXT)
            selection = self._selections.get(subject_id)
            a_hash = avatar_hash(selection) if selection else None

            row = self._scene_cache.get((scene_template_id, subject_id))
            if row is not None and a_hash is not None and row.avatar_hash == a_hash and row.template_hash == t_hash:
                row.last_accessed_at = datetime.now()
                return {
                    "cached": True,
                    "url": row.url,
                    "storage_key": row.storage_key,
                    "avatar_hash": a_hash,
                    "template_hash": t_hash,
                }

        result: Dict[str, Any] = {
            "cached": False,
            "scene_template_id": scene_template_id,
            "subject_id": subject_id,
            "width": template.width,
            "height": template.height,
            "background_url": self.public_store.url_for(template.background_key),
            "foreground_url": self.public_store.url_for(template.foreground_key) if template.foreground_key else None,
            "avatar_slot": template.avatar_slot.to_dict(),
            "avatar_hash": a_hash,
            "template_hash": t_hash,
            "avatar_url": avatar_entry.url if avatar_entry else None,
        }
        if avatar_entry is None:
            result["avatar_layers"] = self.ordered_layers(selection or [])
        return result

    def cache_composed_scene(
        self,
        scene_template_id: str,
        subject_id: str,
        image_bytes: bytes,
        actor: Optional[str] = None
    ) -> Dict[str, Any]:
        """Store a composed scene for the subject's current main avatar composite.

        Raises:
            NotFoundError: If the template does not exist
            DependencyError: If the subject has no cached main avatar composite
        """
        if not image_bytes:
            raise ValidationError("image_bytes is required")
        with self._lock:
            template = self._templates.get(scene_template_id)
            if template is None:
                raise NotFoundError(f"Scene template {scene_template_id} not found", {"template_id": scene_template_id})
            avatar_entry = self._valid_avatar_entry(subject_id, MAIN_CONTEXT)
            if avatar_entry is None:
                raise DependencyError(
                    f"Subject {subject_id} has no current cached avatar composite",
                    {"subject_id": subject_id, "context": MAIN_CONTEXT}
                )

            storage_key = f"scenes/composed/{scene_template_id}_{subject_id}.png"
            self.public_store.put(storage_key, image_bytes, "image/png")
            row = SceneComposedCacheEntry(
                scene_template_id=scene_template_id,
                subject_id=subject_id,
                avatar_hash=avatar_entry.avatar_hash,
                template_hash=template_hash(template.background_key, template.foreground_key),
                storage_key=storage_key,
                url=self.public_store.url_for(storage_key),
            )
            self._scene_cache[(scene_template_id, subject_id)] = row

        self.audit.log("cache_composed_scene", None, actor, {
            "template_id": scene_template_id,
            "subject_id": subject_id,
            "avatar_hash": row.avatar_hash,
            "template_hash": row.template_hash,
        })
        return {
            "cached": True,
            "url": row.url,
            "storage_key": storage_key,
            "avatar_hash": row.avatar_hash,
            "template_hash": row.template_hash,
        }

    def scene_cache_size(self, subject_id: Optional[str] = None) -> int:
        with self._lock:
            return sum(1 for key in self._scene_cache if subject_id is None or key[1] == subject_id)
