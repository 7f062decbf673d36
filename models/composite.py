"""Composite cache data models"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional

# Layer order used when a caller has to composite an avatar client-side
AVATAR_LAYER_ORDER = ("background", "base", "skin", "outfit", "hair", "headwear", "accessory")


@dataclass(frozen=True)
class AvatarLayer:
    """One selectable avatar item"""
    id: str
    layer_category: str
    storage_key: str

    def to_dict(self) -> Dict[str, str]:
        return {"id": self.id, "layer_category": self.layer_category, "storage_key": self.storage_key}


@dataclass(frozen=True)
class AvatarSlot:
    """Where the avatar composite is placed inside a scene"""
    x: float
    y: float
    width: float
    height: float
    rotation: float = 0

    def to_dict(self) -> Dict[str, float]:
        return {
            "x": self.x,
            "y": self.y,
            "width": self.width,
            "height": self.height,
            "rotation": self.rotation,
        }


@dataclass
class SceneTemplate:
    id: str
    name: str
    background_key: str
    avatar_slot: AvatarSlot
    foreground_key: Optional[str] = None
    description: Optional[str] = None
    width: int = 1920
    height: int = 1080
    is_active: bool = True
    created_at: datetime = field(default_factory=datetime.now)
    updated_at: datetime = field(default_factory=datetime.now)


@dataclass
class AvatarCompositeCacheEntry:
    """Cached avatar composite, one per (subject_id, context)"""
    subject_id: str
    context: str
    avatar_hash: str
    storage_key: str
    url: str
    width: Optional[int] = None
    height: Optional[int] = None
    updated_at: datetime = field(default_factory=datetime.now)


@dataclass
class SceneComposedCacheEntry:
    """Cached composed scene, one per (scene_template_id, subject_id)"""
    scene_template_id: str
    subject_id: str
    avatar_hash: str
    template_hash: str
    storage_key: str
    url: str
    created_at: datetime = field(default_factory=datetime.now)
    last_accessed_at: datetime = field(default_factory=datetime.now)  # LRU bookkeeping
