"""Declarative asset category metadata.

Category-specific behavior (derivation, background removal, publish size)
is read from this table instead of branching on category names.
"""

from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple


@dataclass(frozen=True)
class CategoryInfo:
    id: str
    name: str
    parent_category: Optional[str] = None
    requires_background_removal: bool = False
    target_size: Optional[Tuple[int, int]] = None  # (width, height) of the published asset
    publishable: bool = True
    ref_asset_key: Optional[str] = None  # Shared parent key; None means same asset_key
    prerequisite: Optional[Tuple[str, str]] = None  # (category, asset_key prefix) that must be approved

    @property
    def is_reference(self) -> bool:
        return not self.publishable and self.parent_category is None

    def resolve_ref_key(self, asset_key: str) -> str:
        return self.ref_asset_key or asset_key

    def to_dict(self) -> Dict[str, object]:
        return {
            "id": self.id,
            "name": self.name,
            "parent_category": self.parent_category,
            "requires_background_removal": self.requires_background_removal,
            "target_size": list(self.target_size) if self.target_size else None,
            "publishable": self.publishable,
            "ref_asset_key": self.ref_asset_key,
            "prerequisite": list(self.prerequisite) if self.prerequisite else None,
        }


_CATEGORIES: List[CategoryInfo] = [
    # Reference sheets: never published, parents of sprite categories
    CategoryInfo("building_ref", "Building Reference Sheet", publishable=False),
    CategoryInfo("character_ref", "Character Reference Sheet", publishable=False),
    CategoryInfo("vehicle_ref", "Vehicle Reference Sheet", publishable=False),
    CategoryInfo("effect_ref", "Effect Reference Sheet", publishable=False),
    # Sprites derived from an approved reference
    CategoryInfo("building_sprite", "Building Sprite", parent_category="building_ref",
                 requires_background_removal=True, target_size=(256, 256)),
    CategoryInfo("npc", "NPC Sprite", parent_category="character_ref",
                 requires_background_removal=True, target_size=(64, 64)),
    CategoryInfo("effect", "Effect Overlay", parent_category="effect_ref",
                 requires_background_removal=True, target_size=(128, 128)),
    CategoryInfo("avatar", "Avatar Layer", parent_category="character_ref",
                 requires_background_removal=True, target_size=(512, 512),
                 ref_asset_key="avatar_base"),
    # Standalone
    CategoryInfo("terrain", "Terrain Tile", requires_background_removal=True, target_size=(64, 32)),
    CategoryInfo("overlay", "Ownership Overlay", target_size=(64, 32)),
    CategoryInfo("ui", "UI Element", requires_background_removal=True, target_size=(64, 64)),
    CategoryInfo("scene", "Scene Illustration", target_size=(1920, 1080),
                 prerequisite=("avatar", "base_")),
]

CATEGORIES: Dict[str, CategoryInfo] = {info.id: info for info in _CATEGORIES}


def get_category(category_id: str) -> Optional[CategoryInfo]:
    return CATEGORIES.get(category_id)


def list_categories() -> List[CategoryInfo]:
    return list(_CATEGORIES)


def child_category_of(parent_category_id: str) -> Optional[CategoryInfo]:
    """Return the first category declared as deriving from parent_category_id."""
    for info in _CATEGORIES:
        if info.parent_category == parent_category_id:
            return info
    return None


def private_storage_key(category_id: str, asset_key: str, variant: int) -> str:
    """Private-store key for a freshly generated image"""
    info = get_category(category_id)
    if info is not None and info.is_reference:
        return f"refs/{asset_key}_ref_v{variant}.png"
    if category_id == "scene":
        return f"scenes/{asset_key}_v{variant}.png"
    return f"raw/{category_id}_{asset_key}_raw_v{variant}.png"


def transparent_storage_key(private_key: str) -> str:
    """Private-store key of the background-removed copy of private_key"""
    if private_key.endswith(".png"):
        return private_key[:-len(".png")] + "_transparent.png"
    return private_key + "_transparent.png"


def public_storage_key(category_id: str, asset_key: str, variant: int) -> str:
    """Public-store key of the published asset. Stable across re-publishes."""
    if category_id == "scene":
        return f"scenes/{asset_key}_v{variant}.webp"
    return f"sprites/{category_id}/{asset_key}_v{variant}.webp"
