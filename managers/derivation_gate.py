"""Derivation gate: children may only be generated from approved parents"""

import logging
from typing import Any, Dict, List, Optional, Tuple

from errors import DependencyError, NotFoundError, ValidationError
from managers.asset_registry import AssetRegistry
from models.asset import AssetRecord, AssetStatus
from models.category import CategoryInfo, child_category_of, get_category, list_categories

logger = logging.getLogger("AssetPipeline")


class DerivationGate:
    """Read-only checks over the registry. The gate never mutates a parent."""

    def __init__(self, registry: AssetRegistry):
        self.registry = registry

    def require_category(self, category_id: str) -> CategoryInfo:
        info = get_category(category_id)
        if info is None:
            raise ValidationError(
                f"Unknown category: {category_id}",
                {"category": category_id, "known": [c.id for c in list_categories()]}
            )
        return info

    def require_approved_parent(self, parent_id: int) -> Tuple[AssetRecord, CategoryInfo]:
        """Resolve the parent record and the child category it unlocks.

        Raises:
            DependencyError: If the parent is missing, not approved, or has no child category
        """
        try:
            parent = self.registry.get(parent_id)
        except NotFoundError:
            raise DependencyError(f"Parent asset {parent_id} not found", {"parent_asset_id": parent_id})

        if parent.status != AssetStatus.APPROVED:
            raise DependencyError(
                f"Parent asset {parent_id} must be approved before deriving from it (status: {parent.status.value})",
                {"parent_asset_id": parent_id, "parent_status": parent.status.value}
            )

        child_info = child_category_of(parent.category)
        if child_info is None:
            raise DependencyError(
                f"Category '{parent.category}' has no derived category",
                {"parent_asset_id": parent_id, "parent_category": parent.category}
            )
        return parent, child_info

    def find_approved_parent(self, info: CategoryInfo, asset_key: str) -> Optional[AssetRecord]:
        """Approved parent record for a derived asset, preferring the active one"""
        if info.parent_category is None:
            return None
        ref_key = info.resolve_ref_key(asset_key)
        candidates = [
            r for r in self.registry.list_by_category(info.parent_category, status=AssetStatus.APPROVED)
            if r.asset_key == ref_key
        ]
        if not candidates:
            return None
        active = [r for r in candidates if r.is_active]
        return (active or candidates)[-1]

    def check_generation_allowed(self, info: CategoryInfo, asset_key: str) -> Optional[int]:
        """Gate a direct generation request.

        Returns:
            The parent_asset_id to link, or None for standalone categories

        Raises:
            DependencyError: If a required parent or prerequisite is not approved
        """
        parent_id = None
        if info.parent_category is not None:
            parent = self.find_approved_parent(info, asset_key)
            if parent is None:
                ref_key = info.resolve_ref_key(asset_key)
                raise DependencyError(
                    f"An approved {info.parent_category} '{ref_key}' is required before generating {info.id} assets",
                    {"category": info.id, "parent_category": info.parent_category, "ref_asset_key": ref_key}
                )
            parent_id = parent.id

        if info.prerequisite is not None:
            prereq_category, key_prefix = info.prerequisite
            approved = self.registry.list_by_category(prereq_category, status=AssetStatus.APPROVED)
            if not any(r.asset_key.startswith(key_prefix) for r in approved):
                raise DependencyError(
                    f"At least one approved {prereq_category} '{key_prefix}*' asset is required before generating {info.id} assets",
                    {"category": info.id, "prerequisite_category": prereq_category, "prerequisite_prefix": key_prefix}
                )
        return parent_id

    def list_approved_refs(self) -> List[Dict[str, Any]]:
        """Approved reference records with a count of their approved children"""
        result = []
        for info in list_categories():
            if not info.is_reference:
                continue
            for ref in self.registry.list_by_category(info.id, status=AssetStatus.APPROVED):
                children = self.registry.list_children(ref.id)
                entry = ref.to_dict()
                entry["approved_children"] = sum(1 for c in children if c.status == AssetStatus.APPROVED)
                entry["child_category"] = getattr(child_category_of(info.id), "id", None)
                result.append(entry)
        return result
