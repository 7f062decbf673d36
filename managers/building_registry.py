"""Building configuration registry"""

import json
import logging
import threading
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from errors import DependencyError, NotFoundError, ValidationError
from managers.asset_registry import AssetRegistry
from managers.audit_logger import AuditLogger
from models.asset import AssetStatus
from models.building import BuildingConfiguration, BuildingType

logger = logging.getLogger("AssetPipeline")

SPRITE_CATEGORY = "building_sprite"

DEFAULT_BUILDING_TYPES = [
    BuildingType("market_stall", "Market Stall", 1000, 100),
    BuildingType("hot_dog_stand", "Hot Dog Stand", 1500, 150),
    BuildingType("campsite", "Campsite", 3000, 300),
    BuildingType("shop", "Shop", 4000, 400),
    BuildingType("burger_bar", "Burger Bar", 8000, 800),
    BuildingType("motel", "Motel", 12000, 1200),
    BuildingType("high_street_store", "High Street Store", 20000, 2000),
    BuildingType("restaurant", "Restaurant", 40000, 4000),
    BuildingType("manor", "Manor", 60000, 6000),
    BuildingType("casino", "Casino", 80000, 8000),
]


def load_building_types(path: Union[str, Path]) -> List[BuildingType]:
    """Load building types from a JSON list of {id, name, default_cost, default_profit}"""
    try:
        with open(path, "r", encoding="utf-8") as f:
            raw = json.load(f)
    except (json.JSONDecodeError, IOError) as e:
        raise ValidationError(f"Failed to load building types from {path}: {e}")
    if not isinstance(raw, list):
        raise ValidationError(f"Building types file {path} must contain a JSON list")
    try:
        return [
            BuildingType(
                id=item["id"],
                name=item.get("name", item["id"]),
                default_cost=int(item["default_cost"]),
                default_profit=int(item["default_profit"]),
            )
            for item in raw
        ]
    except (KeyError, TypeError, ValueError) as e:
        raise ValidationError(f"Invalid building type entry in {path}: {e}")


class BuildingRegistry:
    """Binds approved building sprites and economic overrides to building types.

    Drafts are edited freely; only a published configuration is visible
    to the game, and publishing needs an active sprite.
    """

    def __init__(self, assets: AssetRegistry, audit: AuditLogger, building_types: Optional[List[BuildingType]] = None):
        self.assets = assets
        self.audit = audit
        self._types: Dict[str, BuildingType] = {t.id: t for t in (building_types or DEFAULT_BUILDING_TYPES)}
        self._configs: Dict[str, BuildingConfiguration] = {}
        self._lock = threading.Lock()
        logger.info(f"Initialized BuildingRegistry with {len(self._types)} building types")

    def _require_type(self, building_type_id: str) -> BuildingType:
        building_type = self._types.get(building_type_id)
        if building_type is None:
            raise NotFoundError(f"Building type {building_type_id} not found", {"building_type_id": building_type_id})
        return building_type

    def _validate_sprite(self, building_type_id: str, sprite_id: int):
        try:
            sprite = self.assets.get(sprite_id)
        except NotFoundError:
            raise ValidationError(f"Sprite asset {sprite_id} not found", {"active_sprite_id": sprite_id})
        if sprite.category != SPRITE_CATEGORY or sprite.asset_key != building_type_id:
            raise ValidationError(
                f"Asset {sprite_id} is not a {SPRITE_CATEGORY} for {building_type_id}",
                {"active_sprite_id": sprite_id, "category": sprite.category, "asset_key": sprite.asset_key}
            )
        if sprite.status != AssetStatus.APPROVED:
            raise ValidationError(
                f"Sprite {sprite_id} must be approved (status: {sprite.status.value})",
                {"active_sprite_id": sprite_id, "status": sprite.status.value}
            )

    @staticmethod
    def _validate_override(name: str, value: Optional[int]):
        if value is None:
            return
        if not isinstance(value, int) or isinstance(value, bool) or value < 0:
            raise ValidationError(f"{name} must be a non-negative integer", {name: value})

    def update_config(
        self,
        building_type_id: str,
        active_sprite_id: Optional[int] = None,
        cost_override: Optional[int] = None,
        profit_override: Optional[int] = None,
        actor: Optional[str] = None
    ) -> Dict[str, Any]:
        """Create or update the draft configuration for a building type.

        An omitted active_sprite_id keeps the current sprite. Overrides are
        replaced as given, so passing None clears them back to the type default.
        """
        self._require_type(building_type_id)
        if active_sprite_id is not None:
            self._validate_sprite(building_type_id, active_sprite_id)
        self._validate_override("cost_override", cost_override)
        self._validate_override("profit_override", profit_override)

        with self._lock:
            config = self._configs.get(building_type_id)
            if config is None:
                config = BuildingConfiguration(building_type_id=building_type_id)
                self._configs[building_type_id] = config
            if active_sprite_id is not None:
                config.active_sprite_id = active_sprite_id
            config.cost_override = cost_override
            config.profit_override = profit_override
            config.updated_at = datetime.now()

        self.audit.log("update_building_config", active_sprite_id, actor, {
            "building_type_id": building_type_id,
            "active_sprite_id": config.active_sprite_id,
            "cost_override": cost_override,
            "profit_override": profit_override,
        })
        return self.get_config(building_type_id)

    def publish(self, building_type_id: str, actor: Optional[str] = None) -> Dict[str, Any]:
        """Make the configuration visible to the game.

        Raises:
            NotFoundError: Unknown building type
            DependencyError: No sprite has been selected, or the selected sprite
                is no longer an approved sprite for this building type
        """
        self._require_type(building_type_id)
        with self._lock:
            config = self._configs.get(building_type_id)
            if config is None or config.active_sprite_id is None:
                raise DependencyError(
                    f"Building {building_type_id} needs an active sprite before publishing",
                    {"building_type_id": building_type_id}
                )
            # The sprite may have been regenerated since it was selected
            try:
                self._validate_sprite(building_type_id, config.active_sprite_id)
            except ValidationError as e:
                raise DependencyError(
                    f"Active sprite of {building_type_id} is no longer publishable: {e.message}",
                    {**e.details, "building_type_id": building_type_id}
                )
            config.is_published = True
            config.published_at = datetime.now()
            config.published_by = actor
            config.updated_at = config.published_at

        self.audit.log("publish_building_config", config.active_sprite_id, actor, {"building_type_id": building_type_id})
        logger.info(f"Published building configuration {building_type_id}")
        return self.get_config(building_type_id)

    def unpublish(self, building_type_id: str, actor: Optional[str] = None) -> Dict[str, Any]:
        """Hide the configuration from the game. The draft is kept."""
        self._require_type(building_type_id)
        with self._lock:
            config = self._configs.get(building_type_id)
            if config is None:
                raise NotFoundError(
                    f"Building {building_type_id} has no configuration",
                    {"building_type_id": building_type_id}
                )
            config.is_published = False
            config.updated_at = datetime.now()

        self.audit.log("unpublish_building_config", config.active_sprite_id, actor, {"building_type_id": building_type_id})
        return self.get_config(building_type_id)

    def effective_cost(self, building_type_id: str) -> int:
        building_type = self._require_type(building_type_id)
        config = self._configs.get(building_type_id)
        if config is not None and config.cost_override is not None:
            return config.cost_override
        return building_type.default_cost

    def effective_profit(self, building_type_id: str) -> int:
        building_type = self._require_type(building_type_id)
        config = self._configs.get(building_type_id)
        if config is not None and config.profit_override is not None:
            return config.profit_override
        return building_type.default_profit

    def get_config(self, building_type_id: str) -> Dict[str, Any]:
        """Manager view of one building type: draft, publish state and effective economics"""
        building_type = self._require_type(building_type_id)
        with self._lock:
            config = self._configs.get(building_type_id) or BuildingConfiguration(building_type_id=building_type_id)
            view = config.to_dict()
        view.update({
            "name": building_type.name,
            "default_cost": building_type.default_cost,
            "default_profit": building_type.default_profit,
            "effective_cost": self.effective_cost(building_type_id),
            "effective_profit": self.effective_profit(building_type_id),
        })
        if config.active_sprite_id is not None:
            sprite = self.assets.get(config.active_sprite_id)
            view["sprite_url"] = sprite.public_url
        else:
            view["sprite_url"] = None
        return view

    def list_sprites(self, building_type_id: str) -> List[Dict[str, Any]]:
        """Approved building sprites available for a type"""
        self._require_type(building_type_id)
        return [
            sprite.to_dict()
            for sprite in self.assets.list_by_category(SPRITE_CATEGORY, status=AssetStatus.APPROVED)
            if sprite.asset_key == building_type_id
        ]

    def list_buildings(self, published_only: bool = False) -> List[Dict[str, Any]]:
        result = []
        for building_type_id in sorted(self._types):
            view = self.get_config(building_type_id)
            if published_only and not view["is_published"]:
                continue
            view["available_sprites"] = len(self.list_sprites(building_type_id))
            result.append(view)
        return result
