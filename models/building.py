"""Building configuration data models"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional


@dataclass(frozen=True)
class BuildingType:
    """Game-side building type with its default economics"""
    id: str
    name: str
    default_cost: int
    default_profit: int


@dataclass
class BuildingConfiguration:
    """Binds an approved building sprite to a deployable building type"""
    building_type_id: str
    active_sprite_id: Optional[int] = None
    cost_override: Optional[int] = None  # None means use the type default
    profit_override: Optional[int] = None
    is_published: bool = False
    published_at: Optional[datetime] = None
    published_by: Optional[str] = None
    created_at: datetime = field(default_factory=datetime.now)
    updated_at: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "building_type_id": self.building_type_id,
            "active_sprite_id": self.active_sprite_id,
            "cost_override": self.cost_override,
            "profit_override": self.profit_override,
            "is_published": self.is_published,
            "published_at": self.published_at.isoformat() if self.published_at else None,
            "published_by": self.published_by,
            "updated_at": self.updated_at.isoformat(),
        }
