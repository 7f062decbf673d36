"""Building configuration tools"""

from typing import Optional

from mcp.server.fastmcp import FastMCP

from managers.building_registry import BuildingRegistry
from tools.helpers import run_tool


def register_building_tools(
    mcp: FastMCP,
    building_registry: BuildingRegistry
):
    """Register building configuration tools with the MCP server"""

    @mcp.tool()
    def update_building_config(
        building_type_id: str,
        active_sprite_id: Optional[int] = None,
        cost_override: Optional[int] = None,
        profit_override: Optional[int] = None,
        actor: Optional[str] = None
    ) -> dict:
        """Update the draft configuration of a building type.

        Args:
            building_type_id: Building type id (e.g. "market_stall")
            active_sprite_id: Approved building_sprite asset for this type; omit to keep the current one
            cost_override: Cost used instead of the type default; omit to clear
            profit_override: Profit used instead of the type default; omit to clear
            actor: Who made the change
        """
        return run_tool(
            "update_building_config", building_registry.update_config, building_type_id,
            active_sprite_id=active_sprite_id, cost_override=cost_override,
            profit_override=profit_override, actor=actor
        )

    @mcp.tool()
    def publish_building_config(building_type_id: str, actor: Optional[str] = None) -> dict:
        """Make a building configuration live. Requires an active sprite."""
        return run_tool("publish_building_config", building_registry.publish, building_type_id, actor=actor)

    @mcp.tool()
    def unpublish_building_config(building_type_id: str, actor: Optional[str] = None) -> dict:
        """Take a building configuration offline. The draft is kept."""
        return run_tool("unpublish_building_config", building_registry.unpublish, building_type_id, actor=actor)

    @mcp.tool()
    def list_buildings(published_only: bool = False) -> dict:
        """All building types with their configuration, effective cost/profit and sprite count."""
        return run_tool("list_buildings", building_registry.list_buildings, published_only)

    @mcp.tool()
    def list_building_sprites(building_type_id: str) -> dict:
        """Approved building sprites that can be assigned to a building type."""
        return run_tool("list_building_sprites", building_registry.list_sprites, building_type_id)
