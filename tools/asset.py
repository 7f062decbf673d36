"""Asset generation and lookup tools"""

import logging
from typing import Optional

from mcp.server.fastmcp import FastMCP

from errors import ValidationError
from managers.asset_registry import AssetRegistry
from managers.derivation_gate import DerivationGate
from managers.review_controller import ReviewController
from models.asset import AssetStatus
from models.category import list_categories as list_category_infos
from tools.helpers import run_tool, run_tool_async

logger = logging.getLogger("AssetPipeline")


def parse_status(status: Optional[str]) -> Optional[AssetStatus]:
    if status is None:
        return None
    try:
        return AssetStatus(status)
    except ValueError:
        raise ValidationError(
            f"Unknown status: {status}",
            {"status": status, "known": [s.value for s in AssetStatus]}
        )


def register_asset_tools(
    mcp: FastMCP,
    registry: AssetRegistry,
    controller: ReviewController,
    gate: DerivationGate
):
    """Register generation and asset lookup tools with the MCP server"""

    @mcp.tool()
    async def generate(
        category: str,
        asset_key: str,
        prompt: str,
        variant: int = 1,
        priority: Optional[int] = None,
        actor: Optional[str] = None
    ) -> dict:
        """Generate an asset now and put it up for review.

        Re-requesting the same (category, asset_key, variant) resets the
        existing record to the new prompt instead of creating a duplicate.
        Derived categories (building_sprite, npc, effect, avatar) need an
        approved reference first; scenes need an approved avatar/base_* asset.

        Args:
            category: Category id, see list_categories
            asset_key: Stable key such as a building type id ("market_stall")
            prompt: Base prompt for the generation service
            variant: Variant number, 1 or higher (default: 1)
            priority: Queue priority, 1 highest to 10 lowest (default: 5)
            actor: Who requested the generation (recorded in the audit log)

        Returns:
            The asset record with status "awaiting_review", or an error dict
            (VALIDATION_ERROR, DEPENDENCY_ERROR, EXTERNAL_SERVICE_ERROR, STORAGE_ERROR)
        """
        return await run_tool_async(
            "generate", controller.generate, category, asset_key, prompt,
            variant=variant, actor=actor, priority=priority
        )

    @mcp.tool()
    async def regenerate(asset_id: int, actor: Optional[str] = None) -> dict:
        """Regenerate a rejected or failed asset with its current prompt.

        After a rejection with feedback the current prompt already carries the
        reviewer's notes. The prompt version is not changed.
        """
        return await run_tool_async("regenerate", controller.regenerate, asset_id, actor=actor)

    @mcp.tool()
    async def generate_from_ref(
        parent_id: int,
        sprite_prompt: str,
        variant: int = 1,
        actor: Optional[str] = None
    ) -> dict:
        """Generate the derived sprite of an approved reference sheet.

        The child uses the parent's asset_key and the category that derives
        from the parent's category (e.g. building_ref -> building_sprite).
        The parent must be approved, otherwise DEPENDENCY_ERROR is returned.
        """
        return await run_tool_async(
            "generate_from_ref", controller.generate_from_ref, parent_id, sprite_prompt,
            variant=variant, actor=actor
        )

    @mcp.tool()
    def enqueue_generation(
        category: str,
        asset_key: str,
        prompt: str,
        variant: int = 1,
        priority: Optional[int] = None,
        actor: Optional[str] = None
    ) -> dict:
        """Register a generation request without running it yet (batch preparation)."""
        return run_tool(
            "enqueue_generation", controller.enqueue, category, asset_key, prompt,
            variant=variant, priority=priority, actor=actor
        )

    @mcp.tool()
    def restart_generation(asset_id: int, actor: Optional[str] = None) -> dict:
        """Reset an asset whose generation used up all attempts so it can be regenerated."""
        return run_tool("restart_generation", controller.restart_generation, asset_id, actor=actor)

    @mcp.tool()
    def get_queue_status() -> dict:
        """Counts per queue status plus all entries that are not completed."""
        return run_tool("get_queue_status", controller.get_queue_status)

    @mcp.tool()
    def get_asset(asset_id: int) -> dict:
        """Get one asset record by id."""
        return run_tool("get_asset", registry.get, asset_id)

    @mcp.tool()
    def list_by_category(
        category: str,
        parent_asset_id: Optional[int] = None,
        status: Optional[str] = None
    ) -> dict:
        """List assets of a category ordered by asset_key then variant.

        Args:
            category: Category id
            parent_asset_id: Only children of this reference asset
            status: Only assets in this status (pending, generating, awaiting_review,
                approved, rejected, failed)
        """
        def _list():
            gate.require_category(category)
            return registry.list_by_category(category, parent_asset_id, parse_status(status))
        return run_tool("list_by_category", _list)

    @mcp.tool()
    def list_categories() -> dict:
        """List asset categories with their parent, background-removal and publish-size rules."""
        return run_tool("list_categories", list_category_infos)

    @mcp.tool()
    def list_approved_refs() -> dict:
        """List approved reference sheets with the number of approved sprites derived from each."""
        return run_tool("list_approved_refs", gate.list_approved_refs)
