"""Publish tools for moving approved assets to the public store"""

from typing import Optional

from mcp.server.fastmcp import FastMCP

from managers.publish_manager import PublishManager
from tools.helpers import run_tool_async


def register_publish_tools(
    mcp: FastMCP,
    publish_manager: PublishManager
):
    """Register publish tools with the MCP server"""

    @mcp.tool()
    async def publish(asset_id: int, actor: Optional[str] = None) -> dict:
        """Publish an approved asset to the public store.

        **Pipeline:**
        1. Read the generated image from the private store
        2. Remove the background if the category needs it and it was not done yet
        3. Fit into the category's target size on a transparent canvas, encode as lossless WebP
        4. Upload to sprites/<category>/<asset_key>_v<variant>.webp
           (scenes/<asset_key>_v<variant>.webp for scenes)

        Publishing again overwrites the same key. A failure at any stage leaves
        the asset's previous public key and URL untouched.

        Args:
            asset_id: Approved asset id
            actor: Who published (recorded in the audit log)

        Returns:
            Dict with:
            - asset: Updated asset record
            - public_storage_key: Key in the public store
            - public_url: URL of the published file
            - bytes_size, width, height, mime_type: Output details

            Error dict with "error" and "error_code" keys if:
            - Asset not approved (DEPENDENCY_ERROR), nothing written
            - Category is a reference sheet (VALIDATION_ERROR)
            - Private read or public write failed (STORAGE_ERROR)
            - Background removal failed (EXTERNAL_SERVICE_ERROR)
        """
        return await run_tool_async("publish", publish_manager.publish, asset_id, actor=actor)

    @mcp.tool()
    async def remove_background_for(asset_id: int, actor: Optional[str] = None) -> dict:
        """Run background removal for an approved asset without publishing it.

        Returns "skipped": true when the background was already removed.
        """
        return await run_tool_async("remove_background_for", publish_manager.remove_background_for, asset_id, actor=actor)
