"""Avatar composite and scene composition tools"""

from typing import Any, Dict, List, Optional

from mcp.server.fastmcp import FastMCP

from managers.composite_cache import MAIN_CONTEXT, CompositeCacheManager
from tools.helpers import decode_image_base64, run_tool


def register_composite_tools(
    mcp: FastMCP,
    composite_cache: CompositeCacheManager
):
    """Register composite cache tools with the MCP server"""

    @mcp.tool()
    def register_avatar_layer(layer_id: str, layer_category: str, storage_key: str) -> dict:
        """Add a selectable avatar item to the layer catalogue.

        Args:
            layer_id: Item id used in avatar selections
            layer_category: background, base, skin, outfit, hair, headwear or accessory
            storage_key: Public-store key of the layer image
        """
        return run_tool("register_avatar_layer", composite_cache.register_avatar_layer, layer_id, layer_category, storage_key)

    @mcp.tool()
    def upsert_avatar_composite(
        subject_id: str,
        selected_layer_ids: List[Optional[str]],
        context: str = MAIN_CONTEXT,
        image_base64: Optional[str] = None,
        width: Optional[int] = None,
        height: Optional[int] = None,
        actor: Optional[str] = None
    ) -> dict:
        """Store or confirm a subject's avatar composite.

        Call first without image_base64. If the selection is unchanged the cached
        composite is returned ("cached": true). If it changed, a VALIDATION_ERROR
        lists the ordered layers; composite them and call again with the PNG as
        base64. Storing a new composite drops every composed scene of the subject.
        """
        def _upsert():
            image_bytes = decode_image_base64(image_base64)
            return composite_cache.upsert_avatar_composite(
                subject_id, context, selected_layer_ids, image_bytes, width, height, actor=actor
            )
        return run_tool("upsert_avatar_composite", _upsert)

    @mcp.tool()
    def get_avatar_composite(subject_id: str, context: str = MAIN_CONTEXT) -> dict:
        """Cached avatar composite URL, or the ordered layers of the last known selection."""
        return run_tool("get_avatar_composite", composite_cache.get_avatar_composite, subject_id, context)

    @mcp.tool()
    def upsert_scene_template(
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
    ) -> dict:
        """Create or update a scene template.

        Args:
            template_id: Template id
            name: Display name
            background_key: Public-store key of the background layer
            avatar_slot: {"x", "y", "width", "height", optional "rotation"} in scene pixels
            foreground_key: Optional public-store key drawn above the avatar
            description: Optional description
            width: Scene width (default: 1920)
            height: Scene height (default: 1080)
            is_active: Inactive templates cannot be composed
            actor: Who made the change

        Returns:
            The template, with "invalidated_scenes" counting composed scenes dropped
            because the background or foreground changed
        """
        return run_tool(
            "upsert_scene_template", composite_cache.upsert_scene_template, template_id, name,
            background_key, avatar_slot, foreground_key=foreground_key, description=description,
            width=width, height=height, is_active=is_active, actor=actor
        )

    @mcp.tool()
    def get_scene_template(template_id: str) -> dict:
        """Get one scene template."""
        return run_tool("get_scene_template", composite_cache.get_scene_template, template_id)

    @mcp.tool()
    def list_scene_templates(active_only: bool = False) -> dict:
        """List scene templates ordered by name."""
        return run_tool("list_scene_templates", composite_cache.list_scene_templates, active_only)

    @mcp.tool()
    def compose_scene(scene_template_id: str, subject_id: str) -> dict:
        """Get a composed scene for a subject.

        Returns the cached scene URL when both the avatar and template hashes
        still match. Otherwise returns the background/foreground URLs, the avatar
        slot and the avatar composite URL (or its layer list) so the caller can
        compose and upload via cache_composed_scene.
        """
        return run_tool("compose_scene", composite_cache.compose_scene, scene_template_id, subject_id)

    @mcp.tool()
    def cache_composed_scene(
        scene_template_id: str,
        subject_id: str,
        image_base64: str,
        actor: Optional[str] = None
    ) -> dict:
        """Store a composed scene PNG (base64) for a subject's current avatar composite."""
        def _cache():
            image_bytes = decode_image_base64(image_base64)
            return composite_cache.cache_composed_scene(scene_template_id, subject_id, image_bytes, actor=actor)
        return run_tool("cache_composed_scene", _cache)
