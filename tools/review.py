"""Review tools: approve, reject, prompt management and history"""

from typing import Optional

from mcp.server.fastmcp import FastMCP

from managers.audit_logger import AuditLogger
from managers.asset_registry import AssetRegistry
from managers.review_controller import ReviewController
from tools.helpers import run_tool


def register_review_tools(
    mcp: FastMCP,
    registry: AssetRegistry,
    controller: ReviewController,
    audit: AuditLogger,
    default_audit_limit: int = 50
):
    """Register review tools with the MCP server"""

    @mcp.tool()
    def approve(asset_id: int, actor: Optional[str] = None) -> dict:
        """Approve an asset that is awaiting review.

        The approved asset becomes the active one for its (category, asset_key)
        and unlocks derived generation and publishing.
        """
        return run_tool("approve", controller.approve, asset_id, actor=actor)

    @mcp.tool()
    def reject(
        asset_id: int,
        reason: str,
        incorporate_feedback: bool = True,
        actor: Optional[str] = None
    ) -> dict:
        """Reject an asset that is awaiting review.

        Args:
            asset_id: Asset to reject
            reason: What is wrong with the image (required)
            incorporate_feedback: If True (default), the next regeneration uses the
                base prompt plus this feedback; if False the prompt is left as is
            actor: Reviewer identity

        Returns:
            The rejected asset with rejection_count and prompt_version incremented
        """
        return run_tool(
            "reject", controller.reject, asset_id, reason,
            incorporate_feedback=incorporate_feedback, actor=actor
        )

    @mcp.tool()
    def reset_prompt(asset_id: int, actor: Optional[str] = None) -> dict:
        """Discard accumulated feedback and return the current prompt to the base prompt."""
        return run_tool("reset_prompt", controller.reset_prompt, asset_id, actor=actor)

    @mcp.tool()
    def set_active(asset_id: int, actor: Optional[str] = None) -> dict:
        """Make an approved variant the active one for its category and asset_key."""
        return run_tool("set_active", controller.set_active, asset_id, actor=actor)

    @mcp.tool()
    def get_rejection_history(asset_id: int) -> dict:
        """Rejections recorded for an asset, newest first."""
        return run_tool("get_rejection_history", controller.get_rejection_history, asset_id)

    @mcp.tool()
    def get_recent_audit(limit: Optional[int] = None, action: Optional[str] = None) -> dict:
        """Most recent audit log entries, newest first, optionally filtered by action."""
        return run_tool("get_recent_audit", audit.recent, limit or default_audit_limit, action)

    @mcp.tool()
    def get_asset_audit(asset_id: int) -> dict:
        """All audit log entries for one asset, newest first."""
        def _history():
            registry.get(asset_id)
            return audit.for_asset(asset_id)
        return run_tool("get_asset_audit", _history)
