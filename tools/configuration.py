"""Configuration tools for the asset pipeline"""

from typing import Any, Dict

from mcp.server.fastmcp import FastMCP

from managers.defaults_manager import SettingsManager
from tools.helpers import run_tool


def register_configuration_tools(
    mcp: FastMCP,
    settings_manager: SettingsManager
):
    """Register configuration tools with the MCP server"""

    @mcp.tool()
    def get_settings() -> dict:
        """Get current effective settings.

        Returns merged settings from all sources (runtime, config, env, hardcoded).
        The background removal API key is redacted.
        """
        return run_tool("get_settings", settings_manager.get_all)

    @mcp.tool()
    def set_settings(settings: Dict[str, Any], persist: bool = False) -> dict:
        """Set runtime settings.

        Client-related settings (URLs, timeouts, API key) take effect on the
        next server start.

        Args:
            settings: Dict of setting names to values (e.g., {"generation_timeout": 180})
            persist: If True, write settings to the config file. Otherwise, changes are ephemeral.

        Returns:
            Success status and the applied values, or a VALIDATION_ERROR for
            unknown keys or bad values (nothing is applied in that case).
        """
        operation = settings_manager.persist_settings if persist else settings_manager.set_settings
        return run_tool("set_settings", lambda: {"success": True, "updated": operation(settings), "persisted": persist})
