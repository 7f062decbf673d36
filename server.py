import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from mcp.server.fastmcp import FastMCP

from managers.defaults_manager import SettingsManager
from pipeline import Pipeline, build_pipeline
from tools.asset import register_asset_tools
from tools.building import register_building_tools
from tools.composite import register_composite_tools
from tools.configuration import register_configuration_tools
from tools.publish import register_publish_tools
from tools.review import register_review_tools

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("AssetPipeline")

# Global pipeline (tools close over its components)
settings_manager = SettingsManager()
pipeline = build_pipeline(settings_manager)


# Define application context
class AppContext:
    def __init__(self, pipeline: Pipeline):
        self.pipeline = pipeline


@asynccontextmanager
async def app_lifespan(server: FastMCP) -> AsyncIterator[AppContext]:
    """Manage application lifecycle"""
    logger.info("Starting asset pipeline MCP server...")
    logger.info(f"Generation service: {settings_manager.get('comfyui_url')}")
    logger.info(f"Private store: {pipeline.private_store.root}, public store: {pipeline.public_store.root}")
    try:
        yield AppContext(pipeline=pipeline)
    finally:
        logger.info("Shutting down asset pipeline MCP server")


# Initialize FastMCP with lifespan
mcp = FastMCP("Asset_Pipeline_Server", lifespan=app_lifespan)

register_asset_tools(mcp, pipeline.registry, pipeline.controller, pipeline.gate)
register_review_tools(
    mcp, pipeline.registry, pipeline.controller, pipeline.audit,
    default_audit_limit=settings_manager.get("audit_limit")
)
register_publish_tools(mcp, pipeline.publisher)
register_composite_tools(mcp, pipeline.composites)
register_building_tools(mcp, pipeline.buildings)
register_configuration_tools(mcp, settings_manager)

if __name__ == "__main__":
    mcp.run(transport="streamable-http")
