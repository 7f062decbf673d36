"""Shared helper functions for tool implementations"""

import asyncio
import base64
import binascii
import logging
from typing import Any, Callable, Dict, Optional

from errors import PipelineError, ValidationError

logger = logging.getLogger("AssetPipeline")


def error_response(error: PipelineError) -> Dict[str, Any]:
    return error.to_dict()


def run_tool(tool_name: str, operation: Callable[..., Any], *args, **kwargs) -> Dict[str, Any]:
    """Run a pipeline operation and turn its outcome into a tool response.

    Pipeline errors become {"error", "error_code", ...} dicts. Anything
    else is logged with a traceback and reported as INTERNAL_ERROR, so the
    MCP client never sees a raised exception.
    """
    try:
        result = operation(*args, **kwargs)
    except PipelineError as e:
        logger.warning(f"{tool_name} failed ({e.error_code}): {e.message}")
        return error_response(e)
    except Exception as e:
        logger.exception(f"Unexpected error in {tool_name}")
        return {"error": f"{tool_name} failed: {e}", "error_code": "INTERNAL_ERROR"}
    return to_response(result)


async def run_tool_async(tool_name: str, operation: Callable[..., Any], *args, **kwargs) -> Dict[str, Any]:
    """Like run_tool, but runs the blocking operation on a worker thread"""
    return await asyncio.to_thread(run_tool, tool_name, operation, *args, **kwargs)


def to_response(result: Any) -> Dict[str, Any]:
    """Serialize a manager result into a JSON-friendly dict"""
    if isinstance(result, dict):
        return result
    if hasattr(result, "to_dict"):
        return result.to_dict()
    if isinstance(result, list):
        items = [item.to_dict() if hasattr(item, "to_dict") else item for item in result]
        return {"items": items, "count": len(items)}
    return {"result": result}


def decode_image_base64(data: Optional[str], field_name: str = "image_base64") -> Optional[bytes]:
    """Decode a base64 image payload, accepting an optional data: URI prefix"""
    if data is None:
        return None
    if data.startswith("data:") and "," in data:
        data = data.split(",", 1)[1]
    try:
        decoded = base64.b64decode(data, validate=True)
    except (binascii.Error, ValueError) as e:
        raise ValidationError(f"{field_name} is not valid base64: {e}", {"field": field_name})
    if not decoded:
        raise ValidationError(f"{field_name} is empty", {"field": field_name})
    return decoded
