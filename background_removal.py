"""Client for the external background-removal service"""

import logging
from typing import Optional

import requests

from errors import ExternalServiceError

logger = logging.getLogger("BackgroundRemoval")

DEFAULT_URL = "https://api.slazzer.com/v2.0/remove_image_background"


class BackgroundRemovalClient:
    """Removes image backgrounds through a Slazzer-compatible HTTP API.

    The source image is uploaded as multipart form data together with
    crop=true; the response body is the cut-out PNG.
    """

    def __init__(self, api_key: Optional[str], url: str = DEFAULT_URL, timeout: float = 60):
        self.api_key = api_key
        self.url = url
        self.timeout = timeout

    def remove_background(self, image_bytes: bytes) -> bytes:
        """Return PNG bytes of the image with its background removed.

        Raises:
            ExternalServiceError: If no API key is configured, or the service errors or times out
        """
        if not self.api_key:
            raise ExternalServiceError("Background removal API key is not configured (background_removal_api_key)")

        logger.info(f"Requesting background removal for {len(image_bytes)} bytes")
        try:
            response = requests.post(
                self.url,
                headers={"API-KEY": self.api_key},
                files={"source_image_file": ("image.png", image_bytes, "image/png")},
                data={"crop": "true"},
                timeout=self.timeout,
            )
        except requests.Timeout as e:
            raise ExternalServiceError(f"Background removal timed out: {e}", {"timeout": self.timeout})
        except requests.RequestException as e:
            raise ExternalServiceError(f"Background removal request failed: {e}")

        if response.status_code != 200:
            raise ExternalServiceError(
                f"Background removal failed: {response.status_code} - {response.text[:200]}",
                {"status_code": response.status_code}
            )
        if not response.content:
            raise ExternalServiceError("Background removal returned an empty body")
        logger.info(f"Background removed ({len(response.content)} bytes)")
        return response.content
