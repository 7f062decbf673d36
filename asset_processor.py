"""Image processing utilities for publishing and compositing"""

import logging
from io import BytesIO
from typing import Any, Dict, Tuple

from PIL import Image, UnidentifiedImageError

from errors import ValidationError

logger = logging.getLogger("AssetProcessor")


def get_image_metadata(image_bytes: bytes) -> Dict[str, Any]:
    """Extract width, height, format from image bytes"""
    try:
        with Image.open(BytesIO(image_bytes)) as img:
            return {
                "width": img.width,
                "height": img.height,
                "format": img.format,
                "has_alpha": img.mode in ("RGBA", "LA") or "transparency" in img.info,
            }
    except (UnidentifiedImageError, OSError) as e:
        logger.warning(f"Failed to extract image metadata: {e}")
        return {"width": None, "height": None, "format": None, "has_alpha": None}


def fit_dimensions(width: int, height: int, target: Tuple[int, int]) -> Tuple[int, int]:
    """Largest (w, h) with the source aspect ratio that fits inside target"""
    target_width, target_height = target
    scale = min(target_width / width, target_height / height)
    return max(1, round(width * scale)), max(1, round(height * scale))


def normalize_image(image_bytes: bytes, target_size: Tuple[int, int]) -> bytes:
    """Fit an image inside target_size, centre it on a transparent canvas and encode as WebP.

    The output is lossless WebP with an alpha channel, so the same input
    always produces the same bytes.

    Args:
        image_bytes: Source image (any format Pillow reads)
        target_size: (width, height) of the output canvas

    Returns:
        Encoded WebP bytes of exactly target_size

    Raises:
        ValidationError: If the bytes are not a readable image
    """
    try:
        with Image.open(BytesIO(image_bytes)) as img:
            img = img.convert("RGBA")
            new_size = fit_dimensions(img.width, img.height, target_size)
            if new_size != img.size:
                img = img.resize(new_size, Image.Resampling.LANCZOS)

            canvas = Image.new("RGBA", target_size, (0, 0, 0, 0))
            offset = ((target_size[0] - img.width) // 2, (target_size[1] - img.height) // 2)
            canvas.paste(img, offset, img)

            output = BytesIO()
            canvas.save(output, format="WEBP", lossless=True, quality=100, method=6, exact=True)
            logger.info(
                f"Normalized image {img.width}x{img.height} onto {target_size[0]}x{target_size[1]} canvas "
                f"({len(output.getvalue())} bytes)"
            )
            return output.getvalue()
    except (UnidentifiedImageError, OSError) as e:
        raise ValidationError(f"Cannot decode image for normalization: {e}")
