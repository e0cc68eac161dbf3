"""
Step 0 — Image preprocessing

Shrinks large page photos before they are sent to the models. Small images
and "max-quality" batches are passed through untouched; any per-image
failure returns that image unchanged.
"""

import asyncio
import io
import logging
from typing import Any, Dict, List, Tuple

from PIL import Image

from quiz_generation.schemas import EncodedImage, OptimizationLevel

log = logging.getLogger(__name__)

MB = 1024 * 1024
SKIP_BELOW_BYTES = 1 * MB
ALREADY_OPTIMAL_BELOW_BYTES = 2 * MB

# level → (longest side in px, JPEG quality)
LEVEL_SETTINGS: Dict[str, Tuple[int, int]] = {
    "standard": (2048, 85),
    "high-quality": (2560, 90),
}


def cap_image_size(img: Any, max_side: int) -> Any:
    """Resize a PIL image to fit within max_side x max_side, preserving aspect ratio."""
    w, h = img.size
    if w <= max_side and h <= max_side:
        return img
    ratio = min(max_side / w, max_side / h)
    new_w = max(1, round(w * ratio))
    new_h = max(1, round(h * ratio))
    return img.resize((new_w, new_h), Image.Resampling.LANCZOS)


def optimize_image(image: EncodedImage, level: OptimizationLevel = "standard") -> EncodedImage:
    original_size = len(image.data)
    if original_size < SKIP_BELOW_BYTES:
        log.info(f"Image under 1MB, skipping optimization ({original_size / 1024:.2f} KB)")
        return image

    if level == "max-quality":
        log.info("Max quality mode, skipping optimization")
        return image

    max_side, quality = LEVEL_SETTINGS.get(level, LEVEL_SETTINGS["standard"])

    try:
        with Image.open(io.BytesIO(image.data)) as img:
            width, height = img.size
            needs_resize = width > max_side or height > max_side
            if not needs_resize and original_size < ALREADY_OPTIMAL_BELOW_BYTES:
                log.info(f"Image already optimal, skipping ({width}x{height}, {original_size / MB:.2f} MB)")
                return image

            out = cap_image_size(img, max_side) if needs_resize else img
            if out.mode not in ("RGB", "L"):
                out = out.convert("RGB")

            buf = io.BytesIO()
            out.save(buf, format="JPEG", quality=quality, optimize=True, progressive=True)
    except Exception as e:
        log.error(f"Image optimization failed, using original: {e}")
        return image

    optimized = buf.getvalue()
    savings = (original_size - len(optimized)) / original_size * 100
    log.info(
        f"Smart optimization completed level={level} "
        f"original={original_size / MB:.2f} MB optimized={len(optimized) / MB:.2f} MB "
        f"savings={savings:.1f}% resolution={f'{max_side}px' if needs_resize else 'original'} quality={quality}%"
    )
    return EncodedImage(data=optimized, mime_type="image/jpeg")


async def optimize_images(
    images: List[EncodedImage],
    level: OptimizationLevel = "standard",
) -> List[EncodedImage]:
    """Optimise a batch off the event loop, preserving page order."""
    log.info(f"Starting smart batch optimization count={len(images)} level={level}")
    return list(await asyncio.gather(*[
        asyncio.to_thread(optimize_image, image, level) for image in images
    ]))
