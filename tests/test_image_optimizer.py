"""Tests for image preprocessing."""

import asyncio
import io
import os

from PIL import Image

from quiz_generation.image_optimizer import MB, cap_image_size, optimize_image, optimize_images
from quiz_generation.schemas import EncodedImage


def noise_png(width: int, height: int, mode: str = "RGB") -> EncodedImage:
    """Random pixels barely compress, so the PNG size tracks width x height."""
    channels = len(mode)
    img = Image.frombytes(mode, (width, height), os.urandom(width * height * channels))
    buf = io.BytesIO()
    img.save(buf, format="PNG")
    return EncodedImage(data=buf.getvalue(), mime_type="image/png")


def dimensions(image: EncodedImage):
    with Image.open(io.BytesIO(image.data)) as img:
        return img.size, img.format


class TestCapImageSize:
    """Tests for cap_image_size."""

    def test_small_image_unchanged(self):
        img = Image.new("RGB", (800, 600))
        assert cap_image_size(img, 2048) is img

    def test_preserves_aspect_ratio(self):
        img = Image.new("RGB", (4000, 1000))
        assert cap_image_size(img, 2000).size == (2000, 500)


class TestOptimizeImage:
    """Tests for optimize_image."""

    def test_under_one_megabyte_untouched(self):
        image = noise_png(200, 200)
        assert len(image.data) < MB
        assert optimize_image(image) is image

    def test_max_quality_untouched(self):
        image = noise_png(2500, 1000)
        assert optimize_image(image, "max-quality") is image

    def test_already_optimal_untouched(self):
        image = noise_png(800, 500)
        assert MB < len(image.data) < 2 * MB
        assert optimize_image(image) is image

    def test_large_image_resized_to_jpeg(self):
        image = noise_png(2500, 1000)
        result = optimize_image(image, "standard")
        assert result.mime_type == "image/jpeg"
        assert dimensions(result) == ((2048, 819), "JPEG")

    def test_high_quality_allows_larger_side(self):
        image = noise_png(3000, 1000)
        result = optimize_image(image, "high-quality")
        assert dimensions(result) == ((2560, 853), "JPEG")

    def test_heavy_image_recompressed_without_resize(self):
        image = noise_png(1000, 1000)
        assert len(image.data) > 2 * MB
        result = optimize_image(image)
        assert dimensions(result) == ((1000, 1000), "JPEG")

    def test_transparency_converted(self):
        image = noise_png(2200, 600, mode="RGBA")
        result = optimize_image(image)
        assert dimensions(result)[1] == "JPEG"

    def test_undecodable_image_returned_as_is(self):
        image = EncodedImage(data=b"not an image" * 200_000)
        assert optimize_image(image) is image


class TestOptimizeImages:
    """Tests for the batch helper."""

    def test_order_preserved(self):
        small = noise_png(100, 100)
        broken = EncodedImage(data=b"\x00" * (3 * MB))
        large = noise_png(2500, 1000)
        result = asyncio.run(optimize_images([small, broken, large]))
        assert result[0] is small
        assert result[1] is broken
        assert dimensions(result[2])[0] == (2048, 819)
