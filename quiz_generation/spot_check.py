"""
Step 6 — Vision spot-check

Asks the vision provider whether the text extracted for the first pages
really appears on those pages. Large batches are not spot-checked.
"""

import asyncio
import logging
from typing import List

from quiz_generation.config import (
    MIN_PAGE_TEXT_LENGTH,
    SPOT_CHECK_PAGES,
    is_large_batch,
)
from quiz_generation.providers import ProviderRegistry
from quiz_generation.schemas import EncodedImage, SpotCheckResult, ValidationVerdict

log = logging.getLogger("quiz_generation.pipeline")

PASS_RATIO = 0.5


class VisionSpotChecker:

    def __init__(self, registry: ProviderRegistry):
        self.registry = registry

    async def run(
        self,
        images: List[EncodedImage],
        extracted_text: List[str],
        verdict: ValidationVerdict,
    ) -> SpotCheckResult:
        if is_large_batch(len(images)):
            log.info(f"[SpotCheck] Skipping vision spot-check for large batch ({len(images)} images)")
            return SpotCheckResult(passed=True, failed_pages=[], skipped_large_batch=True)

        pages = list(range(min(SPOT_CHECK_PAGES, len(images))))
        log.info(
            f"[SpotCheck] Checking pages {pages} "
            f"(confidence={verdict.overall_confidence:.2f}, issues={len(verdict.issues)})"
        )

        passed_count = 0
        to_verify = []
        for page in pages:
            expected = extracted_text[page] if page < len(extracted_text) else ""
            if len(expected) < MIN_PAGE_TEXT_LENGTH:
                # nothing meaningful to verify
                passed_count += 1
            else:
                to_verify.append((page, expected))

        vision = self.registry.vision
        results = await asyncio.gather(*[
            vision.verify_page_against_image(images[page], expected) for page, expected in to_verify
        ])

        failed_pages: List[int] = []
        for (page, _), verified in zip(to_verify, results):
            if verified:
                passed_count += 1
            else:
                log.warning(f"[SpotCheck] Vision spot-check failed for page {page + 1}")
                failed_pages.append(page + 1)

        checked = len(to_verify)
        pass_rate = passed_count / checked if checked else 1.0
        passed = pass_rate >= PASS_RATIO
        log.info(
            f"[SpotCheck] {passed_count}/{checked} passed ({round(pass_rate * 100)}%), "
            f"overall: {'PASS' if passed else 'FAIL'}"
        )
        return SpotCheckResult(passed=passed, failed_pages=failed_pages, skipped_large_batch=False)
