"""
Generate a quiz from photographed pages.

Usage:
    python -m quiz_generation page1.jpg page2.jpg
    python -m quiz_generation page*.png --level high-quality --output quiz.json

Pages are used in the order given. Exit status 2 means the photos need to
be retaken; 1 means generation failed.
"""

import argparse
import asyncio
import io
import logging
import sys
from pathlib import Path
from typing import List, Optional

from PIL import Image

from quiz_generation.errors import RecaptureRequiredError
from quiz_generation.pipeline import generate_quiz
from quiz_generation.schemas import EncodedImage, GenerationOptions

log = logging.getLogger("quiz_generation.pipeline")

EXIT_FAILURE = 1
EXIT_RECAPTURE = 2


def load_image(path: Path) -> EncodedImage:
    data = path.read_bytes()
    with Image.open(io.BytesIO(data)) as img:
        mime_type = Image.MIME.get(img.format or "", "image/jpeg")
    return EncodedImage(data=data, mime_type=mime_type)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="python -m quiz_generation",
        description="Generate a validated lesson and quiz from textbook page photos",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument("pages", nargs="+", type=Path, help="Page images, in page order")
    parser.add_argument(
        "--level",
        choices=["standard", "high-quality", "max-quality"],
        default="standard",
        help="Image optimization level (default: standard)",
    )
    parser.add_argument("--no-optimize", action="store_true", help="Send the images unmodified")
    parser.add_argument("--output", type=Path, help="Write the quiz JSON here instead of stdout")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(level=logging.INFO, format="%(asctime)s  %(levelname)s  %(message)s")

    try:
        images = [load_image(path) for path in args.pages]
    except (OSError, ValueError) as e:
        print(f"ERROR: could not read page image: {e}", file=sys.stderr)
        return EXIT_FAILURE

    options = GenerationOptions(optimize_images=not args.no_optimize, optimization_level=args.level)

    try:
        quiz = asyncio.run(generate_quiz(images, options))
    except RecaptureRequiredError as e:
        print(f"Please retake the photos: {e.reason}", file=sys.stderr)
        return EXIT_RECAPTURE
    except Exception as e:
        log.exception("Quiz generation failed")
        print(f"ERROR: quiz generation failed: {e}", file=sys.stderr)
        return EXIT_FAILURE

    payload = quiz.model_dump_json(by_alias=True, exclude_none=True, indent=2)
    if args.output:
        args.output.write_text(payload, encoding="utf-8")
        print(f"Wrote {len(quiz.questions)} questions to {args.output}")
    else:
        print(payload)
    return 0


if __name__ == "__main__":
    sys.exit(main())
