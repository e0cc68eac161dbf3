"""
Small helpers shared by the schemas and the parsers.
"""

import logging
import re
from typing import Optional, Tuple

log = logging.getLogger(__name__)

_DATA_URL_RE = re.compile(r"^data:([^;]+);base64,(.+)$", re.DOTALL)

# Anything that can execute or smuggle markup inside an SVG
_DANGEROUS_DIAGRAM_PATTERNS = [
    re.compile(r"<script", re.IGNORECASE),
    re.compile(r"javascript:", re.IGNORECASE),
    re.compile(r"on\w+\s*=", re.IGNORECASE),
    re.compile(r"<iframe", re.IGNORECASE),
    re.compile(r"<foreignobject", re.IGNORECASE),
    re.compile(r"<embed", re.IGNORECASE),
    re.compile(r"<object", re.IGNORECASE),
    re.compile(r"data:\s*text/html", re.IGNORECASE),
]


def parse_data_url(data_url: str) -> Tuple[str, str]:
    """Split ``data:<mime>;base64,<payload>`` into (mime, payload)."""
    match = _DATA_URL_RE.match(data_url.strip())
    if not match:
        raise ValueError("Invalid data URL format")
    return match.group(1), match.group(2)


def sanitize_diagram(diagram: Optional[str]) -> Optional[str]:
    """
    Return the trimmed SVG markup if it is a single top-level <svg> block with
    nothing dangerous inside, otherwise None (the diagram is dropped, the
    question is kept).
    """
    if not diagram or not isinstance(diagram, str):
        return None

    trimmed = diagram.strip()
    lowered = trimmed.lower()
    if not lowered.startswith("<svg") or not lowered.endswith("</svg>"):
        log.warning("Dropping invalid diagram - not valid SVG structure")
        return None

    for pattern in _DANGEROUS_DIAGRAM_PATTERNS:
        if pattern.search(trimmed):
            log.warning(f"Dropping dangerous diagram - contains blocked pattern {pattern.pattern!r}")
            return None

    return trimmed
