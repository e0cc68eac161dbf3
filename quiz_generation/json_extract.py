"""
Locate JSON inside free-form model output.

Search order, applied the same way by every parser:
  1. the body of the first closed ``` fence
  2. the body of a ``` fence the model never closed (truncated output)
  3. the whole text
Within the chosen region the first balanced {...} (or [...]) span wins.
Brackets inside JSON strings are ignored while balancing.
"""

import re
from typing import List, Optional

_CLOSED_FENCE_RE = re.compile(r"```(?:json|JSON)?\s*([\s\S]*?)```")
_OPEN_FENCE_RE = re.compile(r"```(?:json|JSON)?\s*\n([\s\S]*)$")

_CLOSERS = {"{": "}", "[": "]"}


def candidate_regions(text: str) -> List[str]:
    """Regions of ``text`` to search for JSON, most specific first."""
    text = (text or "").strip()
    regions: List[str] = []

    closed = _CLOSED_FENCE_RE.search(text)
    if closed:
        regions.append(closed.group(1).strip())
    else:
        opened = _OPEN_FENCE_RE.search(text)
        if opened:
            regions.append(opened.group(1).strip())

    regions.append(text)
    return regions


def find_balanced_span(text: str, opener: str = "{", allow_unterminated: bool = False) -> Optional[str]:
    """
    Return the first balanced span starting at ``opener``.

    With ``allow_unterminated`` a span that runs off the end of the text is
    returned as-is (useful when a repairing parser follows).
    """
    closer = _CLOSERS[opener]
    start = text.find(opener)
    if start == -1:
        return None

    depth = 0
    in_string = False
    escaped = False
    for pos in range(start, len(text)):
        ch = text[pos]
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"':
            in_string = True
        elif ch == opener:
            depth += 1
        elif ch == closer:
            depth -= 1
            if depth == 0:
                return text[start:pos + 1]

    return text[start:] if allow_unterminated else None


def extract_json_span(text: str, opener: str = "{", allow_unterminated: bool = False) -> Optional[str]:
    """First balanced span found across :func:`candidate_regions`."""
    for region in candidate_regions(text):
        span = find_balanced_span(region, opener, allow_unterminated)
        if span is not None:
            return span
    return None
