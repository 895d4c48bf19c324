"""Pull the JSON document out of a model reply that may wrap it in prose or a code fence."""

from __future__ import annotations

import re

_FENCED_BLOCK = re.compile(r"```(?:json)?\s*([\s\S]*?)\s*```", re.IGNORECASE)


def extract_json_text(text: str) -> str:
    """
    Best-effort JSON extraction, in order:
    1. contents of the first fenced code block (``` or ```json)
    2. span from the first '{' to the last '}'
    3. the stripped text as-is
    """
    match = _FENCED_BLOCK.search(text)
    if match and match.group(1):
        return match.group(1).strip()

    first = text.find("{")
    last = text.rfind("}")
    if first != -1 and last != -1 and last > first:
        return text[first: last + 1]

    return text.strip()
