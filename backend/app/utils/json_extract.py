import json
import re
from typing import Any


OBJECT_PATTERN = r"\{.*\}"
ARRAY_PATTERN = r"\[.*\]"


def extract_json(text: str) -> Any:
    """
    Extract the first JSON value from generator output (an AI reply may wrap
    it in prose or code fences).

    A bare top-level array is accepted as well as an object; whichever
    opens first in the text is tried first.
    Returns {} if parsing fails. NEVER throws.
    """
    if not text or not isinstance(text, str):
        return {}

    try:
        return json.loads(text)
    except ValueError:
        pass

    object_start = text.find("{")
    array_start = text.find("[")
    patterns = [OBJECT_PATTERN, ARRAY_PATTERN]
    if array_start != -1 and (object_start == -1 or array_start < object_start):
        patterns.reverse()

    for pattern in patterns:
        match = re.search(pattern, text, re.DOTALL)
        if not match:
            continue
        try:
            return json.loads(match.group(0))
        except ValueError:
            continue

    return {}
