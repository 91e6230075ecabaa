"""Pull one JSON value out of a loosely formatted model response.

Grounded (search-enabled) requests cannot ask the service for a strict JSON
response, so the text that comes back may look like any of::

    ```json
    {"title": "..."}
    ```

    Here is what I found: {"title": "..."} Let me know if you need more.

The value is located by slicing from the first opening bracket to the last
closing bracket of the same kind, after code fences are removed.
"""

import json
import re
from typing import Any

from ..exceptions import EmptyResponseError, InvalidStructuredDataError, NoStructuredDataError

# opening or closing fence (```, ```json, ```JSON) anywhere in the text
_FENCE_RE = re.compile(r"```[A-Za-z]*")

_CLOSERS = {"{": "}", "[": "]"}


def strip_code_fences(text: str) -> str:
    return _FENCE_RE.sub("", text)


def find_json_span(text: str) -> tuple[int, int] | None:
    """Return ``(start, end)`` of the outermost bracketed value, or ``None``.

    *start* is the first ``{`` or ``[``; *end* is one past the last matching
    closer of the same kind.
    """
    starts = [i for i in (text.find("{"), text.find("[")) if i != -1]
    if not starts:
        return None
    start = min(starts)
    end = text.rfind(_CLOSERS[text[start]])
    if end <= start:
        return None
    return start, end + 1


def extract_json(text: str | None) -> Any:
    """Parse the JSON object or array embedded in *text*.

    Raises:
        EmptyResponseError: *text* is ``None`` or blank.
        NoStructuredDataError: no bracket pair was found.
        InvalidStructuredDataError: the bracketed slice is not valid JSON.
    """
    if text is None or not text.strip():
        raise EmptyResponseError()

    cleaned = strip_code_fences(text)
    span = find_json_span(cleaned)
    if span is None:
        raise NoStructuredDataError(_preview(text))

    candidate = cleaned[span[0] : span[1]]
    try:
        return json.loads(candidate)
    except json.JSONDecodeError as exc:
        raise InvalidStructuredDataError(str(exc)) from exc


def _preview(text: str, limit: int = 60) -> str:
    flat = " ".join(text.split())
    return flat if len(flat) <= limit else flat[: limit - 3] + "..."
