"""
JSON extraction from free-form model output.

Models asked for JSON still wrap it in markdown fences or surround it with
prose. Strategies are tried from strictest to loosest; the first parse wins.
"""

import json
import re
from typing import Any, Iterator, Optional

from .errors import JsonExtractionError

_FENCED_BLOCK = re.compile(r"```(?:json|JSON)?[ \t]*\r?\n?(.*?)```", re.DOTALL)
_OPENERS = "{["
_DECODER = json.JSONDecoder()


def _try_parse(candidate: str) -> Optional[tuple]:
    """Return ``(value,)`` on success so a parsed ``null`` is not mistaken for failure."""
    try:
        return (json.loads(candidate),)
    except (ValueError, RecursionError):
        return None


def _fenced_blocks(text: str) -> Iterator[str]:
    for match in _FENCED_BLOCK.finditer(text):
        yield match.group(1).strip()


def _balanced_values(text: str) -> Iterator[Any]:
    """Yield values parsed from balanced ``{...}`` / ``[...]`` spans, in order of
    their opening bracket.

    The decoder matches nested brackets and string literals, and gives up at
    the first invalid character, so a failed start costs only the length of
    its valid prefix. After a start overflows the nesting limit, the rest of
    the same run of brackets is skipped.
    """
    pos = 0
    while pos < len(text):
        if text[pos] not in _OPENERS:
            pos += 1
            continue
        try:
            value, _ = _DECODER.raw_decode(text, pos)
        except ValueError:
            pos += 1
            continue
        except RecursionError:
            opener = text[pos]
            while pos < len(text) and text[pos] == opener:
                pos += 1
            continue
        yield value
        pos += 1


def extract_json(text: Optional[str], source: str = "model") -> Any:
    """Parse a JSON value out of ``text``.

    Tries, in order: the whole trimmed text, fenced code blocks, then the
    earliest balanced object or array span.

    Args:
        text: Raw response text
        source: Name of the producer, used in the error message

    Returns:
        The parsed JSON value

    Raises:
        JsonExtractionError: If no strategy yields valid JSON
    """
    if not text or not text.strip():
        raise JsonExtractionError(text, source)

    stripped = text.strip()
    parsed = _try_parse(stripped)
    if parsed is not None:
        return parsed[0]

    for block in _fenced_blocks(stripped):
        parsed = _try_parse(block)
        if parsed is not None:
            return parsed[0]

    for value in _balanced_values(stripped):
        return value

    raise JsonExtractionError(text, source)
