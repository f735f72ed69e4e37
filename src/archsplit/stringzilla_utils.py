"""StringZilla helpers for whole-text searches.

The scanner itself walks characters one by one, but the questions asked of a
complete text (does it mention a prologue at all, where is the source map
reference, which line is this) go through StringZilla's SIMD search.  Offsets
returned by ``stringzilla.Str`` are only ever used to slice the same ``Str``.
"""

from typing import Iterable
import stringzilla


def contains_any_sz(text: str, needles: Iterable[str]) -> bool:
    """True if any needle occurs in text."""
    sz_text = stringzilla.Str(text)
    return any(sz_text.find(needle) != -1 for needle in needles if needle)


def line_number_at(text: str, index: int) -> int:
    """1-based line number of the character at index."""
    return stringzilla.Str(text[:index]).count('\n') + 1


def remove_first_line_containing_sz(text: str, marker: str) -> str:
    """Remove marker and the rest of its line, keeping the line terminator.

    Only the first occurrence is removed.  Text without the marker comes back
    unchanged.
    """
    sz_text = stringzilla.Str(text)
    start = sz_text.find(marker)
    if start == -1:
        return text

    end = sz_text.find('\n', start)
    if end == -1:
        end = len(sz_text)
    # A CRLF terminator keeps both characters
    if end > start and str(sz_text[end - 1:end]) == '\r':
        end -= 1
    return str(sz_text[:start]) + str(sz_text[end:])
