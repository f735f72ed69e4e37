"""Character buffers used by the elision scanner.

The scanner consumes its input one character at a time.  Everything it reads
goes into a SuffixMatchBuffer so multi-character tokens can be recognised as
soon as their last character arrives, and everything it might emit goes into a
MutableOutputBuffer so that tokens can be taken back once the scanner knows
they must not appear in the output.
"""

from typing import Iterable, List


class SuffixMatchBuffer:
    """Append-only record of consumed characters with tail matching."""

    def __init__(self):
        self._chars: List[str] = []

    def __len__(self):
        return len(self._chars)

    def push(self, text: str) -> None:
        self._chars.extend(text)

    def ends_with(self, literal: str) -> bool:
        """Compare literal against the tail, walking backwards. O(len(literal))."""
        count = len(literal)
        if count == 0:
            return True
        if len(self._chars) < count:
            return False

        offset = len(self._chars) - count
        for index in range(count - 1, -1, -1):
            if self._chars[offset + index] != literal[index]:
                return False
        return True

    def ends_with_any(self, literals: Iterable[str]) -> bool:
        return any(self.ends_with(literal) for literal in literals)


class MutableOutputBuffer:
    """Append-only output that can be truncated by a delta."""

    def __init__(self):
        self._chars: List[str] = []

    def __len__(self):
        return len(self._chars)

    def push(self, text: str) -> None:
        self._chars.extend(text)

    def shrink(self, count: int) -> None:
        """Drop the last count characters.

        Callers only take back what they pushed, but shrinking past the start
        just empties the buffer.
        """
        if count <= 0:
            return
        del self._chars[max(0, len(self._chars) - count):]

    def build_string(self) -> str:
        return "".join(self._chars)
