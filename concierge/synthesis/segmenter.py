"""Split reply text into short phrases so the first audio is ready sooner."""

from __future__ import annotations

import re

_SENTENCE_END = re.compile(r"[.!?…]+(?=\s)")
_WHITESPACE = re.compile(r"\s")


def segment_phrases(text: str, max_chars: int = 40) -> list[str]:
    """Cut ``text`` into speakable phrases, in order.

    A phrase ends after sentence punctuation followed by whitespace. When
    no such boundary falls within ``max_chars``, the cut goes at the last
    whitespace inside the budget, or exactly at the budget when the
    window has no whitespace at all.
    """
    if max_chars < 1:
        raise ValueError("max_chars must be positive")

    phrases: list[str] = []
    rest = text.strip()
    while rest:
        boundary = _SENTENCE_END.search(rest)
        if boundary and boundary.end() <= max_chars:
            cut = boundary.end()
        elif len(rest) <= max_chars:
            cut = len(rest)
        else:
            window = rest[:max_chars + 1]
            spaces = [m.start() for m in _WHITESPACE.finditer(window)]
            cut = spaces[-1] if spaces and spaces[-1] > 0 else max_chars

        phrase = rest[:cut].strip()
        if phrase:
            phrases.append(phrase)
        rest = rest[cut:].strip()
    return phrases
