"""Spoken budget amounts → AED.

Callers say prices the way people talk: "до трёх миллионов", "от 1,5 млн",
"2 000 000", "полтора". A bare number below 1000 is taken to be millions.
"""

from __future__ import annotations

import re
from typing import NamedTuple, Optional

_NUMBER_WORDS = {
    "один": 1, "одного": 1, "одному": 1,
    "полтора": 1.5, "полутора": 1.5,
    "два": 2, "двух": 2,
    "три": 3, "трёх": 3, "трех": 3,
    "четыре": 4, "четырёх": 4, "четырех": 4,
    "пять": 5, "пяти": 5,
    "шесть": 6, "шести": 6,
    "семь": 7, "семи": 7,
    "восемь": 8, "восьми": 8,
    "девять": 9, "девяти": 9,
    "десять": 10, "десяти": 10,
}

_WORDS = "|".join(sorted(_NUMBER_WORDS, key=len, reverse=True))

_AMOUNT_RE = re.compile(
    r"(?:(?<!\w)(?P<prep>от|до|на|за)\s+)?"
    r"(?<!\w)(?:(?P<digits>\d{1,3}(?:[ \u00a0]\d{3})+|\d+(?:[.,]\d+)?)"
    r"|(?P<word>" + _WORDS + r")(?!\w))"
    r"\s*(?P<unit>млн|миллион\w*|million\w*|тыс\w*|k(?!\w))?",
    re.IGNORECASE,
)


class Amount(NamedTuple):
    value: int
    field: str  # "price_min" or "price_max"


def parse_amount(text: str) -> Optional[Amount]:
    """Return the first price mentioned in the text, or None.

    "от X" is a lower bound; anything else ("до X", "на X", a bare X) is
    an upper bound.
    """
    matches = list(_AMOUNT_RE.finditer(text))
    if not matches:
        return None
    # "на 5 этаже до 2 млн": a number with a money unit wins over a bare one
    m = next((c for c in matches if c.group("unit")), matches[0])

    if m.group("digits"):
        raw = re.sub(r"[ \u00a0]", "", m.group("digits")).replace(",", ".")
        number = float(raw)
    else:
        number = float(_NUMBER_WORDS[m.group("word").lower()])

    unit = (m.group("unit") or "").lower()
    if unit.startswith(("млн", "миллион", "million")):
        value = number * 1_000_000
    elif unit.startswith("тыс") or unit == "k":
        value = number * 1_000
    elif number < 1000:
        value = number * 1_000_000
    else:
        value = number

    prep = (m.group("prep") or "").lower()
    field = "price_min" if prep == "от" else "price_max"
    return Amount(int(round(value)), field)
