"""Helpers that turn listing attributes into natural Russian speech.

The synthesizer reads text literally, so English district names, units
and bare numbers are rewritten into forms that sound right when spoken.
"""

import re

_DISTRICT_SPEECH = [
    (r"\bDubai Marina\b", "Дубай Марина"),
    (r"\bDowntown Dubai\b", "Даунтаун Дубай"),
    (r"\bPalm Jumeirah\b", "Палм Джумейра"),
    (r"\bJBR\b", "Джибиар"),
    (r"\bBusiness Bay\b", "Бизнес Бей"),
    (r"\bDubai Hills\b", "Дубай Хиллс"),
    (r"\bJVC\b", "ДжиВиСи"),
    (r"\bCreek Harbour\b", "Крик Харбур"),
    (r"\bDIFC\b", "ДИФС"),
]

_TERM_SPEECH = [
    (r"\bAED\b", "дирха́м"),
    (r"\bmillion\b", "миллионов"),
    (r"\bfurnished\b", "меблирована"),
    (r"\bunfurnished\b", "без мебели"),
    (r"\bbeach\b", "пляж"),
    (r"\bpool\b", "бассейн"),
    (r"\bgym\b", "спортзал"),
    (r"\bparking\b", "парковка"),
    (r"\bview\b", "вид"),
    (r"\bterrace\b", "терраса"),
    (r"\bbalcony\b", "балкон"),
]

_CARDINALS = {
    0: "ноль", 1: "один", 2: "два", 3: "три", 4: "четыре", 5: "пять",
    6: "шесть", 7: "семь", 8: "восемь", 9: "девять", 10: "десять",
    11: "одиннадцать", 12: "двенадцать", 13: "тринадцать", 14: "четырнадцать",
    15: "пятнадцать", 16: "шестнадцать", 17: "семнадцать", 18: "восемнадцать",
    19: "девятнадцать", 20: "двадцать",
}

_ORDINALS = {
    1: "первый", 2: "второй", 3: "третий", 4: "четвёртый", 5: "пятый",
    6: "шестой", 7: "седьмой", 8: "восьмой", 9: "девятый", 10: "десятый",
    11: "одиннадцатый", 12: "двенадцатый", 13: "тринадцатый",
    14: "четырнадцатый", 15: "пятнадцатый", 16: "шестнадцатый",
    17: "семнадцатый", 18: "восемнадцатый", 19: "девятнадцатый",
    20: "двадцатый", 25: "двадцать пятый", 30: "тридцатый",
    45: "сорок пятый", 50: "пятидесятый",
}


def number_to_text(num: int) -> str:
    """Spell out small numbers; larger ones are left as digits."""
    return _CARDINALS.get(num, str(num))


def _plural(num: int, one: str, few: str, many: str) -> str:
    last_two = num % 100
    last = num % 10
    if 11 <= last_two <= 14:
        return many
    if last == 1:
        return one
    if 2 <= last <= 4:
        return few
    return many


def square_meters_form(num: int) -> str:
    return _plural(num, "квадратный метр", "квадратных метра", "квадратных метров")


def million_form(num: int) -> str:
    return _plural(num, "миллион", "миллиона", "миллионов")


def ordinal_floor(floor: int) -> str:
    if floor in _ORDINALS:
        return f"{_ORDINALS[floor]} этаж"
    return f"{floor} этаж"


_TENTHS = {1: "одна", 2: "две"}


def price_for_voice(price: int) -> str:
    """Spoken price in AED.

    Whole millions are spelled out ("два миллиона"), fractions as tenths
    ("два и одна десятая миллиона"); prices under a million are read in
    thousands.
    """
    thousands = round(price / 1_000)
    if thousands < 1_000:
        return f"{thousands} {_plural(thousands, 'тысяча', 'тысячи', 'тысяч')} дирха́м"

    whole, tenths = divmod(round(price / 100_000), 10)
    if not tenths:
        return f"{number_to_text(whole)} {million_form(whole)} дирха́м"
    fraction = _TENTHS.get(tenths, number_to_text(tenths))
    unit = "десятая" if tenths == 1 else "десятых"
    return f"{number_to_text(whole)} и {fraction} {unit} миллиона дирха́м"


def localize_for_voice(text: str) -> str:
    """Rewrite English terms and numeric shorthands for Russian speech."""
    result = text
    for pattern, spoken in _DISTRICT_SPEECH:
        result = re.sub(pattern, spoken, result, flags=re.IGNORECASE)

    # "до 3 миллионов" → "до трёх миллионов" is out of reach without
    # declension; spelling the digit is close enough for the synthesizer.
    result = re.sub(
        r"(\d+)\s*(миллион[а-я]*)",
        lambda m: f"{number_to_text(int(m.group(1)))} {m.group(2)}",
        result,
        flags=re.IGNORECASE,
    )
    result = re.sub(
        r"(\d+)\.(\d+)\s*млн",
        lambda m: f"{number_to_text(int(m.group(1)))} и {m.group(2)} десятых миллиона",
        result,
        flags=re.IGNORECASE,
    )
    result = re.sub(r"(\d+)\s*м²", r"\1 квадратных метров", result)

    for pattern, spoken in _TERM_SPEECH:
        result = re.sub(pattern, spoken, result, flags=re.IGNORECASE)
    return result
