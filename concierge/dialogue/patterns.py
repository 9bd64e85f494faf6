"""Phrase lists for the local intent rules.

The trigger wording changes often, so it is data rather than code: every
list here has a built-in default and the whole set can be replaced from a
JSON file (``INTENT_PATTERNS_PATH``). Patterns are matched against the
normalized transcript (lowercase, trailing punctuation stripped).
"""

from __future__ import annotations

import logging
import re
from pathlib import Path

from pydantic import BaseModel, Field, field_validator

log = logging.getLogger("concierge.dialogue.patterns")

# Negative lookahead for "show/let's" verbs that actually point at the
# listing on screen ("покажи её") or ask for another one ("давай другую").
_NOT_A_SEARCH = r"(?!\s+(?:мне|её|ее|эту|это|другую|следующую|ещё|еще))"

DEFAULT_DISTRICT_ALIASES: dict[str, str] = {
    "джибиар": "JBR",
    "джи би ар": "JBR",
    "джей би ар": "JBR",
    "gbr": "JBR",
    "jbr": "JBR",
    "дубай марина": "Dubai Marina",
    "дубаи марина": "Dubai Marina",
    "марина": "Dubai Marina",
    "марине": "Dubai Marina",
    "marina": "Dubai Marina",
    "палм джумейра": "Palm Jumeirah",
    "пальм джумейра": "Palm Jumeirah",
    "пальмс джумейра": "Palm Jumeirah",
    "палмс джумейра": "Palm Jumeirah",
    "palm jumeirah": "Palm Jumeirah",
    "palms": "Palm Jumeirah",
    "палм": "Palm Jumeirah",
    "пальм": "Palm Jumeirah",
    "даунтаун": "Downtown Dubai",
    "downtown": "Downtown Dubai",
    "бизнес бей": "Business Bay",
    "бизнес бэй": "Business Bay",
    "business bay": "Business Bay",
    "дубай хиллс": "Dubai Hills",
    "дубаи хиллс": "Dubai Hills",
    "dubai hills": "Dubai Hills",
    "хиллс": "Dubai Hills",
    "hills": "Dubai Hills",
    "джей ви си": "JVC",
    "джи ви си": "JVC",
    "jvc": "JVC",
    "крик харбур": "Creek Harbour",
    "крик харбор": "Creek Harbour",
    "creek harbour": "Creek Harbour",
    "крик": "Creek Harbour",
    "creek": "Creek Harbour",
    "дифс": "DIFC",
    "difc": "DIFC",
}


class IntentPatterns(BaseModel):
    """Regex lists per local rule, plus district aliases."""

    capabilities: list[str] = [
        r"(что.*умеешь|что.*можешь|что.*делаешь|как.*работаешь|как.*помочь|расскажи.*себе|кто.*ты)",
    ]
    param_change: list[str] = [
        r"(давай|поменяй|измен|уменьш|увелич|другой|изменим|поменяем).*(бюджет|цен|параметр)",
        r"^(другой бюджет|изменить цену|уменьшить|увеличить)",
    ]
    search_now: list[str] = [
        r"^(начинай|начни|ищи|поехали|го|поиск|варианты|посмотрим)(?!\w)",
        r"^(покажи|показать|давай)(?!\w)" + _NOT_A_SEARCH,
    ]
    confirm: list[str] = [
        r"^да(\s|$)",
        r"^(ну )?да[,!.]?$",
        r"^(хорошо|отлично|супер|нравит|подходит)",
        r"(эта|это|её|нее).*(?<!не )нравит",
        r"(?<!не )подход",
        r"(?<!не )интерес",
        r"беру|готов|хочу.*эту",
        r"расскажи|информац|подробнее",
        r"покажи.*(мне|её|ее|эту|это)",
        r"отправь|пришли|благодар",
        r"^(вот эта|эта да)(\s|$)",
    ]
    next: list[str] = [
        r"^(покажи другую|показать другую|далее|следующую|next|ещё|еще|другую)(\s|$)",
        r"^(нет|не подходит|не нравится)(\s|$)",
    ]
    # Words that also open ordinary sentences ("пока не знаю", "спасибо, а
    # есть другие") only count when they are the whole utterance.
    farewell: list[str] = [
        r"^(до свидания|выход|exit|bye|конец)(?!\w)",
        r"^(спасибо|большое|пока|всё|все|не надо|хватит|до свидания)"
        r"([\s,!.]+(спасибо|большое|пока|всё|все|не надо|хватит|до свидания))*$",
    ]
    # A confirm stem preceded by one of these is a refusal ("не очень
    # подходит", "неинтересно", "не готов").
    negation: list[str] = [
        r"(?<!\w)не(?!\w)",
        r"(?<!\w)не(?=интерес|подход|нрав)",
    ]
    district_aliases: dict[str, str] = Field(
        default_factory=lambda: dict(DEFAULT_DISTRICT_ALIASES)
    )
    district_only_max_tokens: int = 4

    @field_validator(
        "capabilities", "param_change", "search_now", "confirm", "next", "farewell",
        "negation",
    )
    @classmethod
    def _must_compile(cls, value: list[str]) -> list[str]:
        for pattern in value:
            try:
                re.compile(pattern)
            except re.error as e:
                raise ValueError(f"Invalid pattern {pattern!r}: {e}") from e
        return value

    @field_validator("district_aliases")
    @classmethod
    def _lowercase_aliases(cls, value: dict[str, str]) -> dict[str, str]:
        return {alias.lower().strip(): district for alias, district in value.items()}


def load_patterns(path: str | Path | None = None) -> IntentPatterns:
    """Load patterns from a JSON file, or the defaults when no path is given.

    Keys missing from the file keep their defaults.
    """
    if not path:
        return IntentPatterns()
    text = Path(path).read_text(encoding="utf-8")
    patterns = IntentPatterns.model_validate_json(text)
    log.info("Loaded intent patterns from %s", path)
    return patterns
