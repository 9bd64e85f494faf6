"""System prompt, context block and the fixed utterances the policy speaks."""

from __future__ import annotations

import json
from typing import Sequence

from concierge.models import DialogueContext
from listings.schema import Listing

GREETING = "Здравствуйте! Я консультант по недвижимости в Дубае. Какую квартиру ищете?"

CAPABILITIES = (
    "Я помогаю подобрать квартиру в Дубае. Скажите бюджет, район или размер, "
    "и я найду варианты. Могу показать детали и отправить презентацию."
)
ASK_BUDGET = (
    "Понятно, давайте подберём для вас подходящий вариант с новым бюджетом. "
    "Какая сумма вас интересует?"
)
NO_MATCHES = "По этим параметрам нет вариантов. Уточните запрос."
NO_MORE_MATCHES = "По этим параметрам больше нет вариантов. Что изменим?"
CONFIRMED = (
    "Отлично! Я создаю для вас персональную страницу с подробной информацией "
    "об этой квартире. Ссылка появится на экране."
)
NOTHING_TO_CONFIRM = (
    "Я пока не нашёл подходящую квартиру. Уточните, пожалуйста, район "
    "или другие предпочтения."
)
FAREWELL = "Спасибо! Удачи в поиске!"
APOLOGY = "Извините, я не расслышал. Пожалуйста, повторите ваш вопрос."


def offer_text(listing: Listing) -> str:
    """Templated offer. Listing attributes are never taken from model text."""
    return f"Вот вариант: {listing.to_voice_text()} Нравится?"


SYSTEM_PROMPT = """You are a concise Russian-speaking real estate consultant in Dubai. Reply ONLY with valid JSON (no markdown, no text outside JSON).

JSON FORMAT (exact keys):
{{"response": "1-2 sentences max, Russian", "params_update": {{"district": null, "price_min": null, "price_max": null, "area_min": null, "area_max": null, "floor_min": null, "floor_max": null}}, "action": "none"}}

PARAM EXTRACTION:
- Extract only when user clearly mentions it; otherwise leave null
- price_* in AED; area in m²; district from list: {districts}
- DISTRICT RECOGNITION: Accept variations like "Пальмс/Палмс/Palms Джумейра" → Palm Jumeirah; "Марина" → Dubai Marina; "ДжиБиАр/GBR" → JBR; "Даунтаун" → Downtown Dubai
- When user says "увеличим/изменим/поменяем бюджет до X" → EXTRACT price_max: X and trigger "search"
- Examples: "до 2 миллионов" → price_max: 2000000; "увеличим до 3 млн" → price_max: 3000000; "от 1.5 млн" → price_min: 1500000
- ALWAYS overwrite a parameter when user explicitly changes it ("увеличим", "изменим", "поменяем", "теперь", "другой")

ACTION RULES:
- "search": if (user changes ANY parameter like "увеличим бюджет", "другой район") OR (user has 2+ params and wants to see: "покажи", "ищи", "давай")
- "next": only when user rejects current option ("другую", "следующую", "не подходит")
- "confirm_interest": only after an apartment was shown and user agrees ("да", "эта", "нравится", "беру", "хочу эту")
- "none": default, continue the dialog
- "end": farewell

RESPONSE STYLE:
- 1-2 sentences, no repetition of user's words
- If parameters are enough for search → propose action "search" and confirm what will be shown
- If info is missing → ask for ONE useful missing thing (district or budget), only one question
- Be proactive: do not delay search when user is ready"""


def build_system_prompt(districts: Sequence[str]) -> str:
    return SYSTEM_PROMPT.format(districts=", ".join(districts))


def build_context_block(context: DialogueContext, candidates: Sequence[Listing]) -> str:
    """Dialogue state appended to the system prompt on every completion."""
    lines = [
        "",
        "",
        "КОНТЕКСТ ДИАЛОГА:",
        f"Текущие параметры: {json.dumps(context.params.set_fields(), ensure_ascii=False)}",
        f"Показано квартир: {len(context.shown_listings)}",
    ]
    if context.last_shown:
        lines.append(f"Последняя показанная квартира ID: {context.last_shown}")
    lines.append(f"Доступно ещё квартир: {len(candidates)}")
    if candidates:
        lines.append(f"Следующая квартира для показа: {candidates[0].to_short_text()}")
    return "\n".join(lines)
