"""Local intent & slot resolver — answers common phrases without the LLM.

Rules are an ordered list of ``(name, predicate, handler)`` evaluated
first-match-wins::

    1. capabilities   help question             → canned text, none
    2. param_change   "увеличим бюджет до 3 млн" → patch + search
    3. district_only  "Марина" (params exist)    → merge district + search
    4. search_now     "давай" (params exist)     → search
    5. confirm        "да" (listing shown)       → confirm_interest
    6. next           "другую" / "не подходит"   → search excluding shown
    7. farewell       "спасибо"                  → end

``confirm`` must stay ahead of ``next``: a transcript matching both is a
confirmation. A negated confirm phrase ("не очень подходит") goes to
``next`` instead. A handler may return None to let the remaining rules run.
"""

from __future__ import annotations

import logging
import re
from typing import Callable, Optional

from concierge.models import Action, DialogueContext, SearchParams, TurnResult
from listings.store import ListingStore

from . import prompts
from .amounts import parse_amount
from .patterns import IntentPatterns

log = logging.getLogger("concierge.dialogue.resolver")

Predicate = Callable[[str, DialogueContext], bool]
Handler = Callable[[str, DialogueContext], Optional[TurnResult]]

_TRAILING_PUNCT = re.compile(r"[\s.,!?…;:]+$")


def normalize(text: str) -> str:
    """Lowercase, collapse whitespace, drop trailing punctuation."""
    text = " ".join(text.lower().split())
    return _TRAILING_PUNCT.sub("", text)


def _compile(patterns: list[str]) -> list[re.Pattern]:
    return [re.compile(p, re.IGNORECASE) for p in patterns]


class IntentResolver:
    def __init__(self, store: ListingStore, patterns: IntentPatterns | None = None) -> None:
        self._store = store
        self._patterns = patterns or IntentPatterns()
        p = self._patterns

        self._capabilities = _compile(p.capabilities)
        self._param_change = _compile(p.param_change)
        self._search_now = _compile(p.search_now)
        self._confirm = _compile(p.confirm)
        self._next = _compile(p.next)
        self._farewell = _compile(p.farewell)
        self._negation = _compile(p.negation)

        aliases = sorted(p.district_aliases, key=len, reverse=True)
        self._district_re = re.compile(
            r"(?<!\w)(" + "|".join(re.escape(a) for a in aliases) + r")(?!\w)",
            re.IGNORECASE,
        ) if aliases else None

        self.rules: list[tuple[str, Predicate, Handler]] = [
            ("capabilities", self._is_capabilities, self._answer_capabilities),
            ("param_change", self._is_param_change, self._change_params),
            ("district_only", self._is_district_only, self._search_with_district),
            ("search_now", self._is_search_now, self._search_with_district),
            ("confirm", self._is_confirm, self._confirm_last_shown),
            ("next", self._is_next, self._show_next),
            ("farewell", self._is_farewell, self._say_farewell),
        ]

    @property
    def patterns(self) -> IntentPatterns:
        return self._patterns

    def resolve(self, text: str, context: DialogueContext) -> Optional[TurnResult]:
        """Run the rules in order. None means the language model decides."""
        utterance = normalize(text)
        if not utterance:
            return None

        for name, matches, handle in self.rules:
            if not matches(utterance, context):
                continue
            result = handle(utterance, context)
            if result is None:
                log.debug("Rule %s matched but declined: %r", name, utterance)
                continue
            log.info("Local intent %s → %s", name, result.action.value)
            return result.model_copy(update={"rule": name})
        return None

    def detect_district(self, utterance: str) -> Optional[str]:
        """Canonical district for the first alias mentioned, if any."""
        if self._district_re is None:
            return None
        m = self._district_re.search(utterance)
        if not m:
            return None
        return self._patterns.district_aliases[m.group(1).lower()]

    # ── Predicates ─────────────────────────────────────────────

    def _is_capabilities(self, utterance: str, context: DialogueContext) -> bool:
        return _any(self._capabilities, utterance)

    def _is_param_change(self, utterance: str, context: DialogueContext) -> bool:
        return _any(self._param_change, utterance)

    def _is_district_only(self, utterance: str, context: DialogueContext) -> bool:
        return (
            not context.params.is_empty()
            and len(utterance.split()) <= self._patterns.district_only_max_tokens
            and self.detect_district(utterance) is not None
        )

    def _is_search_now(self, utterance: str, context: DialogueContext) -> bool:
        return not context.params.is_empty() and _any(self._search_now, utterance)

    def _confirm_stem(self, utterance: str) -> Optional[bool]:
        """Whether a confirm phrase is present and not negated; None if absent.

        A stem counts as negated when a negation starts before the end of
        the matched phrase, so "подходит, не сомневаюсь" still confirms.
        """
        spans = [m.end() for m in (p.search(utterance) for p in self._confirm) if m]
        if not spans:
            return None
        negations = [m.start() for m in (p.search(utterance) for p in self._negation) if m]
        if not negations:
            return True
        first = min(negations)
        return any(end <= first for end in spans)

    def _is_confirm(self, utterance: str, context: DialogueContext) -> bool:
        return context.last_shown is not None and self._confirm_stem(utterance) is True

    def _is_next(self, utterance: str, context: DialogueContext) -> bool:
        if _any(self._next, utterance):
            return True
        # "не очень подходит" turns a confirm phrase into a request for another.
        return context.last_shown is not None and self._confirm_stem(utterance) is False

    def _is_farewell(self, utterance: str, context: DialogueContext) -> bool:
        return _any(self._farewell, utterance)

    # ── Handlers ───────────────────────────────────────────────

    def _answer_capabilities(self, utterance: str, context: DialogueContext) -> TurnResult:
        return TurnResult(response=prompts.CAPABILITIES, action=Action.NONE)

    def _change_params(self, utterance: str, context: DialogueContext) -> TurnResult:
        amount = parse_amount(utterance)
        if amount is None:
            return TurnResult(response=prompts.ASK_BUDGET, action=Action.NONE)

        patch = {amount.field: amount.value}
        district = self.detect_district(utterance)
        if district:
            patch["district"] = district
        return self._search(context, SearchParams(**patch), Action.SEARCH, prompts.NO_MATCHES)

    def _search_with_district(self, utterance: str, context: DialogueContext) -> TurnResult:
        district = self.detect_district(utterance)
        patch = SearchParams(district=district) if district else SearchParams()
        return self._search(context, patch, Action.SEARCH, prompts.NO_MATCHES)

    def _confirm_last_shown(
        self, utterance: str, context: DialogueContext
    ) -> Optional[TurnResult]:
        listing = self._store.get(context.last_shown)
        if listing is None:
            return None
        return TurnResult(
            response=prompts.CONFIRMED,
            action=Action.CONFIRM_INTEREST,
            listing=listing,
        )

    def _show_next(self, utterance: str, context: DialogueContext) -> TurnResult:
        return self._search(context, SearchParams(), Action.NEXT, prompts.NO_MORE_MATCHES)

    def _say_farewell(self, utterance: str, context: DialogueContext) -> TurnResult:
        return TurnResult(response=prompts.FAREWELL, action=Action.END)

    def _search(
        self,
        context: DialogueContext,
        patch: SearchParams,
        action: Action,
        empty_text: str,
    ) -> TurnResult:
        """Search with the patch applied; downgrade to ``none`` when empty."""
        params = context.params.merged(patch)
        results = self._store.search(params, exclude_ids=context.shown_listings)
        if not results:
            return TurnResult(response=empty_text, params_update=patch, action=Action.NONE)
        listing = results[0]
        return TurnResult(
            response=prompts.offer_text(listing),
            params_update=patch,
            action=action,
            listing=listing,
        )


def _any(patterns: list[re.Pattern], utterance: str) -> bool:
    return any(p.search(utterance) for p in patterns)
