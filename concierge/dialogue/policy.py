"""Dialogue policy — local rules first, structured LLM completion otherwise.

The completion is untrusted input. It is parsed strictly, then by pulling
the first balanced ``{...}`` out of surrounding text, and if both fail the
turn becomes a generic apology. Nothing here raises into the turn.
"""

from __future__ import annotations

import asyncio
import json
import logging
import random
from typing import Any, Optional

from pydantic import BaseModel, Field, ValidationError, field_validator

from concierge.config import runtime_settings, settings
from concierge.errors import CompletionError
from concierge.models import Action, DialogueContext, SearchParams, TurnResult
from concierge.providers.base import CompletionClient
from listings.store import ListingStore

from . import prompts
from .patterns import IntentPatterns
from .resolver import IntentResolver

log = logging.getLogger("concierge.dialogue.policy")


class CompletionPayload(BaseModel):
    """The JSON shape the model is asked to return."""

    response: str = ""
    params_update: SearchParams = Field(default_factory=SearchParams)
    action: Action = Action.NONE

    @field_validator("params_update", mode="before")
    @classmethod
    def _null_patch(cls, value: Any) -> Any:
        return value if value is not None else {}


def extract_json_object(text: str) -> Optional[dict]:
    """First balanced ``{...}`` in the text that parses as a JSON object.

    Braces inside string literals are ignored while scanning.
    """
    start = text.find("{")
    while start != -1:
        depth = 0
        in_string = False
        escaped = False
        for i in range(start, len(text)):
            ch = text[i]
            if in_string:
                if escaped:
                    escaped = False
                elif ch == "\\":
                    escaped = True
                elif ch == '"':
                    in_string = False
                continue
            if ch == '"':
                in_string = True
            elif ch == "{":
                depth += 1
            elif ch == "}":
                depth -= 1
                if depth == 0:
                    try:
                        obj = json.loads(text[start:i + 1])
                    except ValueError:
                        break
                    if isinstance(obj, dict):
                        return obj
                    break
        start = text.find("{", start + 1)
    return None


def _validate(obj: Any) -> Optional[CompletionPayload]:
    if not isinstance(obj, dict):
        return None
    try:
        return CompletionPayload.model_validate(obj)
    except ValidationError as e:
        log.warning("Completion failed validation: %s", e.errors()[:3])
        return None


def parse_completion(raw: Optional[str]) -> Optional[CompletionPayload]:
    """Parse a completion. None means nothing usable was found."""
    if not raw:
        return None
    try:
        payload = _validate(json.loads(raw))
    except ValueError:
        payload = None
    if payload is not None:
        return payload

    log.warning("Completion is not clean JSON, trying extraction: %r", raw[:200])
    return _validate(extract_json_object(raw))


def apology() -> TurnResult:
    return TurnResult(response=prompts.APOLOGY, action=Action.NONE, rule="fallback")


def apply_turn(
    context: DialogueContext, result: TurnResult, user_text: str | None = None
) -> None:
    """Fold one decided turn into the session's dialogue context."""
    context.params = context.params.merged(result.params_update)
    if result.listing is not None:
        if result.action in (Action.SEARCH, Action.NEXT):
            context.mark_shown(result.listing.id)
        elif result.action == Action.CONFIRM_INTEREST:
            context.selected_listing = result.listing.id
    if user_text:
        context.add_message("user", user_text)
    context.add_message("assistant", result.response)


class DialoguePolicy:
    """Decides what to say and do for one caller utterance.

    ``decide`` and ``stream_decide`` only read the context; the caller
    applies the returned TurnResult with :func:`apply_turn`.
    """

    def __init__(
        self,
        store: ListingStore,
        completion: CompletionClient,
        patterns: IntentPatterns | None = None,
        history_window: int | None = None,
        timeout: float | None = None,
    ) -> None:
        self._store = store
        self._completion = completion
        self._resolver = IntentResolver(store, patterns)
        self._history_window = (
            history_window if history_window is not None else settings.history_window
        )
        self._timeout = timeout if timeout is not None else settings.llm_timeout

    @property
    def resolver(self) -> IntentResolver:
        return self._resolver

    def greeting(self) -> str:
        return prompts.GREETING

    def acknowledgement(self, rng: random.Random | None = None) -> str:
        """A random filler phrase to speak while the turn is being decided."""
        return (rng or random).choice(runtime_settings["ack_phrases"])

    def build_messages(self, text: str, context: DialogueContext) -> list[dict[str, str]]:
        candidates = self._store.search(context.params, exclude_ids=context.shown_listings)
        system = prompts.build_system_prompt(self._store.districts())
        system += prompts.build_context_block(context, candidates)

        messages = [{"role": "system", "content": system}]
        for msg in context.recent_history(self._history_window):
            if msg.role != "system":
                messages.append({"role": msg.role, "content": msg.content})
        messages.append({"role": "user", "content": text})
        return messages

    async def decide(self, text: str, context: DialogueContext) -> TurnResult:
        local = self._resolver.resolve(text, context)
        if local is not None:
            return local

        raw = await self._complete(self.build_messages(text, context))
        return self.apply_completion(parse_completion(raw), context)

    async def stream_decide(self, text: str, context: DialogueContext) -> TurnResult:
        """Like :meth:`decide` but collects the completion from a token stream.

        Tokens are not speakable on their own: the action and parameters
        must be known first. A broken stream falls back to one
        non-streaming call.
        """
        local = self._resolver.resolve(text, context)
        if local is not None:
            return local

        messages = self.build_messages(text, context)
        try:
            raw = await asyncio.wait_for(self._collect(messages), timeout=self._timeout)
        except (CompletionError, asyncio.TimeoutError) as e:
            log.warning("Completion stream failed (%s), falling back", str(e) or type(e).__name__)
            raw = await self._complete(messages)
        return self.apply_completion(parse_completion(raw), context)

    async def _collect(self, messages: list[dict[str, str]]) -> str:
        buffer: list[str] = []
        async for token in self._completion.stream(messages):
            buffer.append(token)
        return "".join(buffer)

    async def _complete(self, messages: list[dict[str, str]]) -> Optional[str]:
        try:
            return await asyncio.wait_for(
                self._completion.complete(messages), timeout=self._timeout
            )
        except (CompletionError, asyncio.TimeoutError) as e:
            log.error("Completion failed: %s", str(e) or type(e).__name__)
            return None

    def apply_completion(
        self, payload: Optional[CompletionPayload], context: DialogueContext
    ) -> TurnResult:
        """Turn a parsed completion into a TurnResult against the catalog."""
        if payload is None:
            return apology()

        patch = payload.params_update
        action = payload.action
        log.info("LLM action %s, patch %s", action.value, patch.set_fields())

        if action in (Action.SEARCH, Action.NEXT):
            results = self._store.search(
                context.params.merged(patch), exclude_ids=context.shown_listings
            )
            if not results:
                return TurnResult(
                    response=prompts.NO_MORE_MATCHES, params_update=patch, action=Action.NONE
                )
            return TurnResult(
                response=prompts.offer_text(results[0]),
                params_update=patch,
                action=action,
                listing=results[0],
            )

        if action == Action.CONFIRM_INTEREST:
            listing = self._store.get(context.last_shown) if context.last_shown else None
            if listing is None:
                results = self._store.search(
                    context.params.merged(patch), exclude_ids=context.shown_listings
                )
                listing = results[0] if results else None
            if listing is None:
                return TurnResult(
                    response=prompts.NOTHING_TO_CONFIRM, params_update=patch, action=Action.NONE
                )
            return TurnResult(
                response=prompts.CONFIRMED,
                params_update=patch,
                action=Action.CONFIRM_INTEREST,
                listing=listing,
            )

        return TurnResult(
            response=payload.response.strip() or prompts.APOLOGY,
            params_update=patch,
            action=action,
        )
