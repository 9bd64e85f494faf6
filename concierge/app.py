"""FastAPI application — HTTP + SSE endpoints for the voice concierge.

Endpoints:

  POST /session/start        Create a session, return greeting text + audio
  POST /chat/voice-stream    Audio in → SSE: audio frames, error frames, one done
  POST /chat/voice           Audio in → single JSON response (non-streaming)
  GET  /apartment/{id}       Full listing record
  POST /session/end          Tear down a session, return its analytics
  GET  /analytics            All session summaries
  POST /send-presentation    Render a listing PDF and send it over WhatsApp
  GET  /presentations/{file} Rendered PDFs (fetched by the delivery service)
  GET  /districts            Districts in the catalog
  GET  /health               Health check

The streaming turn:
  1. Transcribe the recording (failure → 502, nothing changes)
  2. Start deciding the turn; meanwhile speak a short filler phrase
  3. Apply the decision to the session's dialogue context
  4. Segment the reply and emit each phrase's audio as soon as it exists
  5. Emit one ``done`` event with the reply, action, listing and params
"""

from __future__ import annotations

# Load .env into os.environ before anything reads configuration.
from dotenv import load_dotenv
load_dotenv()

import asyncio
import base64
import json
import logging
import re
import secrets
import time
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Optional

# Configure root logger early so every concierge.* logger has a handler
# when run via `uvicorn concierge.app:app`.
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(name)-28s %(levelname)-7s %(message)s",
)

from fastapi import Depends, FastAPI, File, Form, Request, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse, JSONResponse, StreamingResponse
from pydantic import BaseModel, ConfigDict, Field

from concierge.analytics import AnalyticsRecorder
from concierge.config import runtime_settings, settings
from concierge.dialogue import DialoguePolicy, IntentPatterns, apply_turn, load_patterns
from concierge.dialogue.policy import apology
from concierge.errors import RenderError, TranscriptionError
from concierge.models import Action, DoneEvent, TurnResult
from concierge.providers.base import (
    CompletionClient,
    DocumentRenderer,
    MessageDelivery,
    SpeechSynthesizer,
    Transcriber,
)
from concierge.session import Session, SessionRegistry, redact_pii
from concierge.synthesis import AudioEvent, ErrorEvent, SynthesisCoordinator, format_sse
from listings.store import ListingStore

log = logging.getLogger("concierge.app")

_START_TIME = time.time()
_PDF_NAME = re.compile(r"^[A-Za-z0-9_-]{1,80}\.pdf$")


class EndSessionRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    session_id: str = Field(default="", alias="sessionId")


class PresentationRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    apartment_id: str = Field(default="", alias="apartmentId")
    phone_number: str = Field(default="", alias="phoneNumber")


def get_registry(request: Request) -> SessionRegistry:
    return request.app.state.registry


def landing_url_for(result: TurnResult) -> Optional[str]:
    """Landing page path, produced only for a confirmed listing."""
    if result.action == Action.CONFIRM_INTEREST and result.listing is not None:
        return f"/apartment/{result.listing.id}"
    return None


def create_app(
    *,
    store: ListingStore | None = None,
    transcriber: Transcriber | None = None,
    completion: CompletionClient | None = None,
    synthesizer: SpeechSynthesizer | None = None,
    renderer: DocumentRenderer | None = None,
    delivery: MessageDelivery | None = None,
    patterns: IntentPatterns | None = None,
    analytics: AnalyticsRecorder | None = None,
    presentations_dir: Path | str | None = None,
    run_sweeper: bool = True,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Every collaborator can be injected; anything left out is built from
    settings (OpenAI, ElevenLabs, Playwright, Green API).
    """
    for warning in settings.validate_startup():
        log.warning(warning)

    store = store or ListingStore.from_json(settings.listings_path or None)
    patterns = patterns or load_patterns(settings.intent_patterns_path or None)

    if transcriber is None or completion is None:
        from concierge.providers.openai_provider import (
            OpenAICompletionClient,
            OpenAITranscriber,
        )
        transcriber = transcriber or OpenAITranscriber()
        completion = completion or OpenAICompletionClient()
    if synthesizer is None:
        from concierge.providers.elevenlabs import ElevenLabsSynthesizer
        synthesizer = ElevenLabsSynthesizer()
    if renderer is None:
        from concierge.providers.pdf import PlaywrightPdfRenderer
        renderer = PlaywrightPdfRenderer()
    if delivery is None:
        from concierge.providers.whatsapp import GreenApiDelivery
        delivery = GreenApiDelivery()

    analytics = analytics or AnalyticsRecorder()
    registry = SessionRegistry(on_end=lambda s: analytics.end_session(s.id))
    policy = DialoguePolicy(store, completion, patterns)
    coordinator = SynthesisCoordinator(synthesizer)
    presentations_dir = Path(presentations_dir or settings.presentations_dir)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        sweeper = asyncio.create_task(registry.run_sweeper()) if run_sweeper else None
        log.info("Concierge ready: %d listings, %d districts", len(store), len(store.districts()))
        try:
            yield
        finally:
            if sweeper is not None:
                sweeper.cancel()
            for session in registry.all():
                registry.end(session.id)

    app = FastAPI(
        title="Voice Apartment Concierge",
        description="Voice-driven apartment search with streaming speech replies",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.registry = registry
    app.state.analytics = analytics
    app.state.store = store
    app.state.policy = policy

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # ── Health check ───────────────────────────────────────────

    @app.get("/health")
    async def health() -> JSONResponse:
        """Lightweight health check — confirms the event loop is responsive."""
        uptime = round(time.time() - _START_TIME, 1)
        return JSONResponse({"status": "ok", "uptime": uptime, "sessions": len(registry)})

    # ── Sessions ───────────────────────────────────────────────

    @app.post("/session/start")
    async def session_start(registry: SessionRegistry = Depends(get_registry)) -> JSONResponse:
        session = registry.create()
        greeting = policy.greeting()

        event = await coordinator.synthesize_phrase(0, greeting)
        if isinstance(event, ErrorEvent):
            registry.end(session.id)
            return JSONResponse(
                {"error": "Failed to synthesize greeting", "kind": event.kind},
                status_code=502,
            )

        session.context.add_message("assistant", greeting)
        registry.activate(session.id)
        analytics.start_session(session.id, session.created_at)
        return JSONResponse({
            "sessionId": session.id,
            "greeting": greeting,
            "audio": base64.b64encode(event.audio).decode("ascii"),
        })

    @app.post("/session/end")
    async def session_end(
        body: EndSessionRequest, registry: SessionRegistry = Depends(get_registry)
    ) -> JSONResponse:
        registry.end(body.session_id)
        record = analytics.end_session(body.session_id)
        return JSONResponse({
            "success": True,
            "analytics": record.model_dump(mode="json", by_alias=True) if record else None,
        })

    @app.get("/analytics")
    async def get_analytics() -> JSONResponse:
        return JSONResponse([a.model_dump(mode="json", by_alias=True) for a in analytics.all()])

    # ── Voice turns ────────────────────────────────────────────

    async def _begin_turn(
        session_id: Optional[str], audio: Optional[UploadFile]
    ) -> tuple[Optional[Session], Optional[str], Optional[JSONResponse]]:
        """Validate, lock the session and transcribe.

        On success the caller owns ``session.turn_lock`` and must release it.
        """
        session = registry.get(session_id) if session_id else None
        if session is None:
            return None, None, JSONResponse({"error": "Session not found"}, status_code=400)
        if audio is None:
            return None, None, JSONResponse({"error": "No audio file provided"}, status_code=400)
        if session.turn_in_progress:
            return None, None, JSONResponse(
                {"error": "A turn is already in progress for this session"}, status_code=409
            )

        await session.turn_lock.acquire()
        session.touch()
        try:
            data = await audio.read()
            if not data:
                session.turn_lock.release()
                return None, None, JSONResponse({"error": "Empty audio file"}, status_code=400)
            user_text = await transcriber.transcribe(data, audio.filename or f"{session.id}.webm")
        except TranscriptionError as e:
            session.turn_lock.release()
            log.error("Transcription failed for %s: %s", session.id, e)
            return None, None, JSONResponse({"error": "Transcription failed"}, status_code=502)
        except BaseException:
            session.turn_lock.release()
            raise

        log.info("[%s] User said: %r", session.id, user_text)
        return session, user_text, None

    def _finish_turn(session: Session, result: TurnResult, user_text: str) -> DoneEvent:
        apply_turn(session.context, result, user_text)
        landing_url = landing_url_for(result)
        if landing_url and result.listing is not None:
            analytics.mark_landing_generated(session.id, result.listing.id)
        analytics.update(session.context)
        return DoneEvent(
            response=result.response,
            action=result.action,
            apartment=result.listing,
            landing_url=landing_url,
            params=session.context.params,
        )

    async def _turn_events(session: Session, user_text: str):
        try:
            decision = asyncio.ensure_future(
                policy.stream_decide(user_text, session.context)
                if user_text.strip() else _as_result(apology())
            )
            index = 0
            try:
                if runtime_settings.get("ack_enabled", True):
                    ack = await coordinator.acknowledge(policy.acknowledgement())
                    if ack is not None and not session.cancel.is_set():
                        yield ack.to_sse()
                        index = 1
                result = await decision
            finally:
                if not decision.done():
                    decision.cancel()

            done = _finish_turn(session, result, user_text)
            log.info("[%s] %s via %s: %r", session.id, result.action.value, result.rule,
                     result.response[:80])

            async for event in coordinator.stream(
                result.response, cancel=session.cancel, start_index=index
            ):
                yield event.to_sse()

            yield format_sse("done", json.dumps(done.to_wire(), ensure_ascii=False))
        finally:
            session.touch()
            if session.turn_lock.locked():
                session.turn_lock.release()

    @app.post("/chat/voice-stream")
    async def chat_voice_stream(
        audio: Optional[UploadFile] = File(None),
        session_id: Optional[str] = Form(None, alias="sessionId"),
    ):
        session, user_text, error = await _begin_turn(session_id, audio)
        if error is not None:
            return error
        return StreamingResponse(
            _turn_events(session, user_text),
            media_type="text/event-stream",
            headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
        )

    @app.post("/chat/voice")
    async def chat_voice(
        audio: Optional[UploadFile] = File(None),
        session_id: Optional[str] = Form(None, alias="sessionId"),
    ) -> JSONResponse:
        session, user_text, error = await _begin_turn(session_id, audio)
        if error is not None:
            return error
        try:
            if user_text.strip():
                result = await policy.decide(user_text, session.context)
            else:
                result = apology()
            done = _finish_turn(session, result, user_text)
            event = await coordinator.synthesize_phrase(0, result.response)
        finally:
            session.touch()
            session.turn_lock.release()

        body = {"userText": user_text, **done.to_wire(), "audio": None}
        if isinstance(event, AudioEvent):
            body["audio"] = base64.b64encode(event.audio).decode("ascii")
        else:
            body["error"] = event.to_dict()
        return JSONResponse(body)

    # ── Catalog ────────────────────────────────────────────────

    @app.get("/apartment/{apartment_id}")
    async def get_apartment(apartment_id: str) -> JSONResponse:
        listing = store.get(apartment_id)
        if listing is None:
            return JSONResponse({"error": "Apartment not found"}, status_code=404)
        return JSONResponse(listing.model_dump(mode="json"))

    @app.get("/districts")
    async def list_districts() -> JSONResponse:
        return JSONResponse([
            {"district": d, **(store.district_stats(d) or {})} for d in store.districts()
        ])

    # ── Presentations ──────────────────────────────────────────

    @app.post("/send-presentation")
    async def send_presentation(body: PresentationRequest) -> JSONResponse:
        if not body.apartment_id or not body.phone_number:
            return JSONResponse(
                {"success": False, "error": "apartmentId and phoneNumber are required"},
                status_code=400,
            )
        listing = store.get(body.apartment_id)
        if listing is None:
            return JSONResponse({"success": False, "error": "Apartment not found"}, status_code=404)

        log.info("Presentation for %s requested by %s", listing.id, redact_pii(body.phone_number))
        try:
            pdf = await renderer.render(listing)
        except RenderError as e:
            return JSONResponse({"success": False, "error": str(e)})

        presentations_dir.mkdir(parents=True, exist_ok=True)
        filename = f"{listing.id}-{secrets.token_hex(4)}.pdf"
        (presentations_dir / filename).write_bytes(pdf)

        file_url = f"{settings.public_base_url.rstrip('/')}/presentations/{filename}"
        caption = f"Презентация квартиры: {listing.name or listing.district}"
        result = await delivery.send_file(body.phone_number, file_url, caption)
        return JSONResponse(result.to_dict())

    @app.get("/presentations/{filename}")
    async def get_presentation(filename: str):
        path = presentations_dir / filename
        if not _PDF_NAME.match(filename) or not path.is_file():
            return JSONResponse({"error": "Presentation not found"}, status_code=404)
        return FileResponse(path, media_type="application/pdf", filename=filename)

    return app


async def _as_result(result: TurnResult) -> TurnResult:
    return result


# ── Module-level app instance for uvicorn ──────────────────────

app = create_app()


def main() -> None:
    import uvicorn

    log_config = uvicorn.config.LOGGING_CONFIG
    log_config["formatters"]["default"]["fmt"] = (
        "%(asctime)s %(name)-12s %(levelname)-8s %(message)s"
    )

    uvicorn.run(
        "concierge.app:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        log_config=log_config,
    )


if __name__ == "__main__":
    main()
