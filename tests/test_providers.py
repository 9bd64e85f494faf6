"""Tests for the HTTP-backed providers (ElevenLabs, Green API) and PDF markup."""

import json

import httpx
import pytest

import sys, os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from concierge.errors import (
    SynthesisBlockedError,
    SynthesisError,
    SynthesisTransportError,
)
from concierge.providers.elevenlabs import ElevenLabsSynthesizer, is_html_block_page
from concierge.providers.pdf import render_listing_html
from concierge.providers.whatsapp import GreenApiDelivery, to_chat_id
from listings.schema import Listing


def _client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


class TestElevenLabs:
    @pytest.mark.asyncio
    async def test_returns_audio(self):
        seen = {}

        def handler(request):
            seen["url"] = str(request.url)
            seen["key"] = request.headers["xi-api-key"]
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, content=b"ID3mp3", headers={"content-type": "audio/mpeg"})

        synth = ElevenLabsSynthesizer(api_key="k", voice_id="voice", client=_client(handler))
        assert await synth.synthesize("Привет") == b"ID3mp3"
        assert seen["url"].endswith("/text-to-speech/voice")
        assert seen["key"] == "k"
        assert seen["body"]["text"] == "Привет"

    @pytest.mark.asyncio
    async def test_html_page_is_blocked(self):
        def handler(request):
            return httpx.Response(
                403, text="<!DOCTYPE html><html>Access denied</html>",
                headers={"content-type": "text/html"},
            )

        synth = ElevenLabsSynthesizer(api_key="k", client=_client(handler))
        with pytest.raises(SynthesisBlockedError) as exc:
            await synth.synthesize("Привет")
        assert exc.value.kind == "blocked"
        assert exc.value.status_code == 403

    @pytest.mark.asyncio
    async def test_api_error(self):
        def handler(request):
            return httpx.Response(401, json={"detail": "invalid key"})

        synth = ElevenLabsSynthesizer(api_key="k", client=_client(handler))
        with pytest.raises(SynthesisError) as exc:
            await synth.synthesize("Привет")
        assert exc.value.kind == "api"

    @pytest.mark.asyncio
    async def test_transport_error(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        synth = ElevenLabsSynthesizer(api_key="k", client=_client(handler))
        with pytest.raises(SynthesisTransportError):
            await synth.synthesize("Привет")

    @pytest.mark.asyncio
    async def test_missing_key(self):
        with pytest.raises(SynthesisError):
            await ElevenLabsSynthesizer(api_key="").synthesize("Привет")

    def test_block_page_detection(self):
        assert is_html_block_page("text/html; charset=utf-8", "")
        assert is_html_block_page("application/json", "  <html><body>")
        assert not is_html_block_page("application/json", '{"detail": "x"}')


class TestGreenApi:
    def test_chat_id(self):
        assert to_chat_id("+7 (999) 123-45-67") == "79991234567@c.us"

    @pytest.mark.asyncio
    async def test_send_file(self):
        seen = {}

        def handler(request):
            seen["url"] = str(request.url)
            seen["auth"] = request.headers["authorization"]
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"idMessage": "ABC"})

        delivery = GreenApiDelivery("https://green.example/api", "tok", client=_client(handler))
        result = await delivery.send_file("+79991234567", "https://x/p.pdf", "Презентация")

        assert result.success is True
        assert result.message_id == "ABC"
        assert seen["url"] == "https://green.example/api/sendFileByUrl"
        assert seen["auth"] == "Bearer tok"
        assert seen["body"] == {
            "chatId": "79991234567@c.us",
            "urlFile": "https://x/p.pdf",
            "fileName": "presentation.pdf",
            "caption": "Презентация",
        }

    @pytest.mark.asyncio
    async def test_send_message(self):
        def handler(request):
            assert str(request.url).endswith("/sendMessage")
            return httpx.Response(200, json={"idMessage": "M1"})

        delivery = GreenApiDelivery("https://green.example/api", "tok", client=_client(handler))
        result = await delivery.send_message("79991234567", "hi")
        assert result.to_dict() == {"success": True}

    @pytest.mark.asyncio
    async def test_http_error_is_result_not_exception(self):
        def handler(request):
            return httpx.Response(500, text="oops")

        delivery = GreenApiDelivery("https://green.example/api", "tok", client=_client(handler))
        result = await delivery.send_file("79991234567", "https://x/p.pdf")
        assert result.success is False
        assert "500" in result.error

    @pytest.mark.asyncio
    async def test_missing_message_id(self):
        def handler(request):
            return httpx.Response(200, json={"status": "queued"})

        delivery = GreenApiDelivery("https://green.example/api", "tok", client=_client(handler))
        result = await delivery.send_file("79991234567", "https://x/p.pdf")
        assert result.to_dict() == {"success": False, "error": "Unexpected response from Green API"}

    @pytest.mark.asyncio
    async def test_not_configured(self):
        result = await GreenApiDelivery("", "").send_message("79991234567", "hi")
        assert result.success is False


class TestPresentationHtml:
    def test_escapes_listing_text(self):
        listing = Listing(
            id="x", name="<b>Loft</b>", district="JBR", area=50, floor=3,
            price=1_200_000, description="a & b", features=["pool"],
        )
        html = render_listing_html(listing)
        assert "&lt;b&gt;Loft&lt;/b&gt;" in html
        assert "a &amp; b" in html
        assert "<b>Loft</b>" not in html
