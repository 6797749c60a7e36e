"""
Tests for the voice backend HTTP client.
"""

import json

import httpx
import pytest

from conftest import wav
from synapvoice.clients.voice_backend_client import BackendUnavailable, VoiceBackendClient


def make_client(handler, config):
    return VoiceBackendClient(
        base_url="http://backend.test/",
        transport=httpx.MockTransport(handler),
        config=config
    )


class TestVoiceBackendClient:
    """Test cases for VoiceBackendClient."""

    def test_defaults_from_settings(self, config):
        client = VoiceBackendClient(config=config)

        assert client.base_url == "http://127.0.0.1:5001"
        assert client.timeout is None

    @pytest.mark.asyncio
    async def test_health(self, config):
        seen = []

        def handler(request):
            seen.append((request.method, request.url.path))
            return httpx.Response(200, json={"ready": True})

        client = make_client(handler, config)
        health = await client.health()
        await client.aclose()

        assert health.ready is True
        assert seen == [("GET", "/health")]

    @pytest.mark.asyncio
    async def test_enroll_posts_three_samples(self, config):
        captured = {}

        def handler(request):
            captured["path"] = request.url.path
            captured["body"] = request.read()
            return httpx.Response(200, json={"success": True, "message": "Voiceprint stored"})

        client = make_client(handler, config)
        result = await client.enroll("voice_owner", [wav(1200), wav(1300), wav(1400)])

        assert result.success is True
        assert result.message == "Voiceprint stored"
        assert captured["path"] == "/enroll"
        assert b'name="user_id"' in captured["body"]
        assert b"voice_owner" in captured["body"]
        assert captured["body"].count(b'name="samples"') == 3

    @pytest.mark.asyncio
    async def test_authenticate(self, config):
        def handler(request):
            body = request.read()
            assert b'name="audio"' in body
            assert b"voice_guest" in body
            return httpx.Response(200, json={"authenticated": True, "confidence": 0.87, "decision": "ACCEPT"})

        client = make_client(handler, config)
        result = await client.authenticate("voice_guest", wav())

        assert result.authenticated is True
        assert result.confidence == 0.87
        assert result.decision == "ACCEPT"

    @pytest.mark.asyncio
    async def test_start_challenge_sends_json(self, config):
        def handler(request):
            assert request.url.path == "/challenge/start"
            assert json.loads(request.content) == {"user_id": "voice_owner"}
            return httpx.Response(200, json={"success": True, "phrase": "Home sweet home", "session_id": "abc"})

        client = make_client(handler, config)
        issued = await client.start_challenge("voice_owner")

        assert issued.phrase == "Home sweet home"
        assert issued.session_id == "abc"

    @pytest.mark.asyncio
    async def test_verify_challenge(self, config):
        def handler(request):
            body = request.read()
            assert request.url.path == "/challenge/verify"
            assert b'name="session_id"' in body
            assert b'name="spoken_text"' in body
            assert b"home sweet home" in body
            return httpx.Response(200, json={"success": True, "speaker_match": True, "phrase_match": False})

        client = make_client(handler, config)
        verdict = await client.verify_challenge("abc", wav(), "home sweet home")

        assert verdict.speaker_match is True
        assert verdict.phrase_match is False

    class TestFailures:
        """Every failure surfaces as BackendUnavailable."""

        @pytest.mark.asyncio
        async def test_http_error_status(self, config):
            client = make_client(lambda request: httpx.Response(503, text="down"), config)

            with pytest.raises(BackendUnavailable, match="status 503"):
                await client.health()

        @pytest.mark.asyncio
        async def test_connection_error(self, config):
            def handler(request):
                raise httpx.ConnectError("connection refused", request=request)

            client = make_client(handler, config)

            with pytest.raises(BackendUnavailable):
                await client.authenticate("voice_owner", wav())

        @pytest.mark.asyncio
        async def test_timeout(self, config):
            def handler(request):
                raise httpx.ReadTimeout("too slow", request=request)

            client = make_client(handler, config)

            with pytest.raises(BackendUnavailable, match="timed out"):
                await client.start_challenge("voice_owner")

        @pytest.mark.asyncio
        async def test_non_json_body(self, config):
            client = make_client(lambda request: httpx.Response(200, text="<html>oops</html>"), config)

            with pytest.raises(BackendUnavailable, match="unreadable"):
                await client.health()

        @pytest.mark.asyncio
        async def test_malformed_payload(self, config):
            client = make_client(
                lambda request: httpx.Response(200, json={"authenticated": True, "confidence": 1.7}),
                config
            )

            with pytest.raises(BackendUnavailable, match="malformed"):
                await client.authenticate("voice_owner", wav())
