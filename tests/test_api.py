"""
Tests for the controller HTTP API.
"""

import base64
from unittest.mock import AsyncMock, Mock, patch

import pytest
from fastapi.testclient import TestClient

from conftest import FakeRecorder
from synapvoice.clients.state_store import MemoryStore, StateStoreError
from synapvoice.main import app
from synapvoice.models.api_models import (
    AuthenticateResult,
    BackendHealth,
    ChallengeIssued,
    ChallengeVerdict,
    EnrollResult
)
from synapvoice.services.controller import VoiceController
from synapvoice.utils.audio_utils import pcm_to_wav


class FailingStore(MemoryStore):

    def set(self, key, value):
        raise StateStoreError("disk full")


@pytest.fixture
def mock_backend():
    backend = Mock()
    backend.base_url = "http://backend.test"
    backend.health = AsyncMock(return_value=BackendHealth(ready=True))
    backend.enroll = AsyncMock(return_value=EnrollResult(success=True))
    backend.start_challenge = AsyncMock(return_value=ChallengeIssued(
        success=True, phrase="SynapSense keeps me safe", session_id="ch-7"
    ))
    backend.verify_challenge = AsyncMock(return_value=ChallengeVerdict(
        success=True, speaker_match=True, phrase_match=True
    ))
    backend.aclose = AsyncMock()
    return backend


@pytest.fixture
def controller(registry, mock_backend, synthesizer, router, clock, config):
    return VoiceController(
        registry=registry,
        backend=mock_backend,
        recorder=FakeRecorder(),
        synthesizer=synthesizer,
        router=router,
        clock=clock,
        config=config
    )


@pytest.fixture
def client(controller):
    with patch("synapvoice.main.build_controller", return_value=controller):
        with TestClient(app) as test_client:
            yield test_client


class TestControllerAPI:
    """Test cases for the /api/v1 endpoints."""

    def test_liveness(self, client):
        response = client.get("/healthz")

        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    def test_startup_probes_backend(self, client, mock_backend):
        response = client.get("/api/v1/session")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "idle"
        assert body["backend_ready"] is True
        assert body["verified"] is False
        mock_backend.health.assert_awaited()

    def test_shutdown_closes_backend(self, controller, mock_backend):
        with patch("synapvoice.main.build_controller", return_value=controller):
            with TestClient(app):
                pass

        mock_backend.aclose.assert_awaited_once()

    def test_session_responses_are_not_cached(self, client):
        response = client.get("/api/v1/session", headers={"X-Call-ID": "poll-1"})

        assert response.headers["Cache-Control"] == "no-store"
        assert response.headers["X-Call-ID"] == "poll-1"

    def test_request_log_records_session_transition(self, client):
        with patch("synapvoice.middleware.logger") as mock_logger:
            client.post("/api/v1/commands", json={"transcript": "go home"})

        handled = [c.kwargs for c in mock_logger.info.call_args_list if c.args == ("Request handled",)]
        assert len(handled) == 1
        assert handled[0]["path"] == "/api/v1/commands"
        assert handled[0]["session_before"]["status"] == "idle"
        assert handled[0]["session_after"]["status"] == "locked"
        assert handled[0]["session_after"]["verified"] is False

    def test_session_polling_is_not_logged(self, client):
        with patch("synapvoice.middleware.logger") as mock_logger:
            client.get("/api/v1/session")

        mock_logger.info.assert_not_called()

    def test_health_reports_components(self, client):
        body = client.get("/api/v1/health").json()

        assert body["status"] == "healthy"
        assert body["components"]["voice_backend"]["status"] == "healthy"
        assert body["components"]["registry"]["details"]["profiles"] == 1

    class TestCommands:

        def test_locked_navigation(self, client, router):
            response = client.post("/api/v1/commands", json={"transcript": "go home"}, headers={"X-Call-ID": "call-1"})

            assert response.status_code == 200
            assert response.headers["X-Call-ID"] == "call-1"
            body = response.json()
            assert body["status"] == "locked"
            assert body["utterances"] == ["Please say unlock to authenticate."]
            assert router.history == []

        def test_verified_navigation_returns_route(self, client, controller):
            controller.session.bind_user("owner")

            body = client.post("/api/v1/commands", json={"transcript": "open settings"}).json()

            assert body["status"] == "success"
            assert body["message"] == "→ SETTINGS"
            assert body["route"] == "/settings"

        def test_audio_is_forwarded(self, client, controller, registry, mock_backend):
            controller.session.bind_user("owner")
            registry.mark_enrolled("owner")
            mock_backend.authenticate = AsyncMock(return_value=AuthenticateResult(
                authenticated=True, confidence=0.8, decision="ACCEPT"
            ))
            audio = base64.b64encode(pcm_to_wav(b'\x00\x01' * 1000)).decode()

            body = client.post("/api/v1/commands", json={"transcript": "go home", "audio": audio}).json()

            profile_id, sample = mock_backend.authenticate.await_args.args
            assert profile_id == "voice_owner"
            assert sample.size == 2044
            assert body["route"] == "/"

        def test_blank_transcript_rejected(self, client):
            response = client.post("/api/v1/commands", json={"transcript": "   "})

            assert response.status_code == 422

        def test_bad_audio_rejected(self, client):
            response = client.post("/api/v1/commands", json={"transcript": "go home", "audio": "%%%"})

            assert response.status_code == 422
            assert response.json()["detail"]["error"] == "AudioProcessingError"

        def test_enroll_without_pin_requests_one(self, client):
            body = client.post("/api/v1/commands", json={"transcript": "enroll my voice"}).json()

            assert body["status"] == "pin_required"
            assert body["message"] == "CREATE PIN"

        def test_enroll_runs_in_background(self, client, registry, mock_backend):
            response = client.post("/api/v1/commands", json={
                "transcript": "enroll guest", "pin": "1234", "confirm_pin": "1234"
            })

            assert response.status_code == 200
            mock_backend.enroll.assert_awaited_once()
            profiles = client.get("/api/v1/profiles").json()
            assert profiles["profiles"] == ["owner", "guest"]
            assert profiles["enrolled"] == ["guest"]

        def test_enroll_wrong_pin(self, client, registry, mock_backend):
            registry.set_pin("1234")

            response = client.post("/api/v1/commands", json={"transcript": "enroll guest", "pin": "9999"})

            assert response.status_code == 403
            detail = response.json()["detail"]
            assert detail["error"] == "CredentialError"
            assert detail["message"] == "INVALID PIN"
            assert set(detail) == {"error", "message", "correlation_id", "timestamp"}
            mock_backend.enroll.assert_not_awaited()

        def test_unlock_runs_challenge(self, client, registry):
            registry.mark_enrolled("owner")

            client.post("/api/v1/commands", json={"transcript": "unlock"})
            body = client.get("/api/v1/session").json()

            assert body["verified"] is True
            assert body["current_user"] == "owner"
            assert body["status"] == "verified"

    class TestActions:

        def test_enroll_malformed_pin(self, client):
            response = client.post("/api/v1/enroll", json={"pin": "12", "confirm_pin": "12"})

            assert response.status_code == 422
            assert response.json()["detail"]["message"] == "4 DIGITS REQUIRED"

        def test_enroll_default_profile(self, client, registry):
            response = client.post("/api/v1/enroll", json={"pin": "1234", "confirm_pin": "1234"})

            assert response.status_code == 200
            assert registry.list_enrolled() == ["owner"]

        def test_enroll_while_offline(self, client, controller, mock_backend):
            controller.session.backend_ready = False

            body = client.post("/api/v1/enroll", json={"pin": "1234", "confirm_pin": "1234"}).json()

            assert body["message"] == "OFFLINE"
            mock_backend.enroll.assert_not_awaited()

        def test_verify(self, client, registry):
            registry.mark_enrolled("owner")

            client.post("/api/v1/verify")

            assert client.get("/api/v1/session").json()["verified"] is True

        def test_busy_controller_refuses(self, client, controller):
            controller._verifying = True

            for path in ("/api/v1/listen", "/api/v1/verify"):
                response = client.post(path)
                assert response.status_code == 409
                assert response.json()["detail"]["error"] == "ControllerBusy"

        def test_listen(self, client, controller):
            response = client.post("/api/v1/listen")

            assert response.status_code == 200
            # No recognizer: silence, back to idle
            assert client.get("/api/v1/session").json()["status"] == "idle"

        def test_sign_out(self, client, controller):
            controller.session.bind_user("owner")

            body = client.post("/api/v1/sign-out").json()

            assert body["verified"] is False
            assert body["current_user"] is None

        def test_reset(self, client, registry):
            registry.set_pin("1234")
            registry.add_profile("guest")

            body = client.post("/api/v1/reset").json()

            assert body["message"] == "SYSTEM RESET"
            assert registry.list_profiles() == ["owner"]
            assert not registry.has_pin()

    class TestProfiles:

        def test_list(self, client):
            body = client.get("/api/v1/profiles").json()

            assert body == {"profiles": ["owner"], "enrolled": [], "default": "owner"}

        def test_add_requires_pin(self, client, registry):
            registry.set_pin("1234")

            response = client.post("/api/v1/profiles", json={"name": "guest", "pin": "0000"})
            assert response.status_code == 403

            response = client.post("/api/v1/profiles", json={"name": "guest", "pin": "1234"})
            assert response.status_code == 200
            assert response.json()["profiles"] == ["owner", "guest"]

        def test_remove(self, client, registry):
            registry.add_profile("guest")

            assert client.delete("/api/v1/profiles/owner").status_code == 422
            assert client.delete("/api/v1/profiles/nobody").status_code == 404

            response = client.delete("/api/v1/profiles/guest")
            assert response.status_code == 200
            assert response.json()["profiles"] == ["owner"]

        def test_store_failure_is_service_unavailable(self, client, registry):
            registry.set_pin("1234")
            registry.store = FailingStore()

            response = client.post("/api/v1/profiles", json={"name": "guest", "pin": "1234"})

            assert response.status_code == 503
            assert response.json()["detail"]["error"] == "StateStoreError"

        def test_enroll_store_failure(self, client, controller, registry):
            registry.set_pin("1234")
            registry.store = FailingStore()

            response = client.post("/api/v1/enroll", json={"profile": "guest", "pin": "1234"})

            assert response.status_code == 503
            assert controller.session.status.value == "error"
