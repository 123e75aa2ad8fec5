"""
End-to-End Tests: Backend API

Tests the FastAPI adapter routes and the web client collaborators that
bridge the controller to a polling browser client.
"""

import pytest
import sys
import os
import asyncio
import base64
import logging

# Add project root and backend to path
project_root = os.path.abspath(os.path.join(os.path.dirname(__file__), "../.."))
sys.path.insert(0, os.path.join(project_root, "shadowing_tutor", "src"))
sys.path.insert(0, os.path.join(project_root, "backend"))

from fastapi.testclient import TestClient

import main
from lib.web_collaborators import ClientMicrophoneGate, ClientPlaybackSpeaker, ClientUploadRecorder, EventFeed
from shadowing_tutor.collaborators import SpeakOutcome


@pytest.fixture
def client(monkeypatch):
    """Fresh singletons with no OpenAI or Supabase credentials."""
    for name in ("OPENAI_API_KEY", "SUPABASE_URL", "SUPABASE_SERVICE_KEY", "TUTOR_PROGRESS_FILE"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setattr(main, "_feed", None)
    monkeypatch.setattr(main, "_controller", None)
    monkeypatch.setattr(main, "_speaker", None)
    monkeypatch.setattr(main, "_recorder", None)
    monkeypatch.setattr(main, "_microphone", None)
    return TestClient(main.app)


class TestRoutes:

    def test_health(self, client):
        response = client.get("/")
        assert response.status_code == 200
        assert response.json()["status"] == "ok"

    def test_state(self, client):
        data = client.get("/api/session/state").json()
        assert data["running"] is False
        assert data["remaining"] == 0
        assert data["target_phrase"] is None

    def test_reset_bumps_version_and_publishes(self, client):
        before = client.get("/api/session/state").json()["session_version"]

        data = client.post("/api/session/reset").json()

        assert data["session_version"] == before + 1
        assert data["state"] == "home"
        events = client.get("/api/session/events", params={"after": 0}).json()["events"]
        ended = [e for e in events if e["kind"] == "session_ended"]
        assert ended[-1]["data"]["reason"] == "client_reset"
        assert any(e["kind"] == "stop_playback" for e in events)

    def test_events_after_cursor(self, client):
        client.post("/api/session/reset")
        feed = client.get("/api/session/events").json()
        last = feed["last_sequence"]

        assert client.get("/api/session/events", params={"after": last}).json()["events"] == []

    def test_playback_complete_stale_request(self, client):
        response = client.post("/api/session/playback-complete", json={"request_id": 42})
        assert response.status_code == 200
        assert response.json()["accepted"] is False

    def test_playback_complete_unknown_outcome(self, client):
        response = client.post("/api/session/playback-complete", json={"request_id": 1, "outcome": "exploded"})
        assert response.status_code == 400

    def test_recording_bad_base64(self, client):
        response = client.post("/api/session/recording", json={"request_id": 1, "audio_base64": "not base64!"})
        assert response.status_code == 400

    def test_rejected_upload_is_logged(self, client, caplog):
        with caplog.at_level(logging.WARNING, logger="backend.main"):
            client.post("/api/session/recording", json={"request_id": 5, "audio_base64": "%%%"})
        assert any("Rejected recording upload" in record.getMessage() for record in caplog.records)

    def test_recording_without_pending_request(self, client):
        audio = base64.b64encode(b"RIFF").decode("ascii")
        response = client.post("/api/session/recording", json={"request_id": 1, "audio_base64": audio})
        assert response.json()["accepted"] is False

    def test_recording_error_without_pending_request(self, client):
        response = client.post("/api/session/recording-error", json={"request_id": 3})
        assert response.json()["accepted"] is False

    def test_stop_recording_when_idle(self, client):
        assert client.post("/api/session/stop-recording").json() == {"status": "ok"}

    def test_microphone_update(self, client):
        response = client.post("/api/microphone", json={"granted": True, "devices": 2})
        assert response.json() == {"granted": True, "devices": 2}
        assert main._microphone.has_permission()
        assert main._microphone.device_count() == 2


class TestEventFeed:

    def test_sequence_and_bound(self):
        feed = EventFeed(max_events=2)
        feed.publish("a")
        feed.publish("b", {"x": 1})
        feed.publish("c")

        events = feed.since(0)
        assert [e["kind"] for e in events] == ["b", "c"]
        assert feed.last_sequence == 3
        assert feed.since(2)[0]["kind"] == "c"


class TestClientPlaybackSpeaker:

    @pytest.mark.asyncio
    async def test_complete_resolves_speak(self):
        feed = EventFeed()
        speaker = ClientPlaybackSpeaker(feed)

        task = asyncio.create_task(speaker.speak("안녕하세요"))
        await asyncio.sleep(0)
        command = feed.since(0)[-1]
        assert command["kind"] == "speak"
        assert command["data"]["text"] == "안녕하세요"

        assert speaker.complete(command["data"]["request_id"])
        assert await task == SpeakOutcome.COMPLETED
        assert not speaker.complete(command["data"]["request_id"])

    @pytest.mark.asyncio
    async def test_force_stop(self):
        feed = EventFeed()
        speaker = ClientPlaybackSpeaker(feed)

        task = asyncio.create_task(speaker.speak("감사합니다"))
        await asyncio.sleep(0)
        speaker.force_stop()

        assert await task == SpeakOutcome.PLAYBACK_ERROR
        assert feed.since(0)[-1]["kind"] == "stop_playback"

    @pytest.mark.asyncio
    async def test_synthesis_failure_shows_subtitle(self):
        class FailingSynthesizer:
            available = True

            async def synthesize(self, text):
                return None

        feed = EventFeed()
        speaker = ClientPlaybackSpeaker(feed, synthesizer=FailingSynthesizer())

        assert await speaker.speak("죄송합니다") == SpeakOutcome.NETWORK_ERROR
        assert feed.since(0)[-1]["kind"] == "subtitle"


class TestClientUploadRecorder:

    def test_deliver_audio(self):
        feed = EventFeed()
        recorder = ClientUploadRecorder(feed)
        received = []

        assert recorder.start_recording(received.append, received.append)
        assert recorder.is_recording
        assert not recorder.deliver_audio(recorder.request_id + 1, b"late")

        assert recorder.deliver_audio(recorder.request_id, b"wav")
        assert received == [b"wav"]
        assert not recorder.is_recording
        assert not recorder.deliver_audio(recorder.request_id, b"again")

    def test_new_recording_abandons_previous(self):
        feed = EventFeed()
        recorder = ClientUploadRecorder(feed)
        first, second = [], []

        recorder.start_recording(first.append, first.append)
        old_id = recorder.request_id
        recorder.start_recording(second.append, second.append)

        assert not recorder.deliver_audio(old_id, b"old")
        assert recorder.deliver_error(recorder.request_id, "denied")
        assert first == []
        assert second == ["denied"]

    def test_stop_only_while_recording(self):
        feed = EventFeed()
        recorder = ClientUploadRecorder(feed)
        recorder.stop_recording_gracefully()
        assert feed.since(0) == []

        recorder.start_recording(lambda audio: None, lambda reason: None)
        recorder.stop_recording_gracefully()
        assert feed.since(0)[-1]["kind"] == "stop_recording"


class TestClientMicrophoneGate:

    @pytest.mark.asyncio
    async def test_request_resolved_by_update(self):
        feed = EventFeed()
        gate = ClientMicrophoneGate(feed)

        task = asyncio.create_task(gate.request_permission())
        await asyncio.sleep(0)
        assert feed.since(0)[-1]["kind"] == "request_microphone"

        gate.update(granted=True, devices=1)

        assert await task is True
        assert gate.has_permission()
        assert gate.device_count() == 1


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
