"""
Web client collaborators

The browser plays audio and owns the microphone. These adapters turn the
controller's collaborator calls into commands on an event feed that the
client polls, and resolve them when the client posts the result back.
"""

import asyncio
import base64
import logging
from collections import deque
from datetime import datetime
from typing import Any, Deque, Dict, List, Optional

from shadowing_tutor.collaborators import RecordingCompleteCallback, RecordingErrorCallback, SpeakOutcome
from shadowing_tutor.speech_services import OpenAISpeechSynthesizer

logger = logging.getLogger(__name__)


class EventFeed:
    """Bounded, sequenced buffer of events and commands for polling clients."""

    def __init__(self, max_events: int = 500):
        self._events: Deque[Dict[str, Any]] = deque(maxlen=max_events)
        self._sequence = 0

    @property
    def last_sequence(self) -> int:
        return self._sequence

    def publish(self, kind: str, data: Optional[Dict[str, Any]] = None) -> int:
        self._sequence += 1
        self._events.append({
            "sequence": self._sequence,
            "kind": kind,
            "data": data or {},
            "created_at": datetime.now().isoformat(),
        })
        return self._sequence

    def since(self, after: int = 0) -> List[Dict[str, Any]]:
        return [event for event in self._events if event["sequence"] > after]


class ClientPlaybackSpeaker:
    """
    Speaker whose playback happens in the client.

    Each line becomes a "speak" command carrying a request id (and MP3 audio
    when a synthesizer is configured). The client reports completion by id;
    reports for ids that are no longer pending are ignored.
    """

    def __init__(self, feed: EventFeed, synthesizer: Optional[OpenAISpeechSynthesizer] = None):
        self.feed = feed
        self.synthesizer = synthesizer
        self._pending: Dict[int, asyncio.Future] = {}
        self._next_id = 0

    async def speak(self, text: str) -> SpeakOutcome:
        self._next_id += 1
        request_id = self._next_id

        audio_base64 = None
        if self.synthesizer is not None and self.synthesizer.available:
            audio = await self.synthesizer.synthesize(text)
            if audio is None:
                self.feed.publish("subtitle", {"request_id": request_id, "text": text})
                return SpeakOutcome.NETWORK_ERROR
            audio_base64 = base64.b64encode(audio).decode("ascii")

        future = asyncio.get_running_loop().create_future()
        self._pending[request_id] = future
        self.feed.publish("speak", {"request_id": request_id, "text": text, "audio_base64": audio_base64})
        try:
            return await future
        finally:
            self._pending.pop(request_id, None)

    def complete(self, request_id: int, outcome: SpeakOutcome = SpeakOutcome.COMPLETED) -> bool:
        """Client finished (or failed) playing a line. False if the request is stale."""
        future = self._pending.get(request_id)
        if future is None or future.done():
            logger.debug(f"🗑️ [ClientSpeaker] Ignoring completion for stale request {request_id}")
            return False
        future.set_result(outcome)
        return True

    def force_stop(self) -> None:
        for future in self._pending.values():
            if not future.done():
                future.set_result(SpeakOutcome.PLAYBACK_ERROR)
        self.feed.publish("stop_playback")


class ClientUploadRecorder:
    """
    Recorder whose microphone lives in the client.

    start_recording() publishes a "start_recording" command; the client
    uploads the WAV with the matching request id. Starting a new recording
    abandons any previous one that never delivered.
    """

    def __init__(self, feed: EventFeed):
        self.feed = feed
        self._request_id = 0
        self._recording = False
        self._on_complete: Optional[RecordingCompleteCallback] = None
        self._on_error: Optional[RecordingErrorCallback] = None

    @property
    def is_recording(self) -> bool:
        return self._recording

    @property
    def request_id(self) -> int:
        return self._request_id

    def start_recording(self, on_complete: RecordingCompleteCallback, on_error: RecordingErrorCallback) -> bool:
        if self._recording:
            logger.info(f"🎙️ [ClientRecorder] Abandoning recording {self._request_id}")
        self._request_id += 1
        self._recording = True
        self._on_complete = on_complete
        self._on_error = on_error
        self.feed.publish("start_recording", {"request_id": self._request_id})
        return True

    def stop_recording_gracefully(self) -> None:
        if not self._recording:
            return
        self.feed.publish("stop_recording", {"request_id": self._request_id})

    def deliver_audio(self, request_id: int, audio: bytes) -> bool:
        """Client uploaded audio. False if it belongs to an abandoned recording."""
        if not self._recording or request_id != self._request_id:
            return False
        callback = self._on_complete
        self._finish()
        if callback:
            callback(audio)
        return True

    def deliver_error(self, request_id: int, reason: str) -> bool:
        if not self._recording or request_id != self._request_id:
            return False
        callback = self._on_error
        self._finish()
        if callback:
            callback(reason)
        return True

    def _finish(self) -> None:
        self._recording = False
        self._on_complete = None
        self._on_error = None


class ClientMicrophoneGate:
    """Microphone availability as last reported by the client."""

    def __init__(self, feed: EventFeed, granted: bool = False, devices: int = 0):
        self.feed = feed
        self.granted = granted
        self.devices = devices
        self._permission_future: Optional[asyncio.Future] = None

    def has_permission(self) -> bool:
        return self.granted

    def device_count(self) -> int:
        return self.devices

    async def request_permission(self) -> bool:
        self._permission_future = asyncio.get_running_loop().create_future()
        self.feed.publish("request_microphone")
        try:
            return await self._permission_future
        finally:
            self._permission_future = None

    def update(self, granted: bool, devices: int) -> None:
        self.granted = granted
        self.devices = devices
        future = self._permission_future
        if future is not None and not future.done():
            future.set_result(granted)
