"""
Collaborator Contracts

Interfaces the session controller consumes. Audio playback, microphone
capture, transcription, remote scoring and line phrasing are provided by
adapters (the FastAPI backend, a desktop shell, or test fakes) that satisfy
these protocols.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, List, Optional, Protocol, runtime_checkable

from shadowing_tutor.tutor_state import ProgressSnapshot


class SpeakOutcome(Enum):
    """How a playback request ended."""
    COMPLETED = "completed"
    LOAD_ERROR = "load_error"  # Audio asset unavailable
    PLAYBACK_ERROR = "playback_error"
    NETWORK_ERROR = "network_error"  # Synthesis service unreachable
    TIMEOUT = "timeout"

    @property
    def ok(self) -> bool:
        return self is SpeakOutcome.COMPLETED


class TranscriptionError(Exception):
    """Raised by a transcriber when no transcript could be produced."""


class ScoringError(Exception):
    """Raised by a remote scorer when it cannot score an attempt."""


@dataclass
class TranscriptionResult:
    text: str
    raw_text: str = ""


@dataclass
class RemoteScore:
    accuracy_percent: int
    mismatch_spans: List[str] = field(default_factory=list)


RecordingCompleteCallback = Callable[[bytes], None]
RecordingErrorCallback = Callable[[str], None]


@runtime_checkable
class Speaker(Protocol):
    async def speak(self, text: str) -> SpeakOutcome:
        ...

    def force_stop(self) -> None:
        ...


@runtime_checkable
class Recorder(Protocol):
    """
    Microphone capture.

    Recording stops on its own on a manual stop request, prolonged silence,
    or a maximum duration. Exactly one of the callbacks fires per recording.
    """

    @property
    def is_recording(self) -> bool:
        ...

    def start_recording(
        self,
        on_complete: RecordingCompleteCallback,
        on_error: RecordingErrorCallback,
    ) -> bool:
        ...

    def stop_recording_gracefully(self) -> None:
        """Must be a no-op when not recording."""
        ...


@runtime_checkable
class Transcriber(Protocol):
    async def transcribe(self, audio: bytes, language_hint: str) -> TranscriptionResult:
        ...


@runtime_checkable
class Scorer(Protocol):
    async def score(self, target: str, transcript: str) -> RemoteScore:
        ...


@runtime_checkable
class LineGenerator(Protocol):
    async def generate_line(self, tag: Any, context: Any) -> str:
        ...


@runtime_checkable
class MicrophoneGate(Protocol):
    def has_permission(self) -> bool:
        ...

    async def request_permission(self) -> bool:
        ...

    def device_count(self) -> int:
        ...


@runtime_checkable
class ProgressStore(Protocol):
    def save(self, snapshot: ProgressSnapshot) -> bool:
        ...

    def load(self) -> Optional[ProgressSnapshot]:
        ...

    def clear(self) -> bool:
        ...
