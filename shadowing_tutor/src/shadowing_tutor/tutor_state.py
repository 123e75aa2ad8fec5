"""
Tutor State Data Model

Defines the FSM states, the per-attempt context and the season progress
counters used by the session controller.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional


class TutorState(Enum):
    """Controller states. Only the controller loop changes the current state."""
    BOOT = "boot"
    HOME = "home"
    SEASON_INTRO = "season_intro"
    TOPIC_PROMPT = "topic_prompt"
    RECORDING = "recording"
    SCORING = "scoring"
    FEEDBACK = "feedback"
    RETRY_PROMPT = "retry_prompt"
    SEASON_END_PROMPT = "season_end_prompt"
    END = "end"


class VoiceDecision(Enum):
    POSITIVE = "positive"
    NEGATIVE = "negative"
    UNKNOWN = "unknown"


_ATTEMPT_IDENTITY = ("session_version", "attempt_id", "season_index", "expression_index", "target_phrase")


@dataclass
class AttemptContext:
    """
    Snapshot of what is being attempted right now.

    Identity fields are fixed once set; scoring fields are filled in as the
    recording moves through transcription and scoring.
    """
    session_version: int
    attempt_id: int
    season_index: int
    expression_index: int
    target_phrase: str
    # Filled in after recording
    transcript: str = ""
    accuracy_percent: int = 0  # Never defaults to a passing value
    timed_out: bool = False
    transcript_empty: bool = False
    mismatch_summary: str = ""
    created_at: datetime = field(default_factory=datetime.now)

    def __setattr__(self, name: str, value: Any) -> None:
        if name in _ATTEMPT_IDENTITY and name in self.__dict__:
            raise AttributeError(f"AttemptContext.{name} is read-only")
        super().__setattr__(name, value)

    def mark_timed_out(self) -> None:
        """Watchdog expired: force a conservative fail."""
        self.timed_out = True
        self.accuracy_percent = 0

    def mark_empty(self, reason: str = "") -> None:
        self.transcript_empty = True
        self.transcript = ""
        self.accuracy_percent = 0
        if reason:
            self.mismatch_summary = reason

    @property
    def recognition_failed(self) -> bool:
        return self.timed_out or self.transcript_empty


@dataclass
class SeasonProgress:
    """Authoritative countdown for the current season."""
    season_index: int = 0
    announced_total: int = 0  # Number of items announced to the learner
    remaining: int = 0
    retry_count: int = 0
    expression_index: int = 0
    expression_order: List[str] = field(default_factory=list)  # Shuffled phrases for this run

    @property
    def completed(self) -> int:
        return self.announced_total - self.remaining


@dataclass
class TutorEvent:
    """Message emitted to presentation adapters."""
    kind: str  # "state_changed", "speech", "attempt_scored", "progress", "blocked", "session_ended"
    state: TutorState
    data: Dict[str, Any] = field(default_factory=dict)
    sequence: int = 0
    session_version: int = 0
    created_at: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind,
            "state": self.state.value,
            "data": self.data,
            "sequence": self.sequence,
            "session_version": self.session_version,
            "created_at": self.created_at.isoformat(),
        }


@dataclass
class ProgressSnapshot:
    """Persisted subset of SeasonProgress."""
    season_id: int
    announced_total: int
    remaining: int
    expression_index: int = 0
    learner_id: Optional[str] = None
    expression_order: List[str] = field(default_factory=list)

    @property
    def restorable(self) -> bool:
        return self.announced_total > 0 and 0 < self.remaining < self.announced_total
