"""
Tutor Settings

Thresholds, pacing delays and watchdog budgets, read from the environment
(and a .env file) with defaults suited to a live drill.
"""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

load_dotenv()

DEFAULT_TOPICS_PATH = Path(__file__).parent / "data" / "topics.json"


def _env_int(name: str, default: int) -> int:
    return int(os.getenv(name, str(default)))


def _env_float(name: str, default: float) -> float:
    return float(os.getenv(name, str(default)))


@dataclass
class TutorSettings:
    # Scoring gate
    advance_threshold: int = 65
    excellent_threshold: int = 90
    max_retries: int = 3

    # Pacing (seconds)
    tts_repeat_count: int = 3
    repeat_pause_seconds: float = 0.3
    delay_before_recording: float = 0.5
    delay_after_feedback: float = 1.0
    end_pause_seconds: float = 1.0

    # Watchdogs (seconds)
    tts_timeout: float = 12.0
    recording_timeout: float = 30.0
    stt_timeout: float = 15.0
    scoring_timeout: float = 10.0
    line_timeout: float = 8.0
    mic_permission_timeout: float = 5.0
    season_end_listen_timeout: float = 8.0
    continuation_listen_timeout: float = 6.0
    polish_recording_timeout: float = 15.0

    # Disengagement
    max_consecutive_silences: int = 2
    idle_timeout_seconds: float = 30.0

    # Language
    language_hint: str = "ko"
    min_korean_ratio: float = 0.3

    # Resources
    topics_path: Path = DEFAULT_TOPICS_PATH
    progress_file: Optional[Path] = None

    @classmethod
    def from_env(cls) -> "TutorSettings":
        """Build settings from TUTOR_* environment variables."""
        progress_file = os.getenv("TUTOR_PROGRESS_FILE")
        return cls(
            advance_threshold=_env_int("TUTOR_ADVANCE_THRESHOLD", 65),
            excellent_threshold=_env_int("TUTOR_EXCELLENT_THRESHOLD", 90),
            max_retries=_env_int("TUTOR_MAX_RETRIES", 3),
            tts_repeat_count=_env_int("TUTOR_TTS_REPEAT_COUNT", 3),
            repeat_pause_seconds=_env_float("TUTOR_REPEAT_PAUSE_SECONDS", 0.3),
            delay_before_recording=_env_float("TUTOR_DELAY_BEFORE_RECORDING", 0.5),
            delay_after_feedback=_env_float("TUTOR_DELAY_AFTER_FEEDBACK", 1.0),
            end_pause_seconds=_env_float("TUTOR_END_PAUSE_SECONDS", 1.0),
            tts_timeout=_env_float("TUTOR_TTS_TIMEOUT", 12.0),
            recording_timeout=_env_float("TUTOR_RECORDING_TIMEOUT", 30.0),
            stt_timeout=_env_float("TUTOR_STT_TIMEOUT", 15.0),
            scoring_timeout=_env_float("TUTOR_SCORING_TIMEOUT", 10.0),
            line_timeout=_env_float("TUTOR_LINE_TIMEOUT", 8.0),
            mic_permission_timeout=_env_float("TUTOR_MIC_PERMISSION_TIMEOUT", 5.0),
            season_end_listen_timeout=_env_float("TUTOR_SEASON_END_LISTEN_TIMEOUT", 8.0),
            continuation_listen_timeout=_env_float("TUTOR_CONTINUATION_LISTEN_TIMEOUT", 6.0),
            polish_recording_timeout=_env_float("TUTOR_POLISH_RECORDING_TIMEOUT", 15.0),
            max_consecutive_silences=_env_int("TUTOR_MAX_CONSECUTIVE_SILENCES", 2),
            idle_timeout_seconds=_env_float("TUTOR_IDLE_TIMEOUT_SECONDS", 30.0),
            language_hint=os.getenv("TUTOR_LANGUAGE_HINT", "ko"),
            min_korean_ratio=_env_float("TUTOR_MIN_KOREAN_RATIO", 0.3),
            topics_path=Path(os.getenv("TUTOR_TOPICS_PATH", str(DEFAULT_TOPICS_PATH))),
            progress_file=Path(progress_file) if progress_file else None,
        )
