"""
Transcript Utilities

Cleans raw speech-to-text output and checks that an utterance is plausibly
Korean before it is scored.
"""

import re
from dataclasses import dataclass
from typing import Optional

# Recognizer annotations such as "(noise)", "[music]", "{laugh}", "<unk>"
_BRACKETED_NOISE = re.compile(r"\([^)]*\)|\[[^\]]*\]|\{[^}]*\}|<[^>]*>")
_WHITESPACE = re.compile(r"\s+")

_SKIPPED_PUNCTUATION = set(".,!?;:'\"-~…·()[]{}<>")

REASON_NO_SPEECH = "음성이 인식되지 않았어요"
REASON_NO_TEXT = "인식된 텍스트가 없어요"
REASON_NOT_KOREAN = "발음이 잘 안 들렸어요. 다시 말해 주세요"


@dataclass
class TranscriptValidation:
    """Result of the Korean validity check."""
    is_valid: bool
    reason: Optional[str] = None  # Learner-facing explanation when invalid
    korean_ratio: float = 0.0


def normalize_transcript(text: Optional[str]) -> str:
    """
    Strip recognizer noise markers and collapse whitespace.

    Args:
        text: Raw transcript from the transcription service

    Returns:
        Cleaned transcript, or "" when nothing usable remains
    """
    if not text:
        return ""
    cleaned = _BRACKETED_NOISE.sub(" ", text)
    return _WHITESPACE.sub(" ", cleaned).strip()


def is_hangul(ch: str) -> bool:
    code = ord(ch)
    return (
        0xAC00 <= code <= 0xD7AF  # syllables
        or 0x1100 <= code <= 0x11FF  # jamo
        or 0x3130 <= code <= 0x318F  # compatibility jamo
    )


def is_cjk_ideograph(ch: str) -> bool:
    code = ord(ch)
    return 0x4E00 <= code <= 0x9FFF or 0x3400 <= code <= 0x4DBF


def is_kana(ch: str) -> bool:
    return 0x3040 <= ord(ch) <= 0x30FF


def validate_korean_transcript(text: Optional[str], min_korean_ratio: float = 0.3) -> TranscriptValidation:
    """
    Decide whether a transcript is usable Korean speech.

    Whitespace, digits and punctuation are ignored when counting letters.
    A transcript is rejected when Chinese or Japanese script dominates, or
    when the share of Hangul letters is below ``min_korean_ratio``.

    Args:
        text: Transcript, ideally already passed through normalize_transcript
        min_korean_ratio: Minimum Hangul share of counted letters

    Returns:
        TranscriptValidation with a learner-facing reason when invalid
    """
    if text is None:
        return TranscriptValidation(is_valid=False, reason=REASON_NO_SPEECH)

    stripped = text.strip()
    if not stripped:
        return TranscriptValidation(is_valid=False, reason=REASON_NO_TEXT)

    korean = chinese = japanese = total = 0
    for ch in stripped:
        if ch.isspace() or ch.isdigit() or ch in _SKIPPED_PUNCTUATION:
            continue
        total += 1
        if is_hangul(ch):
            korean += 1
        elif is_cjk_ideograph(ch):
            chinese += 1
        elif is_kana(ch):
            japanese += 1

    if total == 0:
        return TranscriptValidation(is_valid=False, reason=REASON_NO_TEXT)

    korean_ratio = korean / total

    # Foreign script takes over the utterance
    if chinese > korean and chinese / total > 0.3:
        return TranscriptValidation(is_valid=False, reason=REASON_NOT_KOREAN, korean_ratio=korean_ratio)
    if japanese > korean and japanese / total > 0.3:
        return TranscriptValidation(is_valid=False, reason=REASON_NOT_KOREAN, korean_ratio=korean_ratio)

    if korean_ratio < min_korean_ratio:
        return TranscriptValidation(is_valid=False, reason=REASON_NOT_KOREAN, korean_ratio=korean_ratio)

    return TranscriptValidation(is_valid=True, korean_ratio=korean_ratio)
