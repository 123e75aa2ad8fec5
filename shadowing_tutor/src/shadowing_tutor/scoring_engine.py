"""
Scoring Engine

Hybrid approach for scoring a spoken attempt against its target phrase:
1. Remote scorer result when the collaborator answered in time
2. Local edit-distance scoring otherwise

The local path is also used to fill in the mismatch breakdown when the
remote scorer returns a percentage without spans.
"""

import logging
from dataclasses import dataclass
from typing import List, Optional, Tuple

from shadowing_tutor.collaborators import RemoteScore

logger = logging.getLogger(__name__)

MAX_MISMATCH_SPANS = 3
MAX_SPAN_CHARS = 4
RECOGNITION_FAILED = "(음성 인식 실패)"


@dataclass
class EvaluationResult:
    """Outcome of scoring one attempt."""
    accuracy_percent: int
    mismatch_summary: str = ""
    is_correct: bool = False
    source: str = "local"  # "local" or "remote"


def _normalize_with_positions(text: str) -> Tuple[str, List[int]]:
    """Normalize text and remember which original index produced each character."""
    chars: List[str] = []
    positions: List[int] = []
    for index, ch in enumerate(text or ""):
        for folded in ch.casefold():
            if folded.isalnum():
                chars.append(folded)
                positions.append(index)
    return "".join(chars), positions


def normalize(text: Optional[str]) -> str:
    """
    Strip punctuation and whitespace, then case-fold.

    normalize(normalize(s)) == normalize(s) for every string.
    """
    return _normalize_with_positions(text or "")[0]


def levenshtein_distance(a: str, b: str) -> int:
    """Edit distance with unit insert, delete and substitute costs."""
    if a == b:
        return 0
    if not a:
        return len(b)
    if not b:
        return len(a)

    previous = list(range(len(b) + 1))
    for i, ca in enumerate(a, start=1):
        current = [i] + [0] * len(b)
        for j, cb in enumerate(b, start=1):
            cost = 0 if ca == cb else 1
            current[j] = min(
                previous[j] + 1,  # deletion
                current[j - 1] + 1,  # insertion
                previous[j - 1] + cost,  # substitution
            )
        previous = current
    return previous[-1]


def compute_accuracy(target: str, transcript: str) -> int:
    """
    Accuracy percentage of a transcript against its target.

    Args:
        target: Phrase the learner was asked to repeat
        transcript: What the transcriber heard

    Returns:
        Integer in [0, 100]; 0 for an empty transcript or empty target
    """
    norm_target = normalize(target)
    norm_transcript = normalize(transcript)

    if not norm_transcript or not norm_target:
        return 0
    if norm_target == norm_transcript:
        return 100

    distance = levenshtein_distance(norm_target, norm_transcript)
    max_len = max(len(norm_target), len(norm_transcript))
    similarity = max(0.0, 1.0 - distance / max_len)
    accuracy = int(similarity * 100 + 0.5)
    return max(0, min(100, accuracy))


def _original_span(target: str, positions: List[int], start: int, length: int) -> str:
    end = min(start + length, len(positions)) - 1
    return target[positions[start]:positions[end] + 1].strip()


def extract_mismatch(target: str, transcript: str) -> str:
    """
    Describe which parts of the target were said wrong.

    Walks both normalized strings in lock-step. Every divergence contributes
    a span of the original target text (at most four characters, at most
    three spans), and any target text left over once the transcript runs
    out is appended as one more span.

    Returns:
        Comma-joined spans, or "" when nothing diverged
    """
    norm_target, positions = _normalize_with_positions(target or "")
    norm_transcript = normalize(transcript)
    if not norm_target:
        return ""

    spans: List[str] = []
    i = 0
    limit = min(len(norm_target), len(norm_transcript))
    while i < limit and len(spans) < MAX_MISMATCH_SPANS:
        if norm_target[i] == norm_transcript[i]:
            i += 1
            continue
        start = i
        while i < limit and norm_target[i] != norm_transcript[i] and i - start < MAX_SPAN_CHARS:
            i += 1
        span = _original_span(target, positions, start, i - start)
        if span:
            spans.append(span)

    if len(spans) < MAX_MISMATCH_SPANS and i < len(norm_target) and i >= limit:
        span = _original_span(target, positions, i, min(len(norm_target) - i, MAX_SPAN_CHARS))
        if span:
            spans.append(span)

    return ", ".join(spans)


def build_comparison_text(
    accuracy_percent: int,
    mismatch_summary: str,
    recognition_failed: bool,
    excellent_threshold: int = 90,
    advance_threshold: int = 65,
) -> str:
    """Learner-facing result line. Always carries a percentage."""
    if recognition_failed:
        return f"{RECOGNITION_FAILED} ({accuracy_percent}%)"
    if accuracy_percent >= excellent_threshold:
        return f"정확해요! ({accuracy_percent}%)"
    if accuracy_percent >= advance_threshold:
        if mismatch_summary:
            return f"거의 맞았어요! ({accuracy_percent}%) 틀린 부분: {mismatch_summary}"
        return f"거의 맞았어요! ({accuracy_percent}%)"
    if mismatch_summary:
        return f"틀린 부분: {mismatch_summary} ({accuracy_percent}%)"
    return f"발음이 달라요 ({accuracy_percent}%)"


class ScoringEngine:
    """
    Scores attempts on a scale of 0-100.

    Uses hybrid approach:
    - Remote scorer result when one is supplied
    - Local Levenshtein scoring as the fallback
    """

    def __init__(self, advance_threshold: int = 65):
        self.advance_threshold = advance_threshold

    def evaluate(
        self,
        target: str,
        transcript: str,
        remote: Optional[RemoteScore] = None,
    ) -> EvaluationResult:
        """
        Score a transcript against its target.

        Args:
            target: Phrase the learner was asked to repeat
            transcript: Cleaned transcript
            remote: Result from the remote scorer, if it answered

        Returns:
            EvaluationResult with accuracy and mismatch breakdown
        """
        if not normalize(transcript):
            return EvaluationResult(accuracy_percent=0, mismatch_summary=RECOGNITION_FAILED)

        if remote is not None:
            accuracy = max(0, min(100, int(remote.accuracy_percent)))
            spans = [s.strip() for s in remote.mismatch_spans if s and s.strip()][:MAX_MISMATCH_SPANS]
            if spans:
                mismatch = ", ".join(spans)
            elif accuracy < 100:
                mismatch = extract_mismatch(target, transcript)
            else:
                mismatch = ""
            return EvaluationResult(
                accuracy_percent=accuracy,
                mismatch_summary=mismatch,
                is_correct=accuracy >= self.advance_threshold,
                source="remote",
            )

        accuracy = compute_accuracy(target, transcript)
        mismatch = extract_mismatch(target, transcript) if accuracy < 100 else ""
        logger.debug(f"🎯 [Scoring] Local score {accuracy}% for '{transcript}' vs '{target}'")
        return EvaluationResult(
            accuracy_percent=accuracy,
            mismatch_summary=mismatch,
            is_correct=accuracy >= self.advance_threshold,
        )
