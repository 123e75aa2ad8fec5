"""
Voice Intent Classifier

Maps a free-form spoken answer to a yes/no decision for the continuation
and season-end prompts.
"""

import logging
from typing import Iterable, Optional, Tuple

from shadowing_tutor.scoring_engine import normalize
from shadowing_tutor.transcript_utils import normalize_transcript
from shadowing_tutor.tutor_state import VoiceDecision

logger = logging.getLogger(__name__)

# The positive set is checked first, so none of these may occur inside a
# refusal ("그만할래", "아니예요", "다음에 할게요", "안 하고 싶어요").
POSITIVE_KEYWORDS: Tuple[str, ...] = (
    "네", "응", "그래", "좋아", "가자", "넘어가", "계속", "진행",
    "오케이", "ok", "yes", "다음으로", "고고", "ㅇㅇ",
)

# Only count as a yes at the start of the answer
POSITIVE_PREFIXES: Tuple[str, ...] = ("예",)

NEGATIVE_KEYWORDS: Tuple[str, ...] = (
    "아니", "아니요", "싫어", "그만", "끝", "종료", "멈춰", "오늘은 여기까지",
    "피곤해", "하기 싫어", "stop", "quit", "안해", "안 해", "됐어", "스톱",
    "쉬고싶", "쉬고 싶", "그만할래", "안하고싶", "안 할래", "다음에", "나중에",
)


def _normalized_keywords(keywords: Iterable[str]) -> Tuple[str, ...]:
    seen = []
    for keyword in keywords:
        norm = normalize(keyword)
        if norm and norm not in seen:
            seen.append(norm)
    return tuple(seen)


class VoiceIntentClassifier:
    """
    Keyword-based yes/no classifier.

    Both the transcript and the keywords are normalized the same way as the
    scoring engine (no punctuation, no whitespace, case-folded), and matching
    is substring containment with the positive set checked first. Prefix
    keywords only match at the start of the answer.
    """

    def __init__(
        self,
        positive_keywords: Iterable[str] = POSITIVE_KEYWORDS,
        negative_keywords: Iterable[str] = NEGATIVE_KEYWORDS,
        positive_prefixes: Iterable[str] = POSITIVE_PREFIXES,
    ):
        self.positive_keywords = _normalized_keywords(positive_keywords)
        self.negative_keywords = _normalized_keywords(negative_keywords)
        self.positive_prefixes = _normalized_keywords(positive_prefixes)

    def classify(self, transcript: Optional[str]) -> VoiceDecision:
        """
        Classify a spoken answer.

        Args:
            transcript: Raw or cleaned transcript

        Returns:
            VoiceDecision.POSITIVE, NEGATIVE, or UNKNOWN
        """
        text = normalize(normalize_transcript(transcript))
        if not text:
            return VoiceDecision.UNKNOWN

        if text.startswith(self.positive_prefixes) or any(keyword in text for keyword in self.positive_keywords):
            logger.debug(f"🗣️ [VoiceIntent] '{transcript}' -> positive")
            return VoiceDecision.POSITIVE
        if any(keyword in text for keyword in self.negative_keywords):
            logger.debug(f"🗣️ [VoiceIntent] '{transcript}' -> negative")
            return VoiceDecision.NEGATIVE

        logger.debug(f"🗣️ [VoiceIntent] '{transcript}' -> unknown")
        return VoiceDecision.UNKNOWN
