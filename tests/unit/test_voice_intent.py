"""
Unit Tests for Voice Intent Classifier

Tests yes/no classification of spoken answers.
"""

import pytest
import sys
import os

# Add project root to path
project_root = os.path.abspath(os.path.join(os.path.dirname(__file__), "../.."))
sys.path.insert(0, os.path.join(project_root, "shadowing_tutor", "src"))

from shadowing_tutor.scoring_engine import normalize
from shadowing_tutor.tutor_state import VoiceDecision
from shadowing_tutor.voice_intent import NEGATIVE_KEYWORDS, POSITIVE_KEYWORDS, POSITIVE_PREFIXES, VoiceIntentClassifier


class TestVoiceIntentClassifier:
    """Test suite for VoiceIntentClassifier."""

    @pytest.fixture
    def classifier(self):
        return VoiceIntentClassifier()

    @pytest.mark.parametrize("transcript", ["네 좋아요", "네!", "응 계속할래", "다음으로 넘어가자", "OK", "오케이", "ㅇㅇ"])
    def test_positive(self, classifier, transcript):
        assert classifier.classify(transcript) == VoiceDecision.POSITIVE

    @pytest.mark.parametrize("transcript", ["아니요 그만할래", "아니", "오늘은 여기까지", "피곤해", "stop", "이제 끝", "안 해"])
    def test_negative(self, classifier, transcript):
        assert classifier.classify(transcript) == VoiceDecision.NEGATIVE

    @pytest.mark.parametrize("transcript", ["안 하고 싶어요", "아니예요", "다음에 할게요", "나중에 할래", "안 할래요"])
    def test_refusals_not_read_as_yes(self, classifier, transcript):
        assert classifier.classify(transcript) == VoiceDecision.NEGATIVE

    @pytest.mark.parametrize("transcript", ["예", "예, 좋아요", "예 계속해요"])
    def test_leading_ye_is_positive(self, classifier, transcript):
        assert classifier.classify(transcript) == VoiceDecision.POSITIVE

    @pytest.mark.parametrize("transcript", ["음...", "", None, "   ", "(noise)", "글쎄"])
    def test_unknown(self, classifier, transcript):
        assert classifier.classify(transcript) == VoiceDecision.UNKNOWN

    def test_no_positive_keyword_hides_in_negative_phrase(self):
        """Positive check runs first, so it must not capture negative phrases."""
        negatives = [normalize(keyword) for keyword in NEGATIVE_KEYWORDS]
        for positive in POSITIVE_KEYWORDS:
            norm = normalize(positive)
            assert not any(norm in negative for negative in negatives), positive
        for prefix in POSITIVE_PREFIXES:
            norm = normalize(prefix)
            assert not any(negative.startswith(norm) for negative in negatives), prefix

    def test_keywords_normalized(self, classifier):
        assert "오늘은여기까지" in classifier.negative_keywords
        assert "안해" in classifier.negative_keywords
        assert all(" " not in keyword for keyword in classifier.positive_keywords)

    def test_custom_keywords(self):
        classifier = VoiceIntentClassifier(positive_keywords=["yes"], negative_keywords=["no"])
        assert classifier.classify("Yes please") == VoiceDecision.POSITIVE
        assert classifier.classify("no thanks") == VoiceDecision.NEGATIVE
        assert classifier.classify("네") == VoiceDecision.UNKNOWN


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
