"""
Unit Tests for Line Generator

Tests fixed lines, the intro line and LLM fallback behavior.
"""

import pytest
import sys
import os
from datetime import datetime
from types import SimpleNamespace

# Add project root to path
project_root = os.path.abspath(os.path.join(os.path.dirname(__file__), "../.."))
sys.path.insert(0, os.path.join(project_root, "shadowing_tutor", "src"))

from shadowing_tutor.line_generator import (
    CONTEXT_FIELD_LIMIT,
    FALLBACK_LINES,
    LineContext,
    LineTag,
    OpenAILineGenerator,
    StaticLineGenerator,
    build_intro_line,
    clean_generated_line,
    fallback_line,
    time_of_day_greeting,
)


def fake_client(reply=None, error=None, calls=None):
    """Minimal object shaped like AsyncOpenAI for chat completions."""

    async def create(**kwargs):
        if calls is not None:
            calls.append(kwargs)
        if error:
            raise error
        message = SimpleNamespace(content=reply)
        return SimpleNamespace(choices=[SimpleNamespace(message=message)])

    return SimpleNamespace(chat=SimpleNamespace(completions=SimpleNamespace(create=create)))


class TestFixedLines:

    def test_every_tag_has_fallback(self):
        for tag in LineTag:
            assert FALLBACK_LINES[tag]
            assert fallback_line(tag) == FALLBACK_LINES[tag]

    @pytest.mark.parametrize("hour,greeting", [
        (5, "좋은 아침이에요!"),
        (11, "좋은 아침이에요!"),
        (12, "좋은 오후예요!"),
        (16, "좋은 오후예요!"),
        (17, "좋은 저녁이에요!"),
        (20, "좋은 저녁이에요!"),
        (21, "늦은 시간까지 열심히네요!"),
        (4, "늦은 시간까지 열심히네요!"),
    ])
    def test_time_of_day_greeting(self, hour, greeting):
        assert time_of_day_greeting(datetime(2024, 5, 1, hour, 0)) == greeting

    def test_intro_line(self):
        line = build_intro_line("인사하기", 5, datetime(2024, 5, 1, 9, 0))
        assert line == (
            "안녕하세요! 좋은 아침이에요! 오늘 배울 주제는 \"인사하기\"이고 "
            "5개의 표현을 배워볼 거예요! 시작할게요!"
        )


class TestCleanGeneratedLine:

    def test_strips_markup(self):
        assert clean_generated_line("**잘했어요!** (웃으며) 다시 해볼까요?") == "잘했어요! 다시 해볼까요?"
        assert clean_generated_line("\"좋아요!\"") == "좋아요!"

    def test_empty(self):
        assert clean_generated_line(None) == ""
        assert clean_generated_line("```json\n{}\n```") == ""


class TestLineContext:

    def test_fields_truncated(self):
        context = LineContext(season_title="가" * 500, attempt_number=2)
        fields = context.prompt_fields()
        assert len(fields["season_title"]) == CONTEXT_FIELD_LIMIT
        assert fields["attempt_number"] == "2"


class TestOpenAILineGenerator:

    @pytest.mark.asyncio
    async def test_no_key_uses_fallback(self, monkeypatch):
        monkeypatch.delenv("OPENAI_API_KEY", raising=False)
        generator = OpenAILineGenerator()
        assert generator.llm_client is None
        assert await generator.generate_line(LineTag.RETRY, LineContext()) == FALLBACK_LINES[LineTag.RETRY]

    @pytest.mark.asyncio
    async def test_generated_line_cleaned(self, monkeypatch):
        monkeypatch.delenv("OPENAI_API_KEY", raising=False)
        calls = []
        generator = OpenAILineGenerator()
        generator.llm_client = fake_client(reply="*자, 따라 해봐요!*", calls=calls)

        line = await generator.generate_line(LineTag.PROMPT, LineContext(target_phrase="안녕하세요"))

        assert line == "자, 따라 해봐요!"
        prompt = calls[0]["messages"][1]["content"]
        assert "state=PROMPT" in prompt
        assert "targetPhrase=안녕하세요" in prompt

    @pytest.mark.asyncio
    async def test_client_error_uses_fallback(self, monkeypatch):
        monkeypatch.delenv("OPENAI_API_KEY", raising=False)
        generator = OpenAILineGenerator()
        generator.llm_client = fake_client(error=RuntimeError("rate limited"))

        line = await generator.generate_line(LineTag.SEASON_END, LineContext())

        assert line == FALLBACK_LINES[LineTag.SEASON_END]

    @pytest.mark.asyncio
    async def test_empty_reply_uses_fallback(self, monkeypatch):
        monkeypatch.delenv("OPENAI_API_KEY", raising=False)
        generator = OpenAILineGenerator()
        generator.llm_client = fake_client(reply="   ")

        assert await generator.generate_line(LineTag.INTRO, LineContext()) == FALLBACK_LINES[LineTag.INTRO]

    @pytest.mark.asyncio
    async def test_static_generator(self):
        line = await StaticLineGenerator().generate_line(LineTag.FEEDBACK_FAIL, LineContext())
        assert line == FALLBACK_LINES[LineTag.FEEDBACK_FAIL]


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
