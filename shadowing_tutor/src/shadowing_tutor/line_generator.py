"""
Tutor Line Generator

Produces the Korean lines the tutor speaks. An LLM phrases lines when an
OpenAI key is configured; every state tag has a fixed fallback line so the
controller never waits on, or fails because of, the generator.
"""

import logging
import os
import re
from dataclasses import asdict, dataclass
from datetime import datetime
from enum import Enum
from typing import Dict, Optional

from dotenv import load_dotenv
from openai import AsyncOpenAI

load_dotenv()

logger = logging.getLogger(__name__)

CONTEXT_FIELD_LIMIT = 220


class LineTag(Enum):
    INTRO = "INTRO"
    PROMPT = "PROMPT"
    FEEDBACK_EXCELLENT = "FEEDBACK_EXCELLENT"
    FEEDBACK_PASS = "FEEDBACK_PASS"
    FEEDBACK_FAIL = "FEEDBACK_FAIL"
    RETRY = "RETRY"
    SEASON_END = "SEASON_END"


FALLBACK_LINES: Dict[LineTag, str] = {
    LineTag.INTRO: "안녕하세요! 오늘도 같이 연습해봐요!",
    LineTag.PROMPT: "자, 따라 해봐요!",
    LineTag.FEEDBACK_EXCELLENT: "정말 잘했어요! 완전 현지인 같아요!",
    LineTag.FEEDBACK_PASS: "잘했어요! 거의 완벽했어요! 한 번만 더 매끈하게 해볼까요?",
    LineTag.FEEDBACK_FAIL: "괜찮아요! 다시 한 번 해봐요. 제가 다시 읽어드릴게요.",
    LineTag.RETRY: "다시 한 번 해봐요! 제가 다시 읽어드릴게요.",
    LineTag.SEASON_END: "이번 시즌 끝났어요! 다음으로 넘길까요?",
}

# Fixed lines that never go through the generator
SKIP_LINE = "괜찮아요! 다음 문장으로 넘어갈게요."
CONTINUE_PROMPT_LINE = "다음으로 넘어가볼까요?"
CLARIFY_LINE = "네 또는 아니요로 말해 주세요."
STOP_LINE = "알겠어요! 오늘은 여기까지 할게요. 수고했어요!"
SESSION_GOODBYE_LINE = "알겠어요! 오늘 열심히 했어요. 다음에 또 봐요!"
NEXT_SEASON_LINE = "좋아요! 다음 시즌 시작할게요!"
WRAP_AROUND_LINE = "모든 시즌을 다 끝냈어요! 처음부터 다시 시작할게요!"
IDLE_GOODBYE_LINE = "조용하네요. 오늘은 여기까지 할게요. 다음에 또 만나요!"

SYSTEM_PROMPT = """You write short lines for a Korean speaking tutor in a shadowing app. Reply with only the Korean line(s) the tutor will say.

Rules: Korean only, one to three short sentences, no markdown, no JSON, no stage directions in parentheses, do not repeat lastMessageText word for word.

States:
- INTRO: greet the learner and introduce seasonTitle.
- PROMPT: invite the learner to repeat targetPhrase.
- FEEDBACK_EXCELLENT: warm praise only. Do not ask whether to continue.
- FEEDBACK_PASS: praise, one short tip based on mismatchSummary, then offer one optional polish attempt as a yes/no question.
- FEEDBACK_FAIL and RETRY: encourage, mention mismatchSummary, and say you will read the phrase again.
- SEASON_END: ask whether to move on to the next season, ending with a yes/no question."""

USER_PROMPT_TEMPLATE = """Write the tutor line for this moment.

[CONTEXT]
state={state}
seasonTitle={season_title}
targetPhrase={target_phrase}
attemptNumber={attempt_number}
accuracyPercent={accuracy_percent}
mismatchSummary={mismatch_summary}
lastMessageText={last_message_text}

Reply with the Korean line(s) only."""


@dataclass
class LineContext:
    """What the tutor knows when it needs a line."""
    season_title: str = ""
    target_phrase: str = ""
    attempt_number: int = 0
    accuracy_percent: int = 0
    mismatch_summary: str = ""
    last_message_text: str = ""

    def prompt_fields(self) -> Dict[str, str]:
        fields = {}
        for key, value in asdict(self).items():
            text = str(value) if value is not None else ""
            fields[key] = text[:CONTEXT_FIELD_LIMIT]
        return fields


def time_of_day_greeting(now: Optional[datetime] = None) -> str:
    hour = (now or datetime.now()).hour
    if 5 <= hour < 12:
        return "좋은 아침이에요!"
    if 12 <= hour < 17:
        return "좋은 오후예요!"
    if 17 <= hour < 21:
        return "좋은 저녁이에요!"
    return "늦은 시간까지 열심히네요!"


def build_intro_line(season_title: str, expression_count: int, now: Optional[datetime] = None) -> str:
    """Season intro announcing the topic and how many expressions it has."""
    greeting = time_of_day_greeting(now)
    return (
        f"안녕하세요! {greeting} 오늘 배울 주제는 \"{season_title}\"이고 "
        f"{expression_count}개의 표현을 배워볼 거예요! 시작할게요!"
    )


def fallback_line(tag: LineTag) -> str:
    return FALLBACK_LINES.get(tag, FALLBACK_LINES[LineTag.PROMPT])


def clean_generated_line(text: Optional[str]) -> str:
    """Strip markdown, quotes and stage directions from an LLM reply."""
    if not text:
        return ""
    cleaned = re.sub(r"```.*?```", " ", text, flags=re.DOTALL)
    cleaned = re.sub(r"\([^)]*\)", " ", cleaned)
    cleaned = cleaned.replace("*", "").replace("#", "")
    cleaned = re.sub(r"\s+", " ", cleaned).strip().strip("\"'“”")
    return cleaned.strip()


class StaticLineGenerator:
    """Always returns the fallback line for a tag."""

    async def generate_line(self, tag: LineTag, context: LineContext) -> str:
        return fallback_line(tag)


class OpenAILineGenerator:
    """
    LLM-phrased tutor lines.

    Without OPENAI_API_KEY the client is not created and every call returns
    the fallback line for the tag.
    """

    def __init__(self, api_key: Optional[str] = None, model: Optional[str] = None):
        self.llm_client: Optional[AsyncOpenAI] = None
        self.model = model or os.getenv("OPENAI_MODEL", "gpt-4o-mini")

        api_key = api_key or os.getenv("OPENAI_API_KEY")
        if api_key:
            self.llm_client = AsyncOpenAI(api_key=api_key)

    async def generate_line(self, tag: LineTag, context: LineContext) -> str:
        """
        Phrase a line for the given state.

        Args:
            tag: Which moment of the drill the line is for
            context: Season, target and score details

        Returns:
            A Korean line; the fallback for the tag on any failure
        """
        if not self.llm_client:
            return fallback_line(tag)

        prompt = USER_PROMPT_TEMPLATE.format(state=tag.value, **context.prompt_fields())
        try:
            completion = await self.llm_client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": SYSTEM_PROMPT},
                    {"role": "user", "content": prompt},
                ],
                temperature=0.7,
                max_tokens=120,
            )
            line = clean_generated_line(completion.choices[0].message.content)
        except Exception as e:
            logger.warning(f"⚠️ [LineGenerator] Generation failed for {tag.value}: {e}, using fallback")
            return fallback_line(tag)

        if not line:
            logger.warning(f"⚠️ [LineGenerator] Empty reply for {tag.value}, using fallback")
            return fallback_line(tag)
        return line
