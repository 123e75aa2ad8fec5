"""
Curriculum

Loads seasons of expressions from topics.json and shuffles them for a run.
"""

import json
import logging
import random
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

logger = logging.getLogger(__name__)


@dataclass
class Expression:
    korean: str
    english: str = ""


@dataclass
class Topic:
    """One season of the curriculum."""
    id: str
    season: int
    title: str
    title_en: str = ""
    expressions: List[Expression] = field(default_factory=list)


def fallback_topic() -> Topic:
    return Topic(
        id="basic_greetings",
        season=1,
        title="기본 인사",
        title_en="Basic Greetings",
        expressions=[
            Expression("안녕하세요", "Hello"),
            Expression("감사합니다", "Thank you"),
            Expression("죄송합니다", "I'm sorry"),
        ],
    )


def _parse_topic(raw: Dict[str, Any], position: int) -> Optional[Topic]:
    expressions = []
    for item in raw.get("expressions") or []:
        korean = (item.get("korean") or "").strip()
        if not korean:
            logger.warning(f"⚠️ [Curriculum] Dropping blank expression in topic '{raw.get('id')}'")
            continue
        expressions.append(Expression(korean=korean, english=(item.get("english") or "").strip()))

    if not expressions:
        return None

    return Topic(
        id=str(raw.get("id") or f"season_{position + 1}"),
        season=int(raw.get("season") or position + 1),
        title=raw.get("topic") or raw.get("title") or "",
        title_en=raw.get("topicEn") or raw.get("topic_en") or "",
        expressions=expressions,
    )


def load_topics(path: Union[str, Path]) -> List[Topic]:
    """
    Load seasons from a topics file.

    Args:
        path: JSON file with a top-level "topics" list

    Returns:
        Topics in file order; the built-in fallback topic if the file is
        missing, unreadable or empty
    """
    try:
        data = json.loads(Path(path).read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        logger.error(f"❌ [Curriculum] Error loading topics from {path}: {e}")
        return [fallback_topic()]

    raw_topics = data.get("topics") if isinstance(data, dict) else data
    topics = []
    for position, raw in enumerate(raw_topics or []):
        topic = _parse_topic(raw, position)
        if topic:
            topics.append(topic)

    if not topics:
        logger.error(f"❌ [Curriculum] No topics found in {path}")
        return [fallback_topic()]

    logger.info(f"📚 [Curriculum] Loaded {len(topics)} topics/seasons")
    return topics


def shuffle_expressions(expressions: List[Expression], rng: Optional[random.Random] = None) -> List[Expression]:
    """Fisher-Yates shuffle into a new list."""
    rng = rng or random.Random()
    shuffled = list(expressions)
    for i in range(len(shuffled) - 1, 0, -1):
        j = rng.randint(0, i)
        shuffled[i], shuffled[j] = shuffled[j], shuffled[i]
    return shuffled


def restore_order(expressions: List[Expression], order: List[str]) -> Optional[List[Expression]]:
    """
    Rebuild a saved teaching order from the season's expressions.

    Returns:
        Expressions in the saved order, or None if the order is empty or
        names a phrase the season no longer has
    """
    if not order:
        return None
    by_phrase = {expression.korean: expression for expression in expressions}
    if any(phrase not in by_phrase for phrase in order):
        return None
    return [by_phrase[phrase] for phrase in order]


class Curriculum:
    """Ordered seasons with wrap-around indexing."""

    def __init__(self, topics: Optional[List[Topic]] = None):
        self.topics = topics or [fallback_topic()]

    @classmethod
    def from_file(cls, path: Union[str, Path]) -> "Curriculum":
        return cls(load_topics(path))

    def __len__(self) -> int:
        return len(self.topics)

    def season(self, index: int) -> Topic:
        return self.topics[index % len(self.topics)]

    def next_index(self, index: int) -> int:
        return (index + 1) % len(self.topics)

    def is_last(self, index: int) -> bool:
        return index >= len(self.topics) - 1
