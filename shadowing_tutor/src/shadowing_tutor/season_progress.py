"""
Season Progress Tracker

Owns the remaining-items countdown for the current season and mirrors it to
a progress store after every change.
"""

import logging
from typing import List, Optional

from shadowing_tutor.collaborators import ProgressStore
from shadowing_tutor.progress_store import SeasonProgressStore
from shadowing_tutor.tutor_state import ProgressSnapshot, SeasonProgress

logger = logging.getLogger(__name__)


class SeasonProgressTracker:
    """
    Season countdown with a per-expression retry counter.

    ``remaining`` only ever decreases within a season and never drops
    below zero. Only AttemptLifecycle should call complete_expression().
    """

    def __init__(self, store: Optional[ProgressStore] = None, max_retries: int = 3):
        self.store: ProgressStore = store or SeasonProgressStore()
        self.max_retries = max_retries
        self.progress = SeasonProgress()

    @property
    def remaining(self) -> int:
        return self.progress.remaining

    @property
    def announced_total(self) -> int:
        return self.progress.announced_total

    @property
    def retry_count(self) -> int:
        return self.progress.retry_count

    @property
    def season_index(self) -> int:
        return self.progress.season_index

    def initialize(self, season_index: int, announced_total: int, expression_order: Optional[List[str]] = None) -> None:
        """
        Start a season with the number of items announced to the learner.

        Args:
            season_index: Curriculum season being started
            announced_total: Items announced in the intro line
            expression_order: Phrases in the order they will be taught, kept
                so a resumed run continues the same sequence
        """
        total = max(0, announced_total)
        self.progress = SeasonProgress(
            season_index=season_index,
            announced_total=total,
            remaining=total,
            expression_order=list(expression_order or []),
        )
        logger.info(f"📚 [Progress] Season {season_index} initialized: {total} expressions")
        self._persist()

    def resume(self, snapshot: ProgressSnapshot) -> None:
        self.progress = SeasonProgress(
            season_index=snapshot.season_id,
            announced_total=snapshot.announced_total,
            remaining=snapshot.remaining,
            expression_index=snapshot.expression_index,
            expression_order=list(snapshot.expression_order),
        )
        logger.info(
            f"🔄 [Progress] Resumed season {snapshot.season_id}: "
            f"{snapshot.remaining}/{snapshot.announced_total} remaining"
        )

    def mark_expression(self, expression_index: int) -> None:
        self.progress.expression_index = expression_index
        self._persist()

    def can_start_new_expression(self) -> bool:
        return self.progress.remaining > 0

    def complete_expression(self) -> bool:
        """
        Count one expression as done.

        Returns:
            True if the season still has expressions left
        """
        if self.progress.remaining > 0:
            self.progress.remaining -= 1
        self.progress.retry_count = 0
        logger.info(
            f"✅ [Progress] Expression complete: {self.progress.remaining}/"
            f"{self.progress.announced_total} remaining"
        )
        self._persist()
        return self.progress.remaining > 0

    def increment_retry(self) -> bool:
        """
        Count one failed attempt on the current expression.

        Returns:
            True when the retry cap is reached and the expression should be skipped
        """
        self.progress.retry_count += 1
        logger.info(f"🔁 [Progress] Retry {self.progress.retry_count}/{self.max_retries}")
        return self.progress.retry_count >= self.max_retries

    def reset_retry(self) -> None:
        self.progress.retry_count = 0

    def try_restore(self) -> Optional[ProgressSnapshot]:
        """Return the stored snapshot if it describes a season left half-way."""
        snapshot = self.store.load()
        if snapshot is None or not snapshot.restorable:
            return None
        return snapshot

    def clear(self) -> None:
        self.progress = SeasonProgress()
        self.store.clear()
        logger.info("🧹 [Progress] Cleared saved progress")

    def _persist(self) -> None:
        self.store.save(ProgressSnapshot(
            season_id=self.progress.season_index,
            announced_total=self.progress.announced_total,
            remaining=self.progress.remaining,
            expression_index=self.progress.expression_index,
            expression_order=list(self.progress.expression_order),
        ))
