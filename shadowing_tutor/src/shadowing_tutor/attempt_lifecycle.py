"""
Attempt Lifecycle

Creates AttemptContext snapshots and owns the single gate that decides
whether an attempt advances the season or is retried. No other code path
changes season progress.
"""

import logging
from dataclasses import dataclass
from enum import Enum

from shadowing_tutor.season_progress import SeasonProgressTracker
from shadowing_tutor.session_version import SessionVersion
from shadowing_tutor.tutor_state import AttemptContext

logger = logging.getLogger(__name__)


class AttemptInvariantError(ValueError):
    """An attempt reached the gate in a state that should be impossible."""


class Verdict(Enum):
    ADVANCE = "advance"
    RETRY = "retry"
    STALE = "stale"  # Attempt belongs to a reset session; nothing changed


class FeedbackTier(Enum):
    EXCELLENT = "excellent"
    PASS = "pass"
    FAIL = "fail"


@dataclass
class AdvanceDecision:
    verdict: Verdict
    season_continues: bool = True
    skipped: bool = False


class AttemptLifecycle:
    """
    Attempt factory and advance/retry gate.

    try_advance() depends only on the attempt, the live session version and
    the tracker's counters, so the same inputs always give the same verdict.
    """

    def __init__(
        self,
        version: SessionVersion,
        tracker: SeasonProgressTracker,
        advance_threshold: int = 65,
        excellent_threshold: int = 90,
    ):
        self.version = version
        self.tracker = tracker
        self.advance_threshold = advance_threshold
        self.excellent_threshold = excellent_threshold
        self._next_attempt_id = 0

    def create_attempt(self, season_index: int, expression_index: int, target_phrase: str) -> AttemptContext:
        """
        Snapshot a new attempt against the live session version.

        Raises:
            AttemptInvariantError: if the target phrase is blank
        """
        if not target_phrase or not target_phrase.strip():
            raise AttemptInvariantError(
                f"empty target phrase for season {season_index}, expression {expression_index}"
            )
        self._next_attempt_id += 1
        return AttemptContext(
            session_version=self.version.current,
            attempt_id=self._next_attempt_id,
            season_index=season_index,
            expression_index=expression_index,
            target_phrase=target_phrase,
        )

    def is_attempt_valid(self, ctx: AttemptContext) -> bool:
        return ctx is not None and ctx.session_version == self.version.current

    def try_advance(self, ctx: AttemptContext) -> AdvanceDecision:
        """
        Decide whether a scored attempt advances the season.

        Args:
            ctx: The scored attempt

        Returns:
            AdvanceDecision; ADVANCE also decrements the season countdown

        Raises:
            AttemptInvariantError: if the attempt has no target phrase
        """
        if not self.is_attempt_valid(ctx):
            logger.info(
                f"🛡️ [AttemptGate] Ignoring stale attempt #{ctx.attempt_id} "
                f"(version {ctx.session_version}, current {self.version.current})"
            )
            return AdvanceDecision(Verdict.STALE, season_continues=False)

        if not ctx.target_phrase or not ctx.target_phrase.strip():
            raise AttemptInvariantError(f"attempt #{ctx.attempt_id} has no target phrase")

        if ctx.timed_out or ctx.transcript_empty:
            logger.info(
                f"🔁 [AttemptGate] Attempt #{ctx.attempt_id} retry "
                f"(timed_out={ctx.timed_out}, empty={ctx.transcript_empty})"
            )
            return AdvanceDecision(Verdict.RETRY, season_continues=True)

        if ctx.accuracy_percent >= self.advance_threshold:
            continues = self.tracker.complete_expression()
            logger.info(f"✅ [AttemptGate] Attempt #{ctx.attempt_id} advance at {ctx.accuracy_percent}%")
            return AdvanceDecision(Verdict.ADVANCE, season_continues=continues)

        logger.info(f"🔁 [AttemptGate] Attempt #{ctx.attempt_id} retry at {ctx.accuracy_percent}%")
        return AdvanceDecision(Verdict.RETRY, season_continues=True)

    def register_retry(self) -> bool:
        """
        Count a RETRY verdict toward the cap, whatever caused it.

        Returns:
            True when the expression must be skipped
        """
        return self.tracker.increment_retry()

    def force_skip(self, ctx: AttemptContext) -> AdvanceDecision:
        """Skip the expression after too many retries. Counts as an advance."""
        if not self.is_attempt_valid(ctx):
            return AdvanceDecision(Verdict.STALE, season_continues=False)
        continues = self.tracker.complete_expression()
        logger.info(f"⏭️ [AttemptGate] Skipping '{ctx.target_phrase}' after {self.tracker.max_retries} retries")
        return AdvanceDecision(Verdict.ADVANCE, season_continues=continues, skipped=True)

    def feedback_tier(self, accuracy_percent: int) -> FeedbackTier:
        if accuracy_percent >= self.excellent_threshold:
            return FeedbackTier.EXCELLENT
        if accuracy_percent >= self.advance_threshold:
            return FeedbackTier.PASS
        return FeedbackTier.FAIL
