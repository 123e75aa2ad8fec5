"""
Tutor Session Controller

Cooperative asyncio state machine that runs the shadowing drill:
- Seasons -> shuffled expressions -> attempts
- Every collaborator wait bounded by its own watchdog
- Session version token checked after every await, so reset_to_home()
  is safe from any state
- Presentation decoupled through TutorEvent listeners
"""

import asyncio
import logging
import random
import time
from typing import Callable, List, Optional, Tuple

from shadowing_tutor.attempt_lifecycle import AttemptInvariantError, AttemptLifecycle, FeedbackTier, Verdict
from shadowing_tutor.collaborators import (
    LineGenerator,
    MicrophoneGate,
    ProgressStore,
    Recorder,
    RemoteScore,
    Scorer,
    Speaker,
    SpeakOutcome,
    Transcriber,
    TranscriptionResult,
)
from shadowing_tutor.config import TutorSettings
from shadowing_tutor.curriculum import Curriculum, Expression, Topic, restore_order, shuffle_expressions
from shadowing_tutor.line_generator import (
    CLARIFY_LINE,
    CONTINUE_PROMPT_LINE,
    IDLE_GOODBYE_LINE,
    NEXT_SEASON_LINE,
    SESSION_GOODBYE_LINE,
    SKIP_LINE,
    STOP_LINE,
    WRAP_AROUND_LINE,
    LineContext,
    LineTag,
    StaticLineGenerator,
    build_intro_line,
    fallback_line,
)
from shadowing_tutor.progress_store import SeasonProgressStore
from shadowing_tutor.scoring_engine import RECOGNITION_FAILED, ScoringEngine, build_comparison_text
from shadowing_tutor.season_progress import SeasonProgressTracker
from shadowing_tutor.session_version import SessionToken, SessionVersion, StaleSessionError
from shadowing_tutor.transcript_utils import normalize_transcript, validate_korean_transcript
from shadowing_tutor.tutor_state import AttemptContext, ProgressSnapshot, TutorEvent, TutorState, VoiceDecision
from shadowing_tutor.voice_intent import VoiceIntentClassifier

logger = logging.getLogger(__name__)

EventListener = Callable[[TutorEvent], None]

# Recording outcomes
REC_OK = "ok"
REC_TIMEOUT = "timeout"
REC_ERROR = "error"
REC_UNAVAILABLE = "unavailable"

MAX_VOICE_REPROMPTS = 1


class TutorSessionController:
    """
    Drives one learner through the curriculum.

    Collaborators are injected so adapters and tests can substitute their
    own. Season progress and TutorState are only changed by the controller's
    own loop; recorder callbacks only resolve futures after checking that the
    session and attempt they were issued for are still live.
    """

    def __init__(
        self,
        speaker: Speaker,
        recorder: Recorder,
        transcriber: Transcriber,
        scorer: Optional[Scorer] = None,
        line_generator: Optional[LineGenerator] = None,
        microphone: Optional[MicrophoneGate] = None,
        progress_store: Optional[ProgressStore] = None,
        curriculum: Optional[Curriculum] = None,
        settings: Optional[TutorSettings] = None,
        rng: Optional[random.Random] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.settings = settings or TutorSettings()
        self.speaker = speaker
        self.recorder = recorder
        self.transcriber = transcriber
        self.scorer = scorer
        self.line_generator = line_generator or StaticLineGenerator()
        self.microphone = microphone
        self.curriculum = curriculum or Curriculum.from_file(self.settings.topics_path)
        self.rng = rng or random.Random()
        self.clock = clock

        self.version = SessionVersion()
        store = progress_store or SeasonProgressStore(file_path=self.settings.progress_file)
        self.tracker = SeasonProgressTracker(store, max_retries=self.settings.max_retries)
        self.lifecycle = AttemptLifecycle(
            self.version,
            self.tracker,
            advance_threshold=self.settings.advance_threshold,
            excellent_threshold=self.settings.excellent_threshold,
        )
        self.scoring = ScoringEngine(advance_threshold=self.settings.advance_threshold)
        self.intent = VoiceIntentClassifier()

        self._state = TutorState.BOOT
        self._main_task: Optional[asyncio.Task] = None
        self._listeners: List[EventListener] = []
        self._event_sequence = 0
        self._play_id = 0

        # Transient presentation state, cleared on reset
        self._current_attempt: Optional[AttemptContext] = None
        self._accuracy = 0
        self._last_transcript = ""
        self._last_mismatch = ""
        self._last_line = ""
        self._season_index = 0
        self._season_title = ""

        # Disengagement tracking
        self._consecutive_silences = 0
        self._last_activity = self.clock()

    # ------------------------------------------------------------------
    # Read accessors

    @property
    def current_state(self) -> TutorState:
        return self._state

    @property
    def current_accuracy(self) -> int:
        return self._accuracy

    @property
    def remaining_in_season(self) -> int:
        return self.tracker.remaining

    @property
    def announced_total(self) -> int:
        return self.tracker.announced_total

    @property
    def session_version(self) -> int:
        return self.version.current

    @property
    def current_attempt(self) -> Optional[AttemptContext]:
        return self._current_attempt

    @property
    def last_transcript(self) -> str:
        return self._last_transcript

    @property
    def last_mismatch(self) -> str:
        return self._last_mismatch

    @property
    def season_title(self) -> str:
        return self._season_title

    @property
    def is_running(self) -> bool:
        return self._main_task is not None and not self._main_task.done()

    # ------------------------------------------------------------------
    # Events

    def add_listener(self, listener: EventListener) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: EventListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _emit(self, kind: str, **data) -> None:
        self._event_sequence += 1
        event = TutorEvent(
            kind=kind,
            state=self._state,
            data=data,
            sequence=self._event_sequence,
            session_version=self.version.current,
        )
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception as e:
                logger.warning(f"⚠️ [SessionController] Event listener failed on '{kind}': {e}")

    def _set_state(self, state: TutorState) -> None:
        if state is self._state:
            return
        previous = self._state
        self._state = state
        logger.debug(f"🔀 [SessionController] {previous.value} -> {state.value}")
        self._emit("state_changed", previous=previous.value)

    def _emit_progress(self) -> None:
        self._emit(
            "progress",
            season_index=self._season_index,
            season_title=self._season_title,
            announced_total=self.tracker.announced_total,
            remaining=self.tracker.remaining,
            completed=self.tracker.progress.completed,
        )

    # ------------------------------------------------------------------
    # Exposed operations

    async def initialize(self) -> bool:
        """
        Boot the controller and check the microphone once.

        Returns:
            True if recording is possible right now
        """
        ready = self._microphone_ready()
        if not ready:
            logger.warning("⚠️ [SessionController] Microphone not ready at boot; will re-check on start")
        self._set_state(TutorState.HOME)
        return ready

    def start_session(self, resume: bool = False) -> asyncio.Task:
        """
        Start a fresh run of the drill, replacing any run in progress.

        Must be called from a running event loop.

        Args:
            resume: Continue a season left half-way, if one was saved

        Returns:
            The task running the session loop
        """
        if self.is_running:
            logger.info("🔄 [SessionController] Session already running, resetting before restart")
            self.reset_to_home(reason="restart")

        self._reset_activity()
        token = self.version.capture()
        self._main_task = asyncio.create_task(self._run_session(token, resume))
        return self._main_task

    def reset_to_home(self, reason: str = "reset") -> None:
        """
        Stop everything and return to Home.

        Bumps the session version so every outstanding wait discards its
        result, stops playback and recording, clears transient state and
        cancels the session task when called from outside it. Idempotent
        and safe to call re-entrantly.
        """
        new_version = self.version.bump()
        self._play_id += 1

        try:
            self.speaker.force_stop()
        except Exception as e:
            logger.warning(f"⚠️ [SessionController] Speaker force_stop failed: {e}")
        self._stop_recorder()

        self._current_attempt = None
        self._accuracy = 0
        self._last_transcript = ""
        self._last_mismatch = ""

        task = self._main_task
        if task is not None and not task.done() and task is not _current_task():
            task.cancel()

        self._set_state(TutorState.HOME)
        self._emit("session_ended", reason=reason)
        logger.info(f"🏠 [SessionController] Reset to home ({reason}), session version now {new_version}")

    def stop_recording_manually(self) -> None:
        """Learner pressed stop. Safe when nothing is recording."""
        self._last_activity = self.clock()
        self._stop_recorder()

    # ------------------------------------------------------------------
    # Main loop

    async def _run_session(self, token: SessionToken, resume: bool) -> None:
        logger.info(f"🎬 [SessionController] Session started (version {token.version})")
        try:
            if not await self._ensure_microphone(token):
                return

            season_index = 0
            resumed: Optional[ProgressSnapshot] = None
            if resume:
                resumed = self.tracker.try_restore()
                if resumed:
                    season_index = resumed.season_id % len(self.curriculum)

            while True:
                await self._run_season(token, season_index, resumed)
                resumed = None

                if not await self._season_end_prompt(token):
                    break

                if self.curriculum.is_last(season_index):
                    await self._speak(WRAP_AROUND_LINE, token)
                else:
                    await self._speak(NEXT_SEASON_LINE, token)
                season_index = self.curriculum.next_index(season_index)

            await self._finish_session(token)
        except StaleSessionError as e:
            logger.info(f"🛑 [SessionController] Session loop exiting: {e}")
        except asyncio.CancelledError:
            logger.info(f"🛑 [SessionController] Session {token.version} cancelled")
            raise

    async def _run_season(self, token: SessionToken, season_index: int, resumed: Optional[ProgressSnapshot]) -> None:
        topic = self.curriculum.season(season_index)
        self._season_index = season_index
        self._season_title = topic.title
        expressions = self._resumed_order(topic, resumed) if resumed else None

        if expressions is not None:
            self.tracker.resume(resumed)
            start = self.tracker.progress.completed
        else:
            expressions = shuffle_expressions(topic.expressions, self.rng)
            self.tracker.initialize(season_index, len(expressions), [e.korean for e in expressions])
            start = 0

        self._set_state(TutorState.SEASON_INTRO)
        self._emit_progress()
        await self._speak(build_intro_line(topic.title, self.tracker.announced_total), token)

        for expression_index in range(start, len(expressions)):
            expression = expressions[expression_index]
            if not self.tracker.can_start_new_expression():
                break

            completed = await self._run_expression(token, expression_index, expression)
            if not completed:
                continue

            self._emit_progress()
            if not self.tracker.can_start_new_expression():
                break

            if not await self._ask_to_continue(token):
                await self._stop_for_today(token)

    def _resumed_order(self, topic: Topic, snapshot: ProgressSnapshot) -> Optional[List[Expression]]:
        """Saved teaching order for a resumed season, None to start the season over."""
        expressions = restore_order(topic.expressions, snapshot.expression_order)
        if expressions is None or len(expressions) != snapshot.announced_total:
            logger.warning(
                f"⚠️ [SessionController] Saved order for season {snapshot.season_id} "
                f"does not match '{topic.title}', starting the season over"
            )
            return None
        return expressions

    async def _run_expression(self, token: SessionToken, expression_index: int, expression: Expression) -> bool:
        """
        Teach one expression until it is passed or skipped.

        Returns:
            True if the expression was completed (advanced or skipped),
            False if it had to be abandoned
        """
        self.tracker.reset_retry()
        self.tracker.mark_expression(expression_index)

        self._set_state(TutorState.TOPIC_PROMPT)
        self._emit(
            "expression_started",
            expression_index=expression_index,
            korean=expression.korean,
            english=expression.english,
        )
        prompt = await self._line(LineTag.PROMPT, token, target=expression.korean)
        await self._speak(prompt, token)
        await self._play_target(expression.korean, token, self.settings.tts_repeat_count)

        while True:
            if self._idle_expired():
                await self._end_for_inactivity(token)

            try:
                attempt = self.lifecycle.create_attempt(self._season_index, expression_index, expression.korean)
            except AttemptInvariantError as e:
                logger.error(f"❌ [SessionController] Abandoning expression: {e}")
                return False
            self._current_attempt = attempt

            await self._pause(self.settings.delay_before_recording, token)
            silent = await self._capture_attempt(attempt, token)
            self._publish_attempt(attempt, token)

            try:
                decision = self.lifecycle.try_advance(attempt)
            except AttemptInvariantError as e:
                logger.error(f"❌ [SessionController] Abandoning expression: {e}")
                return False

            if decision.verdict is Verdict.STALE:
                token.check()
                return False

            if decision.verdict is Verdict.ADVANCE:
                await self._praise(attempt, expression, token)
                return True

            if silent and self._register_silence():
                await self._end_for_inactivity(token)

            if self.lifecycle.register_retry():
                await self._speak(SKIP_LINE, token)
                await self._pause(self.settings.delay_after_feedback, token)
                self.lifecycle.force_skip(attempt)
                return True

            self._set_state(TutorState.RETRY_PROMPT)
            tag = LineTag.RETRY if attempt.recognition_failed else LineTag.FEEDBACK_FAIL
            line = await self._line(tag, token, attempt=attempt)
            await self._speak(line, token)
            await self._pause(self.settings.repeat_pause_seconds, token)
            await self._play_target(expression.korean, token, 1)

    # ------------------------------------------------------------------
    # One attempt: record -> transcribe -> score

    async def _capture_attempt(self, attempt: AttemptContext, token: SessionToken) -> bool:
        """
        Fill the attempt with transcript and score.

        Returns:
            True if this attempt was a silence or invalid-utterance event
        """
        self._set_state(TutorState.RECORDING)
        audio, status = await self._record(token, self.settings.recording_timeout, attempt)
        if status == REC_TIMEOUT:
            attempt.mark_timed_out()
            return False
        if status != REC_OK:
            attempt.mark_empty()
            return True

        self._set_state(TutorState.SCORING)
        result, status = await self._transcribe(audio, token)
        if status == REC_TIMEOUT:
            attempt.mark_timed_out()
            return False
        if result is None:
            attempt.mark_empty()
            return True

        transcript = normalize_transcript(result.text)
        validation = validate_korean_transcript(transcript, self.settings.min_korean_ratio)
        if not validation.is_valid:
            logger.info(f"🔇 [SessionController] Invalid utterance '{transcript}': {validation.reason}")
            self._last_transcript = transcript
            attempt.mark_empty(validation.reason)
            return True

        self._mark_activity()
        attempt.transcript = transcript
        self._last_transcript = transcript

        remote: Optional[RemoteScore] = None
        if self.scorer is not None:
            try:
                remote = await asyncio.wait_for(
                    self.scorer.score(attempt.target_phrase, transcript),
                    timeout=self.settings.scoring_timeout,
                )
            except asyncio.TimeoutError:
                token.check()
                logger.warning(f"⏱️ [SessionController] Scoring watchdog fired for attempt #{attempt.attempt_id}")
                attempt.mark_timed_out()
                return False
            except Exception as e:
                logger.warning(f"⚠️ [SessionController] Remote scorer failed, scoring locally: {e}")
            token.check()

        evaluation = self.scoring.evaluate(attempt.target_phrase, transcript, remote)
        attempt.accuracy_percent = evaluation.accuracy_percent
        attempt.mismatch_summary = evaluation.mismatch_summary
        logger.info(
            f"🎯 [SessionController] Attempt #{attempt.attempt_id}: '{transcript}' "
            f"{evaluation.accuracy_percent}% ({evaluation.source})"
        )
        return False

    def _publish_attempt(self, attempt: AttemptContext, token: SessionToken) -> None:
        token.check()
        self._accuracy = attempt.accuracy_percent
        if attempt.recognition_failed:
            self._last_mismatch = attempt.mismatch_summary or RECOGNITION_FAILED
        else:
            self._last_mismatch = attempt.mismatch_summary

        self._set_state(TutorState.FEEDBACK)
        self._emit(
            "attempt_scored",
            attempt_id=attempt.attempt_id,
            target=attempt.target_phrase,
            transcript=attempt.transcript or RECOGNITION_FAILED,
            accuracy_percent=attempt.accuracy_percent,
            mismatch=self._last_mismatch,
            timed_out=attempt.timed_out,
            transcript_empty=attempt.transcript_empty,
            comparison_text=build_comparison_text(
                attempt.accuracy_percent,
                attempt.mismatch_summary,
                attempt.recognition_failed,
                excellent_threshold=self.settings.excellent_threshold,
                advance_threshold=self.settings.advance_threshold,
            ),
        )

    async def _praise(self, attempt: AttemptContext, expression: Expression, token: SessionToken) -> None:
        tier = self.lifecycle.feedback_tier(attempt.accuracy_percent)
        if tier is FeedbackTier.EXCELLENT:
            line = await self._line(LineTag.FEEDBACK_EXCELLENT, token, attempt=attempt)
            await self._speak(line, token)
        else:
            # Pass tier offers one optional polish attempt
            line = await self._line(LineTag.FEEDBACK_PASS, token, attempt=attempt)
            await self._speak(line, token)
            decision = await self._listen_for_decision(token, self.settings.continuation_listen_timeout)
            if decision is VoiceDecision.POSITIVE:
                await self._polish(expression, token)
        await self._pause(self.settings.delay_after_feedback, token)

    async def _polish(self, expression: Expression, token: SessionToken) -> None:
        """One extra practice round. Its result never touches progress."""
        await self._play_target(expression.korean, token, 1)
        await self._pause(self.settings.delay_before_recording, token)
        self._emit("listening", purpose="polish")
        _, status = await self._record(token, self.settings.polish_recording_timeout)
        logger.info(f"✨ [SessionController] Polish attempt finished ({status})")

    # ------------------------------------------------------------------
    # Collaborator waits

    async def _record(
        self,
        token: SessionToken,
        timeout: float,
        attempt: Optional[AttemptContext] = None,
    ) -> Tuple[Optional[bytes], str]:
        """
        Record once and wait for the recorder's callback.

        Returns:
            (audio, status) where status is ok, timeout, error or unavailable
        """
        loop = asyncio.get_running_loop()
        done: asyncio.Future = loop.create_future()
        attempt_id = attempt.attempt_id if attempt else None

        def is_live() -> bool:
            if not token.is_valid:
                return False
            if attempt_id is not None:
                current = self._current_attempt
                return current is not None and current.attempt_id == attempt_id
            return True

        def on_complete(audio: bytes) -> None:
            if not is_live():
                logger.debug(f"🗑️ [SessionController] Discarding stale recording (version {token.version})")
                return
            if not done.done():
                done.set_result((REC_OK, audio))

        def on_error(reason: str) -> None:
            if not is_live():
                logger.debug(f"🗑️ [SessionController] Discarding stale recording error (version {token.version})")
                return
            if not done.done():
                done.set_result((REC_ERROR, reason))

        try:
            started = self.recorder.start_recording(on_complete, on_error)
        except Exception as e:
            logger.warning(f"⚠️ [SessionController] Recorder failed to start: {e}")
            started = False
        if not started:
            token.check()
            logger.warning("⚠️ [SessionController] Recording could not start")
            return None, REC_UNAVAILABLE

        try:
            status, payload = await asyncio.wait_for(done, timeout=timeout)
        except asyncio.TimeoutError:
            token.check()
            logger.warning(f"⏱️ [SessionController] Recording watchdog fired after {timeout}s")
            self._stop_recorder()
            return None, REC_TIMEOUT

        token.check()
        if status == REC_ERROR:
            logger.warning(f"⚠️ [SessionController] Recording failed: {payload}")
            return None, REC_ERROR
        if not payload:
            return None, REC_ERROR
        return payload, REC_OK

    async def _transcribe(self, audio: bytes, token: SessionToken) -> Tuple[Optional[TranscriptionResult], str]:
        try:
            result = await asyncio.wait_for(
                self.transcriber.transcribe(audio, self.settings.language_hint),
                timeout=self.settings.stt_timeout,
            )
        except asyncio.TimeoutError:
            token.check()
            logger.warning(f"⏱️ [SessionController] Transcription watchdog fired after {self.settings.stt_timeout}s")
            return None, REC_TIMEOUT
        except Exception as e:
            token.check()
            logger.warning(f"⚠️ [SessionController] Transcription failed: {e}")
            return None, REC_ERROR
        token.check()
        return result, REC_OK

    async def _speak(self, text: str, token: SessionToken) -> SpeakOutcome:
        """Play a line, bounded by the playback watchdog. Failures continue silently."""
        token.check()
        self._play_id += 1
        play_id = self._play_id
        self._last_line = text
        self._emit("speech", text=text, play_id=play_id)

        try:
            outcome = await asyncio.wait_for(self.speaker.speak(text), timeout=self.settings.tts_timeout)
        except asyncio.TimeoutError:
            outcome = SpeakOutcome.TIMEOUT
            try:
                self.speaker.force_stop()
            except Exception as e:
                logger.warning(f"⚠️ [SessionController] Speaker force_stop failed: {e}")
        except Exception as e:
            logger.warning(f"⚠️ [SessionController] Playback raised: {e}")
            outcome = SpeakOutcome.PLAYBACK_ERROR

        token.check()
        if play_id != self._play_id:
            logger.debug(f"🗑️ [SessionController] Playback {play_id} superseded")
            return outcome
        if not outcome.ok:
            logger.warning(f"🔇 [SessionController] Playback ended with {outcome.value}, continuing without audio")
        return outcome

    async def _play_target(self, phrase: str, token: SessionToken, count: int) -> None:
        for i in range(count):
            await self._speak(phrase, token)
            if i < count - 1:
                await self._pause(self.settings.repeat_pause_seconds, token)

    async def _pause(self, seconds: float, token: SessionToken) -> None:
        await asyncio.sleep(max(0.0, seconds))
        token.check()

    async def _line(
        self,
        tag: LineTag,
        token: SessionToken,
        attempt: Optional[AttemptContext] = None,
        target: str = "",
    ) -> str:
        context = LineContext(
            season_title=self._season_title,
            target_phrase=target or (attempt.target_phrase if attempt else ""),
            attempt_number=self.tracker.retry_count + 1,
            accuracy_percent=attempt.accuracy_percent if attempt else 0,
            mismatch_summary=attempt.mismatch_summary if attempt else "",
            last_message_text=self._last_line,
        )
        try:
            line = await asyncio.wait_for(
                self.line_generator.generate_line(tag, context),
                timeout=self.settings.line_timeout,
            )
        except asyncio.TimeoutError:
            logger.warning(f"⏱️ [SessionController] Line generation timed out for {tag.value}")
            line = ""
        except Exception as e:
            logger.warning(f"⚠️ [SessionController] Line generation failed for {tag.value}: {e}")
            line = ""
        token.check()
        if not line or not line.strip():
            return fallback_line(tag)
        return line.strip()

    # ------------------------------------------------------------------
    # Yes/no prompts

    async def _listen_for_decision(self, token: SessionToken, timeout: float) -> VoiceDecision:
        self._emit("listening", purpose="decision")
        audio, status = await self._record(token, timeout)
        if status != REC_OK:
            return VoiceDecision.UNKNOWN

        result, status = await self._transcribe(audio, token)
        if result is None:
            return VoiceDecision.UNKNOWN

        text = normalize_transcript(result.text)
        decision = self.intent.classify(text)
        if decision is not VoiceDecision.UNKNOWN or validate_korean_transcript(text).is_valid:
            self._mark_activity()
        self._emit("decision", transcript=text, decision=decision.value)
        logger.info(f"🗣️ [SessionController] Heard '{text}' -> {decision.value}")
        return decision

    async def _ask_to_continue(self, token: SessionToken) -> bool:
        """Voice continuation prompt. A second unclear answer counts as no."""
        await self._speak(CONTINUE_PROMPT_LINE, token)
        reprompts = 0
        while True:
            await self._pause(self.settings.delay_before_recording, token)
            decision = await self._listen_for_decision(token, self.settings.continuation_listen_timeout)
            if decision is VoiceDecision.POSITIVE:
                return True
            if decision is VoiceDecision.NEGATIVE:
                return False
            if reprompts >= MAX_VOICE_REPROMPTS:
                logger.info("🗣️ [SessionController] Still unclear after re-prompt, treating as no")
                return False
            reprompts += 1
            await self._speak(CLARIFY_LINE, token)

    async def _season_end_prompt(self, token: SessionToken) -> bool:
        """
        Ask whether to move on to the next season.

        Returns:
            False when the learner declined; unclear answers move on
        """
        self._set_state(TutorState.SEASON_END_PROMPT)
        self._emit_progress()
        line = await self._line(LineTag.SEASON_END, token)
        await self._speak(line, token)
        await self._pause(self.settings.delay_before_recording, token)
        decision = await self._listen_for_decision(token, self.settings.season_end_listen_timeout)
        if decision is VoiceDecision.NEGATIVE:
            await self._speak(SESSION_GOODBYE_LINE, token)
            return False
        return True

    # ------------------------------------------------------------------
    # Endings

    async def _finish_session(self, token: SessionToken) -> None:
        token.check()
        self.tracker.clear()
        self._set_state(TutorState.END)
        self._emit("session_ended", reason="completed")
        logger.info("🏁 [SessionController] Session complete")
        await self._pause(self.settings.end_pause_seconds, token)
        self._set_state(TutorState.HOME)

    async def _stop_for_today(self, token: SessionToken) -> None:
        """Learner declined to continue mid-season. Progress is kept for resume."""
        await self._speak(STOP_LINE, token)
        await self._pause(self.settings.repeat_pause_seconds, token)
        self.reset_to_home(reason="stopped")
        token.check()

    async def _end_for_inactivity(self, token: SessionToken) -> None:
        logger.info(
            f"😴 [SessionController] Ending for inactivity "
            f"(silences={self._consecutive_silences})"
        )
        await self._speak(IDLE_GOODBYE_LINE, token)
        self.reset_to_home(reason="idle")
        token.check()

    # ------------------------------------------------------------------
    # Activity and hardware

    def _reset_activity(self) -> None:
        self._consecutive_silences = 0
        self._last_activity = self.clock()

    def _mark_activity(self) -> None:
        self._consecutive_silences = 0
        self._last_activity = self.clock()

    def _register_silence(self) -> bool:
        """Count a silence or invalid utterance. True when the limit is reached."""
        self._consecutive_silences += 1
        logger.info(
            f"🔇 [SessionController] Silence {self._consecutive_silences}/"
            f"{self.settings.max_consecutive_silences}"
        )
        return self._consecutive_silences >= self.settings.max_consecutive_silences

    def _idle_expired(self) -> bool:
        return self.clock() - self._last_activity > self.settings.idle_timeout_seconds

    def _stop_recorder(self) -> None:
        try:
            if self.recorder.is_recording:
                self.recorder.stop_recording_gracefully()
        except Exception as e:
            logger.warning(f"⚠️ [SessionController] Recorder stop failed: {e}")

    def _microphone_ready(self) -> bool:
        if self.microphone is None:
            return True
        try:
            return self.microphone.has_permission() and self.microphone.device_count() > 0
        except Exception as e:
            logger.warning(f"⚠️ [SessionController] Microphone check failed: {e}")
            return False

    async def _ensure_microphone(self, token: SessionToken) -> bool:
        """Permission and a device are hard requirements for starting a session."""
        if self.microphone is None:
            return True

        try:
            granted = self.microphone.has_permission()
            if not granted:
                granted = await asyncio.wait_for(
                    self.microphone.request_permission(),
                    timeout=self.settings.mic_permission_timeout,
                )
        except asyncio.TimeoutError:
            granted = False
        except Exception as e:
            logger.warning(f"⚠️ [SessionController] Microphone permission request failed: {e}")
            granted = False
        token.check()

        if not granted:
            logger.error("❌ [SessionController] Microphone permission denied")
            self._set_state(TutorState.HOME)
            self._emit("blocked", reason="microphone_permission_denied")
            return False

        try:
            devices = self.microphone.device_count()
        except Exception as e:
            logger.warning(f"⚠️ [SessionController] Microphone device query failed: {e}")
            devices = 0
        if devices <= 0:
            logger.error("❌ [SessionController] No microphone device found")
            self._set_state(TutorState.HOME)
            self._emit("blocked", reason="no_microphone_device")
            return False

        return True


def _current_task() -> Optional[asyncio.Task]:
    try:
        return asyncio.current_task()
    except RuntimeError:
        return None
