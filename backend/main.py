"""
FastAPI Backend for the Shadowing Tutor

Thin presentation adapter around TutorSessionController:
- Session commands (start, reset, stop recording)
- Event feed polled by the web client (tutor events plus playback and
  recording commands)
- Upload endpoints that complete client-side playback and recording
- Season progress persisted to Supabase when configured
"""

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel
from typing import Optional, List, Dict, Any
import os
import sys
import base64
import binascii
import logging
import signal

# Setup enhanced logging with pretty formatting
from lib.logger import setup_logging, get_logger

setup_logging(level=logging.INFO, use_colors=True)

logger = get_logger("backend.main")

# Add the shadowing_tutor package to Python path
backend_dir = os.path.dirname(os.path.abspath(__file__))
project_root = os.path.dirname(backend_dir)

package_src = os.path.join(project_root, 'shadowing_tutor', 'src')
if os.path.exists(package_src) and package_src not in sys.path:
    sys.path.insert(0, package_src)

from lib.supabase_client import get_optional_supabase_client
from lib.web_collaborators import ClientMicrophoneGate, ClientPlaybackSpeaker, ClientUploadRecorder, EventFeed

from shadowing_tutor.collaborators import SpeakOutcome
from shadowing_tutor.config import TutorSettings
from shadowing_tutor.line_generator import OpenAILineGenerator
from shadowing_tutor.progress_store import SeasonProgressStore
from shadowing_tutor.speech_services import OpenAIPronunciationScorer, OpenAISpeechSynthesizer, OpenAITranscriber
from shadowing_tutor.tutor_controller import TutorSessionController
from shadowing_tutor.tutor_state import TutorEvent

# Singletons shared by all requests
_feed: Optional[EventFeed] = None
_controller: Optional[TutorSessionController] = None
_speaker: Optional[ClientPlaybackSpeaker] = None
_recorder: Optional[ClientUploadRecorder] = None
_microphone: Optional[ClientMicrophoneGate] = None


def get_feed() -> EventFeed:
    global _feed
    if _feed is None:
        _feed = EventFeed(max_events=int(os.getenv("EVENT_FEED_SIZE", "500")))
    return _feed


def get_controller() -> TutorSessionController:
    """Get or create the singleton controller and its web collaborators."""
    global _controller, _speaker, _recorder, _microphone
    if _controller is None:
        feed = get_feed()
        settings = TutorSettings.from_env()

        _speaker = ClientPlaybackSpeaker(feed, synthesizer=OpenAISpeechSynthesizer())
        _recorder = ClientUploadRecorder(feed)
        _microphone = ClientMicrophoneGate(feed)

        use_remote_scorer = os.getenv("USE_REMOTE_SCORER", "false").lower() == "true"
        store = SeasonProgressStore(
            supabase_client=get_optional_supabase_client(),
            file_path=settings.progress_file,
            learner_id=os.getenv("TUTOR_LEARNER_ID", "default"),
        )

        _controller = TutorSessionController(
            speaker=_speaker,
            recorder=_recorder,
            transcriber=OpenAITranscriber(),
            scorer=OpenAIPronunciationScorer() if use_remote_scorer else None,
            line_generator=OpenAILineGenerator(),
            microphone=_microphone,
            progress_store=store,
            settings=settings,
        )
        _controller.add_listener(_forward_event)
        logger.success("Session controller ready", {
            "remote_scorer": use_remote_scorer,
            "topics": str(settings.topics_path),
            "supabase": store.use_supabase,
        })
    return _controller


def _forward_event(event: TutorEvent) -> None:
    get_feed().publish(event.kind, {**event.data, "state": event.state.value, "session_version": event.session_version})


# Initialize FastAPI app
app = FastAPI(
    title="Shadowing Tutor API",
    description="Session control and event feed for the Korean shadowing tutor",
    version="1.0.0"
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        "http://localhost:3000",
        "http://localhost:3001",
        "http://127.0.0.1:3000",
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ==================== Pydantic Models ====================

class StartRequest(BaseModel):
    resume: bool = False


class RecordingUpload(BaseModel):
    request_id: int
    audio_base64: str


class RecordingFailure(BaseModel):
    request_id: int
    reason: str = "recording_failed"


class PlaybackReport(BaseModel):
    request_id: int
    outcome: str = SpeakOutcome.COMPLETED.value


class MicrophoneStatus(BaseModel):
    granted: bool
    devices: int = 1


class SessionStateResponse(BaseModel):
    state: str
    session_version: int
    running: bool
    season_title: str
    announced_total: int
    remaining: int
    accuracy_percent: int
    last_transcript: str
    last_mismatch: str
    target_phrase: Optional[str] = None
    last_event_sequence: int


class EventsResponse(BaseModel):
    events: List[Dict[str, Any]]
    last_sequence: int


def _state_response() -> SessionStateResponse:
    controller = get_controller()
    attempt = controller.current_attempt
    return SessionStateResponse(
        state=controller.current_state.value,
        session_version=controller.session_version,
        running=controller.is_running,
        season_title=controller.season_title,
        announced_total=controller.announced_total,
        remaining=controller.remaining_in_season,
        accuracy_percent=controller.current_accuracy,
        last_transcript=controller.last_transcript,
        last_mismatch=controller.last_mismatch,
        target_phrase=attempt.target_phrase if attempt else None,
        last_event_sequence=get_feed().last_sequence,
    )


# ==================== Routes ====================

@app.get("/")
async def root():
    """Health check"""
    return {"status": "ok", "service": "Shadowing Tutor API"}


@app.get("/api/session/state", response_model=SessionStateResponse)
async def get_state():
    return _state_response()


@app.get("/api/session/events", response_model=EventsResponse)
async def get_events(after: int = 0):
    """Events and client commands newer than `after`."""
    feed = get_feed()
    events = feed.since(after)
    logger.debug("Event poll", {"after": after, "count": len(events)})
    return EventsResponse(events=events, last_sequence=feed.last_sequence)


@app.post("/api/session/start", response_model=SessionStateResponse)
async def start_session(request: StartRequest):
    logger.request("POST", "/api/session/start", {"resume": request.resume})
    get_controller().start_session(resume=request.resume)
    return _state_response()


@app.post("/api/session/reset", response_model=SessionStateResponse)
async def reset_session():
    logger.request("POST", "/api/session/reset")
    get_controller().reset_to_home(reason="client_reset")
    return _state_response()


@app.post("/api/session/stop-recording")
async def stop_recording():
    get_controller().stop_recording_manually()
    return {"status": "ok"}


@app.post("/api/session/recording")
async def upload_recording(upload: RecordingUpload):
    get_controller()
    try:
        audio = base64.b64decode(upload.audio_base64, validate=True)
    except (binascii.Error, ValueError):
        logger.warning("Rejected recording upload", {"request_id": upload.request_id})
        raise HTTPException(status_code=400, detail="audio_base64 is not valid base64")

    accepted = _recorder.deliver_audio(upload.request_id, audio)
    return {"accepted": accepted}


@app.post("/api/session/recording-error")
async def recording_error(failure: RecordingFailure):
    get_controller()
    accepted = _recorder.deliver_error(failure.request_id, failure.reason)
    return {"accepted": accepted}


@app.post("/api/session/playback-complete")
async def playback_complete(report: PlaybackReport):
    get_controller()
    try:
        outcome = SpeakOutcome(report.outcome)
    except ValueError:
        logger.warning("Rejected playback report", {"request_id": report.request_id, "outcome": report.outcome})
        raise HTTPException(status_code=400, detail=f"Unknown playback outcome '{report.outcome}'")
    accepted = _speaker.complete(report.request_id, outcome)
    return {"accepted": accepted}


@app.post("/api/microphone")
async def update_microphone(status: MicrophoneStatus):
    get_controller()
    _microphone.update(status.granted, status.devices)
    return {"granted": status.granted, "devices": status.devices}


@app.on_event("startup")
async def startup_event():
    """Startup event - boot the controller."""
    try:
        ready = await get_controller().initialize()
    except Exception as e:
        logger.error("Controller failed to start", error=e)
        raise
    logger.section("TUTOR READY", {"microphone_ready": ready})


@app.on_event("shutdown")
async def shutdown_event():
    """Shutdown event - stop any running session."""
    if _controller is not None and _controller.is_running:
        _controller.reset_to_home(reason="shutdown")
        logger.info("🛑 Session stopped for shutdown")


if __name__ == "__main__":
    import uvicorn

    def handle_exit(*args):
        """Handle graceful shutdown."""
        logger.section("SERVER SHUTDOWN", {"reason": "signal received"})
        sys.exit(0)

    signal.signal(signal.SIGINT, handle_exit)
    signal.signal(signal.SIGTERM, handle_exit)

    try:
        uvicorn.run(app, host="0.0.0.0", port=int(os.getenv("PORT", "8000")))
    except KeyboardInterrupt:
        logger.info("🛑 Server stopped.")
        sys.exit(0)
