"""
OpenAI Speech Services

Network-backed collaborators built on the OpenAI API:
- Whisper transcription
- TTS synthesis (audio handed to a playback adapter)
- LLM pronunciation scoring that reports wrong parts
"""

import io
import json
import logging
import os
import re
import time
from typing import Optional

from dotenv import load_dotenv
from openai import AsyncOpenAI

from shadowing_tutor.collaborators import RemoteScore, ScoringError, TranscriptionError, TranscriptionResult
from shadowing_tutor.transcript_utils import normalize_transcript

load_dotenv()

logger = logging.getLogger(__name__)

DEFAULT_STT_MODEL = "whisper-1"
DEFAULT_TTS_MODEL = "tts-1"
DEFAULT_TTS_VOICE = "nova"
MAX_WRONG_PARTS = 3


def _client_from_env(api_key: Optional[str]) -> Optional[AsyncOpenAI]:
    api_key = api_key or os.getenv("OPENAI_API_KEY")
    return AsyncOpenAI(api_key=api_key) if api_key else None


class OpenAITranscriber:
    """Transcribes recorded WAV audio with Whisper."""

    def __init__(self, api_key: Optional[str] = None, model: str = DEFAULT_STT_MODEL):
        self.client = _client_from_env(api_key)
        self.model = model

    async def transcribe(self, audio: bytes, language_hint: str) -> TranscriptionResult:
        """
        Transcribe audio to text.

        Args:
            audio: WAV-encoded recording
            language_hint: ISO 639-1 code, e.g. "ko"

        Returns:
            TranscriptionResult with cleaned and raw text

        Raises:
            TranscriptionError: if the client is missing or the call fails
        """
        if self.client is None:
            raise TranscriptionError("OpenAI client not available, cannot transcribe audio")
        if not audio:
            raise TranscriptionError("No audio provided for transcription")

        audio_file = io.BytesIO(audio)
        audio_file.name = "speech.wav"

        start = time.perf_counter()
        try:
            kwargs = {
                "model": self.model,
                "file": audio_file,
                "response_format": "text",
            }
            if language_hint:
                kwargs["language"] = language_hint
            transcription = await self.client.audio.transcriptions.create(**kwargs)
        except Exception as e:
            raise TranscriptionError(f"Transcription failed: {e}") from e

        raw = transcription if isinstance(transcription, str) else getattr(transcription, "text", str(transcription))
        raw = raw.strip()
        duration_ms = (time.perf_counter() - start) * 1000
        logger.info(f"🎙️ [STT] Transcribed '{raw[:50]}' ({duration_ms:.0f}ms)")
        return TranscriptionResult(text=normalize_transcript(raw), raw_text=raw)


class OpenAISpeechSynthesizer:
    """Text to MP3 bytes with OpenAI TTS. Returns None when unavailable."""

    def __init__(self, api_key: Optional[str] = None, model: str = DEFAULT_TTS_MODEL, voice: str = DEFAULT_TTS_VOICE):
        self.client = _client_from_env(api_key)
        self.model = model
        self.voice = voice

    @property
    def available(self) -> bool:
        return self.client is not None

    async def synthesize(self, text: str) -> Optional[bytes]:
        if self.client is None:
            logger.warning("⚠️ [TTS] OpenAI client not available, skipping synthesis")
            return None
        if not text or not text.strip():
            return None
        try:
            response = await self.client.audio.speech.create(
                model=self.model,
                voice=self.voice,
                input=text,
                response_format="mp3",
            )
            return response.content
        except Exception as e:
            logger.warning(f"⚠️ [TTS] Synthesis failed: {e}")
            return None


class OpenAIPronunciationScorer:
    """
    Remote scorer that asks a lightweight model to compare target and transcript.

    Raises ScoringError on any failure so the controller falls back to local
    edit-distance scoring.
    """

    def __init__(self, api_key: Optional[str] = None, model: Optional[str] = None):
        self.llm_client = _client_from_env(api_key)
        self.model = model or os.getenv("OPENAI_MODEL", "gpt-4o-mini")

    async def score(self, target: str, transcript: str) -> RemoteScore:
        if not self.llm_client:
            raise ScoringError("OpenAI client not available")

        prompt = f"""Compare a Korean learner's spoken attempt with the target phrase.

Target: {target}
Heard: {transcript}

Ignore punctuation and spacing. Score how closely the attempt matches the target from 0 to 100 and list up to {MAX_WRONG_PARTS} short parts of the target that were said wrong.

Return ONLY a JSON object with this exact format:
{{"accuracy_percent": 0-100, "wrong_parts": ["..."]}}

Do not include any other text."""

        try:
            completion = await self.llm_client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": "You are a Korean pronunciation evaluator. Return only valid JSON."},
                    {"role": "user", "content": prompt},
                ],
                temperature=0.0,
                max_tokens=150,
            )
            content = completion.choices[0].message.content.strip()

            # Extract JSON
            json_match = re.search(r'\{.*\}', content, re.DOTALL)
            result = json.loads(json_match.group(0) if json_match else content)
            accuracy = int(round(float(result.get("accuracy_percent", 0))))
            wrong_parts = [str(part) for part in (result.get("wrong_parts") or [])][:MAX_WRONG_PARTS]
        except Exception as e:
            raise ScoringError(f"Remote scoring failed: {e}") from e

        return RemoteScore(accuracy_percent=max(0, min(100, accuracy)), mismatch_spans=wrong_parts)
