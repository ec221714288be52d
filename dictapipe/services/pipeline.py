"""Dictation pipeline: recording session to delivered text."""

import logging
import threading
import time
from typing import Optional, Protocol

from ..audio.level_monitor import LevelMonitor
from ..audio.processing import TARGET_SAMPLE_RATE, prepare_speech, resample
from ..audio.vad import VoiceActivityDetector
from ..context import ContextDetector, NullContextDetector
from ..errors import AlreadyProcessing, ContentError, DictaPipeError, StateError
from ..models.audio import MicStatus
from ..models.context import InvocationContext
from ..models.events import OutcomeStatus, PipelineOutcome
from ..models.settings import AppSettings, PolishModel, WhisperModel
from ..polishing.polisher import TextPolisher
from ..transcription.engine import TranscriptionEngine
from .publisher import PipelinePublisher
from .recording_service import RecordingService

logger = logging.getLogger(__name__)


class TextDelivery(Protocol):
    """Puts the final text where the user wants it (clipboard, paste, stdout)."""

    def deliver(self, text: str, context: InvocationContext) -> bool:
        ...


class HistorySink(Protocol):
    """Stores successful dictations."""

    def record(self, outcome: PipelineOutcome) -> None:
        ...


class NullDelivery:
    def deliver(self, text: str, context: InvocationContext) -> bool:
        return False


class NullHistory:
    def record(self, outcome: PipelineOutcome) -> None:
        pass


class DictationPipeline:
    """Runs one dictation from start trigger to delivered text.

    ``stop_and_process`` may be triggered concurrently (manual stop racing the
    max-duration auto-stop); only the first caller processes the session.
    """

    def __init__(self,
                 recording: RecordingService,
                 transcription: TranscriptionEngine,
                 polisher: TextPolisher,
                 settings: AppSettings,
                 context_detector: Optional[ContextDetector] = None,
                 delivery: Optional[TextDelivery] = None,
                 history: Optional[HistorySink] = None,
                 publisher: Optional[PipelinePublisher] = None,
                 vad: Optional[VoiceActivityDetector] = None):
        """Initialize the pipeline.

        Args:
            recording: Session controller
            transcription: Speech-to-text engine
            polisher: Text polishing service
            settings: Settings snapshot; replace with ``update_settings``
            context_detector: Reports the frontmost application
            delivery: Receives the final text
            history: Receives successful outcomes
            publisher: Publishes status, levels and outcomes
            vad: Voice-activity detector used when ``stt.vad_enabled`` is set
        """
        self.recording = recording
        self.transcription = transcription
        self.polisher = polisher
        self.context_detector = context_detector or NullContextDetector()
        self.delivery = delivery or NullDelivery()
        self.history = history or NullHistory()
        self.publisher = publisher or PipelinePublisher()
        self.vad = vad or VoiceActivityDetector()

        self._settings_lock = threading.Lock()
        self._settings = settings

        # Context captured at session start, consumed by the worker
        self._context_lock = threading.Lock()
        self._captured_context: Optional[InvocationContext] = None
        self.context_override: Optional[InvocationContext] = None

        self.monitor = LevelMonitor(
            buffer=recording.buffer,
            state=recording.state,
            publish=self.publisher.publish_levels,
            on_max_duration=self.stop_and_process,
            max_duration=settings.audio.max_recording_seconds,
            interval_ms=settings.audio.level_interval_ms,
        )

    @property
    def settings(self) -> AppSettings:
        with self._settings_lock:
            return self._settings

    def update_settings(self, settings: AppSettings) -> None:
        """Replace the settings used by the next session."""
        with self._settings_lock:
            self._settings = settings
        self.monitor.max_duration = settings.audio.max_recording_seconds
        self.monitor.interval = settings.audio.level_interval_ms / 1000.0

    # Session control

    def start_session(self) -> InvocationContext:
        """Capture the invocation context and arm recording.

        Raises:
            AlreadyProcessing: if the previous session is still being processed
            AlreadyRecording: if a session is armed
            DeviceError: if the microphone is unavailable and cannot be reopened
        """
        if self.recording.state.is_processing.load():
            logger.debug("start_session: previous session still processing, ignoring")
            raise AlreadyProcessing()
        context = self.context_override or self.context_detector.detect()
        self.recording.start_recording()
        with self._context_lock:
            self._captured_context = context
        logger.info(f"Recording started (app: {context.app_name!r}, bundle: {context.bundle_id!r}, "
                    f"url: {context.url!r})")
        self.publisher.publish_status("recording")
        self.monitor.start()
        return context

    def stop_and_process(self) -> Optional[threading.Thread]:
        """Stop the session and process it on a worker thread.

        Returns:
            The worker thread, or None if another trigger is already processing
        """
        if not self.recording.try_begin_processing():
            logger.debug("stop_and_process: already processing, skipping")
            return None
        worker = threading.Thread(target=self._run, daemon=True)
        worker.name = "PipelineWorker"
        worker.start()
        return worker

    def cancel_session(self) -> bool:
        """Discard the current recording without processing it."""
        cancelled = self.recording.cancel_recording()
        self.monitor.stop()
        self._take_context()
        if cancelled:
            self.publisher.publish_status("cancelled")
        return cancelled

    def _take_context(self) -> InvocationContext:
        with self._context_lock:
            context = self._captured_context or InvocationContext()
            self._captured_context = None
        return context

    # Processing

    def process_session(self) -> PipelineOutcome:
        """Process the current session on the calling thread.

        Raises:
            AlreadyProcessing: if another run holds the processing slot
        """
        if not self.recording.try_begin_processing():
            raise AlreadyProcessing()
        return self._run()

    def _run(self) -> PipelineOutcome:
        """Process the stopped session. The caller holds the processing slot; it is released here."""
        pipeline_start = time.monotonic()
        settings = self.settings
        context = self._take_context()
        outcome = PipelineOutcome(status=OutcomeStatus.ERROR, context=context)

        try:
            self._process(settings, context, outcome, pipeline_start)
        except ContentError as e:
            logger.info(f"Nothing to transcribe: {e.message}")
            outcome.status = OutcomeStatus.NO_SPEECH
            outcome.error = e
        except StateError as e:
            logger.info(f"Pipeline skipped: {e.message}")
            outcome.status = OutcomeStatus.SKIPPED
            outcome.error = e
        except DictaPipeError as e:
            logger.error(f"Pipeline failed: {e.message}")
            outcome.error = e
        except Exception as e:
            logger.exception(f"Unexpected pipeline error: {e}")
            outcome.error = e
        finally:
            outcome.total_elapsed_ms = int((time.monotonic() - pipeline_start) * 1000)
            self.publisher.publish_status("idle")
            self.recording.end_processing()

        logger.info(f"[timing] total pipeline: {outcome.total_elapsed_ms}ms ({outcome.status.value})")
        self.publisher.publish_outcome(outcome)
        return outcome

    def _process(self,
                 settings: AppSettings,
                 context: InvocationContext,
                 outcome: PipelineOutcome,
                 pipeline_start: float) -> None:
        samples, sample_rate = self.recording.stop_recording()
        self.monitor.stop()
        self.publisher.publish_status("transcribing")

        samples_16k = resample(samples, sample_rate, TARGET_SAMPLE_RATE)
        vad = self.vad if settings.stt.vad_enabled else None
        speech = prepare_speech(samples_16k, vad)
        outcome.samples_16k = speech

        outcome.stt_model = self.transcription.model_label(settings.stt)
        transcript = self.transcription.transcribe(
            speech,
            settings.stt,
            app_name=context.app_name,
            dictionary_terms=settings.polish.dictionary.active_terms(),
        )
        outcome.raw_text = transcript.text
        outcome.text = transcript.text
        outcome.stt_elapsed_ms = int((time.monotonic() - pipeline_start) * 1000)
        logger.info(f"[timing] stop->transcribed: {outcome.stt_elapsed_ms}ms | text: {transcript.text}")

        polish_config = settings.polish
        if polish_config.enabled:
            if self.polisher.is_polish_ready(polish_config):
                self.publisher.publish_status("polishing")
                outcome.polish_model = self.polisher.model_label(polish_config)
                polish_start = time.monotonic()
                result = self.polisher.polish(transcript.text, polish_config, context)
                outcome.polish_elapsed_ms = int((time.monotonic() - polish_start) * 1000)
                outcome.text = result.text
                outcome.reasoning = result.reasoning
            else:
                logger.info("Polish enabled but not ready (model missing or no API key), skipping")

        outcome.status = OutcomeStatus.DELIVERED
        try:
            outcome.delivered = bool(self.delivery.deliver(outcome.text, context))
        except Exception as e:
            logger.error(f"Text delivery failed: {e}")
            outcome.delivered = False

        outcome.total_elapsed_ms = int((time.monotonic() - pipeline_start) * 1000)
        try:
            self.history.record(outcome)
        except Exception as e:
            logger.error(f"Failed to record history entry: {e}")

    # Collaborator hooks

    def get_mic_status(self) -> MicStatus:
        return self.recording.capture.get_mic_status()

    def invalidate_transcription_cache(self) -> None:
        self.transcription.invalidate_cache()

    def invalidate_polish_cache(self) -> None:
        self.polisher.invalidate_cache()

    def warm_transcription_cache(self, model: Optional[WhisperModel] = None) -> None:
        """Pre-load the local Whisper model so the first dictation is fast."""
        self.transcription.warm(model or self.settings.stt.whisper_model)

    def warm_polish_cache(self, model: Optional[PolishModel] = None) -> None:
        """Pre-load the local polish model so the first polished dictation is fast."""
        self.polisher.warm(model or self.settings.polish.model)
