"""Main application entry point for DictaPipe."""

import sys
import time
import argparse
import logging
import threading
from pathlib import Path
from typing import List, Optional

from pubsub import pub
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from . import __version__
from .audio.buffer import CaptureBuffer
from .audio.capture import AudioCapture
from .config import DictaPipeConfig
from .errors import DictaPipeError
from .models.context import InvocationContext
from .models.events import OutcomeStatus, PipelineOutcome
from .models.settings import PolishMode, SttMode
from .polishing.polisher import TextPolisher
from .services.pipeline import DictationPipeline
from .services.publisher import PIPELINE_RESULT_TOPIC
from .services.recording_service import RecordingService
from .services.state import RecordingState
from .transcription.engine import TranscriptionEngine

logger = logging.getLogger(__name__)


class ConsoleDelivery:
    """Prints the final text to the terminal."""

    def __init__(self, console: Console):
        self.console = console

    def deliver(self, text: str, context: InvocationContext) -> bool:
        self.console.print(Panel(text, title="Dictation", border_style="green"))
        return True


class MemoryHistory:
    """Keeps successful outcomes in memory for the lifetime of the process."""

    def __init__(self):
        self.lock = threading.Lock()
        self.entries: List[PipelineOutcome] = []

    def record(self, outcome: PipelineOutcome) -> None:
        with self.lock:
            self.entries.append(outcome)


class OutcomeCollector:
    """Waits for the next pipeline outcome published on the result topic."""

    def __init__(self, topic: str = PIPELINE_RESULT_TOPIC):
        self.topic = topic
        self.outcome: Optional[PipelineOutcome] = None
        self.received = threading.Event()
        pub.subscribe(self._on_outcome, topic)

    def _on_outcome(self, outcome: PipelineOutcome) -> None:
        # Keep the first outcome; a late stray stop only reports "skipped"
        if self.outcome is None:
            self.outcome = outcome
        self.received.set()

    def wait(self, timeout: Optional[float] = None) -> Optional[PipelineOutcome]:
        self.received.wait(timeout)
        return self.outcome

    def close(self) -> None:
        pub.unsubscribe(self._on_outcome, self.topic)


class App:

    def __init__(self, config_path: Optional[str], log_level: Optional[str] = None):
        # Load configuration
        self.config = DictaPipeConfig(config_path)
        # Command line level wins over the config file
        setup_logging(self.config, log_level or self.config.get('logging.level', 'INFO'))
        self.settings = self.config.settings()
        self.console = Console()
        self.history = MemoryHistory()

        audio = self.settings.audio
        self.state = RecordingState()
        self.buffer = CaptureBuffer()
        self.capture = AudioCapture(
            self.buffer,
            self.state,
            init_timeout=audio.init_timeout_seconds,
            frames_per_buffer=audio.frames_per_buffer,
            buffer_cap_seconds=audio.buffer_cap_seconds,
        )
        self.pipeline: Optional[DictationPipeline] = None

    def init(self, device: Optional[str] = None) -> None:
        """Open the microphone and build the pipeline."""
        logger.info("Initializing services...")
        models_dir = Path(self.settings.models_directory)

        rate, _ = self.capture.start(device or self.settings.audio.device)
        logger.info(f"Microphone native rate: {rate}Hz")

        recording = RecordingService(self.capture, self.buffer, self.state)
        self.pipeline = DictationPipeline(
            recording=recording,
            transcription=TranscriptionEngine(models_dir),
            polisher=TextPolisher(models_dir),
            settings=self.settings,
            delivery=ConsoleDelivery(self.console),
            history=self.history,
        )

        if self.settings.stt.mode == SttMode.LOCAL:
            self.console.print("🔧 Loading speech model...", style="blue")
            self.pipeline.warm_transcription_cache()

        polish = self.settings.polish
        if polish.enabled and polish.mode == PolishMode.LOCAL:
            if self.pipeline.polisher.is_polish_ready(polish):
                self.console.print("🔧 Loading polish model...", style="blue")
                self.pipeline.warm_polish_cache()
            else:
                logger.warning(f"Local polish model not found: {polish.model.filename}")

    def list_devices(self) -> None:
        status = self.capture.get_mic_status()
        table = Table(title="Input devices")
        table.add_column("Device")
        table.add_column("Default", justify="center")
        for name in status.devices:
            table.add_row(name, "✅" if name == status.default_device else "")
        self.console.print(table)
        if not status.devices:
            self.console.print("❌ No input devices found", style="bold red")

    def run(self, duration: float) -> Optional[PipelineOutcome]:
        """Record for ``duration`` seconds, then process and report the outcome."""
        collector = OutcomeCollector()
        try:
            context = self.pipeline.start_session()
            self.console.print(f"🔴 Recording for {duration}s (app: {context.app_name or 'unknown'})",
                               style="bold red")
            deadline = time.monotonic() + duration
            # The level monitor may stop the session first at the maximum duration
            while time.monotonic() < deadline and self.state.is_recording.load():
                time.sleep(0.1)

            self.pipeline.stop_and_process()
            with self.console.status("Transcribing..."):
                outcome = collector.wait()
            self.show_outcome(outcome)
            return outcome
        finally:
            collector.close()

    def show_outcome(self, outcome: PipelineOutcome) -> None:
        table = Table(show_header=False, box=None)
        table.add_row("Status", outcome.status.value)
        table.add_row("Speech model", outcome.stt_model or "-")
        table.add_row("Polish model", outcome.polish_model)
        table.add_row("Transcribe", f"{outcome.stt_elapsed_ms}ms")
        if outcome.polish_elapsed_ms is not None:
            table.add_row("Polish", f"{outcome.polish_elapsed_ms}ms")
        table.add_row("Total", f"{outcome.total_elapsed_ms}ms")
        if outcome.raw_text and outcome.raw_text != outcome.text:
            table.add_row("Raw text", outcome.raw_text)
        if outcome.error is not None:
            table.add_row("Error", str(outcome.error))

        style = "green" if outcome.status == OutcomeStatus.DELIVERED else "yellow"
        self.console.print(Panel(table, title="Outcome", border_style=style))

    def cleanup(self) -> None:
        if self.pipeline is not None:
            self.pipeline.cancel_session()
        self.capture.stop()


def setup_logging(config: DictaPipeConfig, level: str = "INFO") -> None:
    """Set up logging configuration from YAML config."""
    log_file_path = config.get_log_file_path()
    console_output = config.get('logging.console_output', True)

    Path(log_file_path).parent.mkdir(parents=True, exist_ok=True)

    handlers = []

    # File handler - always write to file
    file_handler = logging.FileHandler(log_file_path)
    file_handler.setLevel(logging.DEBUG)
    file_formatter = logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(threadName)s - %(funcName)s:%(lineno)d - %(message)s'
    )
    file_handler.setFormatter(file_formatter)
    handlers.append(file_handler)

    if console_output:
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setLevel(logging.WARNING)  # Only show warnings and above on console
        console_formatter = logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s')
        console_handler.setFormatter(console_formatter)
        handlers.append(console_handler)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.setLevel(getattr(logging, level.upper()))
    for handler in handlers:
        root_logger.addHandler(handler)

    logger.info("=" * 50)
    logger.info(f"DictaPipe {__version__} starting up")
    logger.info(f"Log file: {log_file_path}")
    logger.info(f"Log level set to: {level}")
    logger.info("=" * 50)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="DictaPipe - dictation from microphone to polished text",
    )

    parser.add_argument(
        "--config",
        type=str,
        help="Path to configuration YAML file (default: built-in settings)"
    )

    parser.add_argument(
        "--log-level",
        type=str,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Set logging level (default: logging.level from the config, else INFO)"
    )

    parser.add_argument(
        "--auto",
        action="store_true",
        help="Record for the given duration, transcribe, print the result and exit"
    )

    parser.add_argument(
        "--duration",
        type=float,
        default=5.0,
        help="Duration in seconds for auto mode recording (default: 5)"
    )

    parser.add_argument(
        "--device",
        type=str,
        help="Input device name, matched case-insensitively as a substring"
    )

    parser.add_argument(
        "--list-devices",
        action="store_true",
        help="List input devices and exit"
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"DictaPipe v{__version__}"
    )
    return parser


def main(argv: Optional[List[str]] = None) -> None:
    """Main entry point for DictaPipe."""
    args = build_parser().parse_args(argv)

    try:
        app = App(args.config, args.log_level)
    except (OSError, ValueError) as e:
        Console(stderr=True).print(f"❌ Configuration error: {e}", style="bold red")
        sys.exit(2)

    try:
        if args.list_devices:
            app.list_devices()
            return
        if not args.auto:
            app.console.print("Nothing to do: pass --auto to record, or --list-devices", style="yellow")
            return

        app.init(args.device)
        outcome = app.run(args.duration)
        if outcome is None or outcome.status == OutcomeStatus.ERROR:
            sys.exit(1)
    except KeyboardInterrupt:
        app.console.print("\n👋 Goodbye!")
    except DictaPipeError as e:
        app.console.print(f"❌ Error: {e.message}", style="bold red")
        logger.error(f"Application error: {e}")
        sys.exit(1)
    finally:
        app.cleanup()


if __name__ == "__main__":
    main()
