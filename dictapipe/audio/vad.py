"""Voice-activity detection used to keep only speech-bearing spans."""

import logging
import time
from typing import List, Tuple

import numpy as np
import webrtcvad

logger = logging.getLogger(__name__)


class VoiceActivityDetector:
    """Extracts speech spans from 16 kHz mono audio with WebRTC VAD.

    Parameters are generous so that natural pauses survive: the speech model
    relies on short silences to infer punctuation.
    """

    def __init__(self,
                 mode: int = 2,
                 frame_ms: int = 30,
                 speech_pad_ms: int = 400,
                 min_silence_ms: int = 2000,
                 sample_rate: int = 16000):
        if frame_ms not in (10, 20, 30):
            raise ValueError(f"frame_ms must be 10, 20 or 30 (got {frame_ms})")
        self.mode = mode
        self.frame_ms = frame_ms
        self.speech_pad_ms = speech_pad_ms
        self.min_silence_ms = min_silence_ms
        self.sample_rate = sample_rate
        self.frame_size = sample_rate * frame_ms // 1000
        self._vad = webrtcvad.Vad(mode)

    def _frame_flags(self, samples_16k: np.ndarray) -> List[bool]:
        pcm = (np.clip(samples_16k, -1.0, 1.0) * 32767.0).astype(np.int16)
        n_frames = len(pcm) // self.frame_size
        flags = []
        for i in range(n_frames):
            frame = pcm[i * self.frame_size:(i + 1) * self.frame_size]
            flags.append(self._vad.is_speech(frame.tobytes(), self.sample_rate))
        return flags

    def segments(self, samples_16k: np.ndarray) -> List[Tuple[int, int]]:
        """Return padded ``(start, end)`` sample spans containing speech."""
        flags = self._frame_flags(samples_16k)
        max_gap = max(self.min_silence_ms // self.frame_ms, 0)
        pad = self.sample_rate * self.speech_pad_ms // 1000

        spans: List[Tuple[int, int]] = []
        start = None
        silence = 0
        for i, speech in enumerate(flags):
            if speech:
                if start is None:
                    start = i
                silence = 0
            elif start is not None:
                silence += 1
                if silence > max_gap:
                    spans.append((start, i - silence + 1))
                    start = None
                    silence = 0
        if start is not None:
            spans.append((start, len(flags) - silence))

        total = len(samples_16k)
        padded: List[Tuple[int, int]] = []
        for first, end in spans:
            s = max(first * self.frame_size - pad, 0)
            e = min(end * self.frame_size + pad, total)
            if padded and s <= padded[-1][1]:
                padded[-1] = (padded[-1][0], e)
            else:
                padded.append((s, e))
        return padded

    def extract_speech(self, samples_16k: np.ndarray) -> np.ndarray:
        """Concatenate all speech spans; empty when none were found."""
        vad_start = time.time()
        samples_16k = np.asarray(samples_16k, dtype=np.float32)
        spans = self.segments(samples_16k)
        logger.debug(f"VAD found {len(spans)} speech segment(s) (took {time.time() - vad_start:.3f}s)")
        if not spans:
            return np.zeros(0, dtype=np.float32)
        for s, e in spans:
            logger.debug(f"  segment: {s / self.sample_rate:.2f}s - {e / self.sample_rate:.2f}s ({e - s} samples)")
        return np.concatenate([samples_16k[s:e] for s, e in spans])
