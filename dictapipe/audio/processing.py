"""Signal preprocessing: resampling to 16 kHz and silence trimming."""

import logging
from typing import TYPE_CHECKING, Optional

import numpy as np

from ..errors import NoSpeech

if TYPE_CHECKING:
    from .vad import VoiceActivityDetector

logger = logging.getLogger(__name__)

TARGET_SAMPLE_RATE = 16000

# 10 ms analysis window at 16 kHz
SILENCE_WINDOW = 160
# 100 ms of context kept before onset and after the last speech window
SILENCE_LOOKBACK = 1600
# ~-40 dBFS: a window louder than this marks speech
SILENCE_RMS_THRESHOLD = 0.01
# ~-46 dBFS: trimmed audio quieter than this is rejected as silence
NEAR_SILENCE_RMS_THRESHOLD = 0.005


def resample(samples: np.ndarray, from_rate: int, to_rate: int) -> np.ndarray:
    """Resample with linear interpolation.

    Output sample ``i`` is taken at source position ``i * from_rate / to_rate``,
    interpolated between its floor and ceil neighbours and clamped at the end
    of the sequence.
    """
    samples = np.asarray(samples, dtype=np.float32)
    if from_rate == to_rate:
        return samples.copy()
    if len(samples) == 0:
        return np.zeros(0, dtype=np.float32)

    ratio = from_rate / to_rate
    output_len = int(len(samples) / ratio)
    positions = np.arange(output_len, dtype=np.float64) * ratio
    idx = positions.astype(np.int64)
    frac = positions - idx

    last = len(samples) - 1
    lower = samples[np.minimum(idx, last)].astype(np.float64)
    upper = samples[np.minimum(idx + 1, last)].astype(np.float64)
    out = np.where(idx + 1 < len(samples), lower * (1.0 - frac) + upper * frac, lower)
    return out.astype(np.float32)


def rms(samples: np.ndarray) -> float:
    """Root-mean-square energy of the whole sequence."""
    if len(samples) == 0:
        return 0.0
    samples = np.asarray(samples, dtype=np.float64)
    return float(np.sqrt(np.mean(samples * samples)))


def window_rms(samples: np.ndarray, window: int = SILENCE_WINDOW) -> np.ndarray:
    """RMS of every sliding window of ``window`` samples (stride 1)."""
    samples = np.asarray(samples, dtype=np.float64)
    if len(samples) < window:
        return np.zeros(0)
    energy = np.concatenate(([0.0], np.cumsum(samples * samples)))
    sums = energy[window:] - energy[:-window]
    return np.sqrt(np.maximum(sums, 0.0) / window)


def trim_silence(samples_16k: np.ndarray) -> np.ndarray:
    """Drop leading and trailing silence, keeping 100 ms of context.

    Raises:
        NoSpeech: if what remains is near-silent
    """
    samples_16k = np.asarray(samples_16k, dtype=np.float32)
    loud = np.flatnonzero(window_rms(samples_16k) > SILENCE_RMS_THRESHOLD)

    total = len(samples_16k)
    onset = int(loud[0]) if len(loud) else 0
    trim_start = max(onset - SILENCE_LOOKBACK, 0)
    if trim_start > 0:
        logger.debug(f"Trimmed {trim_start / 16.0:.0f} ms of leading silence "
                     f"(onset at {onset / 16.0:.0f} ms)")

    last_speech = int(loud[-1]) + SILENCE_WINDOW if len(loud) else total
    trim_end = min(last_speech + SILENCE_LOOKBACK, total)
    if trim_end < total:
        logger.debug(f"Trimmed {(total - trim_end) / 16.0:.0f} ms of trailing silence")

    trimmed = samples_16k[trim_start:trim_end]
    level = rms(trimmed)
    if level < NEAR_SILENCE_RMS_THRESHOLD:
        logger.info(f"Audio too quiet after trimming (rms={level:.4f}), skipping transcription")
        raise NoSpeech("no speech detected")
    return trimmed


def prepare_speech(samples_16k: np.ndarray, vad: Optional["VoiceActivityDetector"] = None) -> np.ndarray:
    """Reduce 16 kHz audio to its speech-bearing part.

    A voice-activity detector, when given, is consulted first. If it finds no
    speech the recording is rejected; if it fails, RMS trimming is used instead.
    """
    if vad is not None:
        try:
            speech = vad.extract_speech(samples_16k)
        except NoSpeech:
            raise
        except Exception as e:
            logger.warning(f"VAD failed, falling back to RMS trimming: {e}")
        else:
            if len(speech) == 0:
                raise NoSpeech("VAD found no speech")
            return speech
    return trim_silence(samples_16k)
