"""WAV encoding for cloud uploads."""

import io

import numpy as np
from scipy.io import wavfile


def to_pcm16(samples: np.ndarray) -> np.ndarray:
    """Convert float samples in [-1, 1] to clamped 16-bit PCM."""
    clamped = np.clip(np.asarray(samples, dtype=np.float32), -1.0, 1.0)
    return (clamped * 32767.0).astype(np.int16)


def encode_wav(samples: np.ndarray, sample_rate: int = 16000) -> bytes:
    """Encode mono float samples as an in-memory 16-bit PCM WAV file."""
    buf = io.BytesIO()
    wavfile.write(buf, sample_rate, to_pcm16(samples))
    return buf.getvalue()
