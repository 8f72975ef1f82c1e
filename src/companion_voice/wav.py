"""WAV packaging of finished utterances for the chat endpoint."""

import base64
import io
import wave

import numpy as np


def encode_wav(samples: np.ndarray, rate_hz: int = 16_000) -> bytes:
    """Return mono 16-bit PCM WAV bytes for float samples in [-1, 1]."""
    pcm = np.clip(np.asarray(samples, dtype=np.float32), -1.0, 1.0)
    pcm = (pcm * 32767.0).astype("<i2")
    buf = io.BytesIO()
    with wave.open(buf, "wb") as wf:
        wf.setnchannels(1)
        wf.setsampwidth(2)
        wf.setframerate(rate_hz)
        wf.writeframes(pcm.tobytes())
    return buf.getvalue()


def encode_wav_base64(samples: np.ndarray, rate_hz: int = 16_000) -> str:
    return base64.b64encode(encode_wav(samples, rate_hz)).decode("ascii")
