"""Buffering of raw sample chunks for the utterance in progress."""

from __future__ import annotations

import numpy as np


class UtteranceBuffer:
    """Ordered float32 chunks collected while the detector is speaking.

    A silence mark records where the trailing run of quiet chunks began, so
    the emitted utterance stops at the silence onset that confirmed the end
    instead of carrying the whole timeout of dead air.
    """

    def __init__(self) -> None:
        self._chunks: list[np.ndarray] = []
        self._samples = 0
        self._mark: int | None = None

    def __len__(self) -> int:
        return self._samples

    def append(self, chunk: np.ndarray) -> None:
        samples = np.asarray(chunk, dtype=np.float32).reshape(-1)
        if samples.size == 0:
            return
        self._chunks.append(samples)
        self._samples += samples.size

    def mark_silence(self) -> None:
        """Remember the current length as the silence onset (first call wins)."""
        if self._mark is None:
            self._mark = self._samples

    def clear_mark(self) -> None:
        self._mark = None

    def duration_ms(self, rate_hz: int) -> float:
        return 1000.0 * self._samples / rate_hz

    def take(self) -> np.ndarray:
        """Return the concatenated utterance (trimmed to the mark) and reset."""
        if self._chunks:
            samples = np.concatenate(self._chunks)
        else:
            samples = np.zeros(0, dtype=np.float32)
        if self._mark is not None:
            samples = samples[: self._mark]
        self.reset()
        return samples

    def reset(self) -> None:
        self._chunks = []
        self._samples = 0
        self._mark = None
