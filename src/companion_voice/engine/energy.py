"""Volume feature computed the way a browser analyser node reports it.

Each analysis frame is the most recent ``fft_size`` samples. The frame is
windowed, transformed, smoothed against the previous frame, converted to
decibels and mapped onto byte values; the mean byte value divided by 255 is
the normalized volume consumed by the speech detector.
"""

import numpy as np

from ..config import AudioConfig


class EnergyAnalyser:
    """Stateful spectral energy estimator.

    Parameters
    ----------
    cfg:
        Audio configuration providing ``fft_size``, ``smoothing`` and the
        ``min_db``/``max_db`` range mapped onto 0..255.

    Raises :class:`~companion_voice.errors.ConfigError` for an unusable
    configuration.
    """

    def __init__(self, cfg: AudioConfig) -> None:
        cfg.validate()
        self.fft_size = cfg.fft_size
        self.smoothing = cfg.smoothing
        self.min_db = cfg.min_db
        self.max_db = cfg.max_db
        self._window = np.blackman(self.fft_size).astype(np.float32)
        self._history = np.zeros(self.fft_size, dtype=np.float32)
        self._smoothed = np.zeros(self.fft_size // 2, dtype=np.float64)
        self._volume = 0.0

    @property
    def volume(self) -> float:
        """Last computed volume in [0, 1] (``0.0`` before any input)."""
        return self._volume

    def process(self, chunk: np.ndarray) -> float:
        """Feed a raw chunk and return the volume of the newest frame.

        Long chunks are analysed in consecutive ``fft_size`` hops so the
        smoothing decays at frame rate rather than at chunk rate.
        """
        samples = np.asarray(chunk, dtype=np.float32).reshape(-1)
        for start in range(0, samples.size, self.fft_size):
            hop = samples[start : start + self.fft_size]
            self._history = np.concatenate((self._history[hop.size :], hop))
            self._volume = self._frame_volume()
        return self._volume

    def reset(self) -> None:
        """Forget all history so the next session starts from silence."""
        self._history.fill(0.0)
        self._smoothed.fill(0.0)
        self._volume = 0.0

    def _frame_volume(self) -> float:
        spectrum = np.fft.rfft(self._history * self._window)[: self.fft_size // 2]
        magnitude = np.abs(spectrum) / self.fft_size
        self._smoothed = self.smoothing * self._smoothed + (1.0 - self.smoothing) * magnitude
        with np.errstate(divide="ignore"):
            db = 20.0 * np.log10(self._smoothed)
        scaled = 255.0 * (db - self.min_db) / (self.max_db - self.min_db)
        levels = np.floor(np.clip(scaled, 0.0, 255.0))
        return float(np.mean(levels) / 255.0)
