"""Microphone capture through PortAudio (``sounddevice``).

The capture taps fixed-size chunks of mono float32 samples and hands them to
a callback. The ``sounddevice`` module is passed in by the owner rather than
looked up globally so tests and embedding apps can supply their own binding.
"""

from __future__ import annotations

import logging
import threading
from typing import Any, Callable

import numpy as np

from ..config import AudioConfig
from ..errors import CaptureError, CaptureInterrupted, DeviceUnavailable, PermissionDenied

logger = logging.getLogger(__name__)

ChunkHandler = Callable[[np.ndarray], None]
ErrorHandler = Callable[[CaptureError], None]

_PERMISSION_HINTS = ("permission", "access denied", "not permitted", "unauthorized")


def load_sounddevice() -> Any:
    """Import ``sounddevice`` or raise :class:`DeviceUnavailable`."""
    try:
        import sounddevice as sd
    except (ImportError, OSError) as exc:  # pragma: no cover - dependency guard
        raise DeviceUnavailable(
            f"sounddevice/PortAudio is required for audio capture: {exc}"
        ) from exc
    return sd


class AudioCapture:
    """Owns one PortAudio input stream.

    Parameters
    ----------
    cfg:
        Audio configuration (device, sample rate, chunk size).
    on_chunk:
        Called with each ``chunk_samples``-long float32 array.
    on_error:
        Called with :class:`CaptureInterrupted` when the stream dies while
        capture is active.
    sd_module:
        The ``sounddevice`` module or a compatible object.
    """

    def __init__(
        self,
        cfg: AudioConfig,
        on_chunk: ChunkHandler,
        on_error: ErrorHandler | None = None,
        sd_module: Any = None,
    ) -> None:
        self.cfg = cfg
        self._on_chunk = on_chunk
        self._on_error = on_error
        self._sd = sd_module
        self._stream: Any = None
        self._stopping = False
        self._lock = threading.Lock()

    @property
    def active(self) -> bool:
        return self._stream is not None

    def start(self) -> None:
        """Open and start the input stream.

        Raises :class:`PermissionDenied` or :class:`DeviceUnavailable`; on
        failure no stream is left open.
        """
        with self._lock:
            if self._stream is not None:
                return
            sd = self._sd if self._sd is not None else load_sounddevice()
            self._sd = sd
            device = self._resolve_input_device(sd)
            self._stopping = False
            stream = None
            try:
                sd.query_devices(device, kind="input")
                stream = sd.InputStream(
                    samplerate=self.cfg.rate_hz,
                    blocksize=self.cfg.chunk_samples,
                    dtype="float32",
                    channels=1,
                    device=device,
                    callback=self._callback,
                    finished_callback=self._finished,
                )
                stream.start()
            except (sd.PortAudioError, ValueError) as exc:
                if stream is not None:
                    self._close_quietly(stream)
                raise self._map_error(exc) from exc
            self._stream = stream
        logger.info("Audio capture started (device=%s)", device if device is not None else "default")

    def stop(self) -> None:
        """Stop and release the stream; repeated calls are no-ops."""
        with self._lock:
            stream = self._stream
            if stream is None:
                return
            self._stopping = True
            self._stream = None
        try:
            stream.abort()
        finally:
            stream.close()
        logger.info("Audio capture stopped")

    def _resolve_input_device(self, sd: Any) -> int | str | None:
        """
        Return the device identifier that ``sounddevice`` expects.

        Numeric IDs (``"2"``), friendly name fragments (``"USB"``) and an empty
        value (system default) are accepted.
        """
        name = str(self.cfg.device_name or "").strip()
        if not name:
            return None
        try:
            return int(name)
        except ValueError:
            pass

        try:
            devices = sd.query_devices()
        except sd.PortAudioError as exc:
            raise self._map_error(exc) from exc

        lowered = name.lower()
        for idx, info in enumerate(devices):
            if lowered in info.get("name", "").lower() and info.get("max_input_channels", 0) >= 1:
                logger.info("Using audio input #%d: %s", idx, info.get("name"))
                return idx

        logger.warning("Audio device containing '%s' not found; using default input", name)
        return None

    def _callback(self, indata: np.ndarray, frames: int, time_info: Any, status: Any) -> None:
        if status:
            logger.warning("Audio capture status: %s", status)
        self._on_chunk(indata[:, 0].copy())

    def _finished(self) -> None:
        if self._stopping:
            return
        logger.error("Audio input stream finished unexpectedly")
        if self._on_error is None:
            return
        # The stream may not be closed from inside its own callback.
        threading.Thread(
            target=self._on_error,
            args=(CaptureInterrupted("audio input stream stopped unexpectedly"),),
            name="CaptureErrorThread",
            daemon=True,
        ).start()

    @staticmethod
    def _map_error(exc: Exception) -> CaptureError:
        message = str(exc)
        if any(hint in message.lower() for hint in _PERMISSION_HINTS):
            return PermissionDenied(f"Microphone access denied: {message}")
        return DeviceUnavailable(f"No usable input device: {message}")

    @staticmethod
    def _close_quietly(stream: Any) -> None:
        try:
            stream.close()
        except Exception as exc:  # pragma: no cover - hardware failures
            logger.warning("Failed to close partially opened stream: %s", exc)
