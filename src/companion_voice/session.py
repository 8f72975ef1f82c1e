"""Listening session: capture, energy analysis, detection and assembly.

``AudioSession`` has two entry points that touch detector state: :meth:`feed`,
invoked once per captured chunk, and :meth:`tick`, polled by the owner for
smoother "speaking" feedback and to let timeouts fire between chunks. Both
run under one lock so every transition completes before the next begins.
Event handlers are called synchronously from those entry points and should
hand work off quickly.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable

import numpy as np

from .config import AudioConfig, VadConfig
from .engine.assembler import UtteranceBuffer
from .engine.capture import AudioCapture
from .engine.energy import EnergyAnalyser
from .engine.vad import DetectorState, SpeechDetector, Transition, TransitionKind
from .errors import CaptureError, SessionActiveError

logger = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class SpeechStarted:
    """Speech onset; carries no payload."""


@dataclass(slots=True, frozen=True, eq=False)
class SpeechEnded:
    """A finished utterance as mono float32 samples in [-1, 1]."""

    samples: np.ndarray

    def duration_s(self, rate_hz: int) -> float:
        return len(self.samples) / rate_hz


class AudioSession:
    """One active listening session on the input device.

    Parameters
    ----------
    vad_cfg:
        Threshold and timing configuration, validated on :meth:`start`.
    audio_cfg:
        Capture and analyser configuration.
    on_speech_start / on_speech_end:
        Handlers receiving :class:`SpeechStarted` and :class:`SpeechEnded`.
    on_error:
        Receives :class:`~companion_voice.errors.CaptureInterrupted` after the
        session has torn itself down.
    sd_module:
        ``sounddevice`` binding passed through to :class:`AudioCapture`.
    clock:
        Monotonic clock in seconds.
    """

    _device_lock = threading.Lock()
    _device_owner: AudioSession | None = None

    def __init__(
        self,
        vad_cfg: VadConfig,
        audio_cfg: AudioConfig,
        on_speech_start: Callable[[SpeechStarted], None],
        on_speech_end: Callable[[SpeechEnded], None],
        on_error: Callable[[CaptureError], None] | None = None,
        sd_module: Any = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.vad_cfg = vad_cfg
        self.audio_cfg = audio_cfg
        self._on_speech_start = on_speech_start
        self._on_speech_end = on_speech_end
        self._on_error = on_error
        self._clock = clock
        self._lock = threading.RLock()
        self._active = False
        self._analyser = EnergyAnalyser(audio_cfg)
        self._detector = SpeechDetector(vad_cfg)
        self._buffer = UtteranceBuffer()
        self._capture = AudioCapture(
            audio_cfg,
            on_chunk=self.feed,
            on_error=self._handle_capture_error,
            sd_module=sd_module,
        )

    @property
    def active(self) -> bool:
        return self._active

    @property
    def state(self) -> DetectorState:
        return self._detector.state

    @property
    def speaking(self) -> bool:
        return self._detector.speaking

    @property
    def volume(self) -> float:
        return self._analyser.volume

    def start(self) -> None:
        """Validate config, claim the device and start capturing.

        Raises
        ------
        ConfigError
            Invalid thresholds.
        SessionActiveError
            This or another session already owns the device.
        PermissionDenied, DeviceUnavailable
            Propagated from capture; the session stays stopped.
        """
        self.vad_cfg.validate()
        with AudioSession._device_lock:
            if AudioSession._device_owner is not None:
                raise SessionActiveError("an audio session is already capturing")
            AudioSession._device_owner = self
        try:
            with self._lock:
                self._reset_state()
                self._active = True
            self._capture.start()
        except BaseException:
            with self._lock:
                self._active = False
            self._release_device()
            raise
        logger.info(
            "Listening (threshold=%.2f, min=%dms, silence=%dms, max=%s)",
            self.vad_cfg.positive_speech_threshold,
            self.vad_cfg.min_speech_ms,
            self.vad_cfg.silence_timeout_ms,
            self.vad_cfg.max_speech_ms,
        )

    def stop(self) -> None:
        """Stop listening; any utterance in progress is discarded."""
        with self._lock:
            if not self._active:
                return
            self._active = False
            if self._detector.speaking:
                logger.info("Discarding utterance in progress (%d samples)", len(self._buffer))
            self._reset_state()
        try:
            self._capture.stop()
        finally:
            self._release_device()
        logger.info("Listening stopped")

    def feed(self, chunk: np.ndarray) -> None:
        """Process one captured chunk."""
        with self._lock:
            if not self._active:
                return
            volume = self._analyser.process(chunk)
            transition = self._detector.update(volume, self._now_ms())
            self._apply(transition, chunk)

    def tick(self) -> float:
        """Re-evaluate the detector at the current time and return the volume."""
        with self._lock:
            if not self._active:
                return 0.0
            transition = self._detector.update(self._analyser.volume, self._now_ms())
            self._apply(transition, None)
            return self._analyser.volume

    def _apply(self, transition: Transition | None, chunk: np.ndarray | None) -> None:
        if transition is not None and transition.kind is TransitionKind.STARTED:
            self._buffer.reset()
            logger.debug("Speech started (volume=%.3f)", self._analyser.volume)
            self._on_speech_start(SpeechStarted())

        if self._detector.speaking:
            if chunk is not None:
                if self._detector.silence_start_ms is not None:
                    self._buffer.mark_silence()
                else:
                    self._buffer.clear_mark()
                self._buffer.append(chunk)
            return

        if transition is None or transition.kind is TransitionKind.STARTED:
            return
        if transition.kind is TransitionKind.ENDED:
            samples = self._buffer.take()
            logger.info(
                "Speech ended after %.0fms (%d samples%s)",
                transition.speech_ms,
                len(samples),
                ", max duration reached" if transition.forced else "",
            )
            self._on_speech_end(SpeechEnded(samples))
        else:
            logger.debug("Ignoring %.0fms burst below min_speech_ms", transition.speech_ms)
            self._buffer.reset()

    def _handle_capture_error(self, exc: CaptureError) -> None:
        logger.error("Capture interrupted: %s", exc)
        self.stop()
        if self._on_error is not None:
            self._on_error(exc)

    def _reset_state(self) -> None:
        self._detector.reset()
        self._buffer.reset()
        self._analyser.reset()

    def _release_device(self) -> None:
        with AudioSession._device_lock:
            if AudioSession._device_owner is self:
                AudioSession._device_owner = None

    def _now_ms(self) -> float:
        return self._clock() * 1000.0
