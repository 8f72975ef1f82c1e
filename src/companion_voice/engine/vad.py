"""Energy-threshold voice activity detection (VAD) state machine.

The detector consumes time-stamped volume readings and decides when the user
starts and stops speaking. Entry into speech is immediate so the caller can
react with minimal latency; exit is debounced by a silence timeout so short
pauses inside a sentence do not split an utterance. Bursts shorter than the
minimum speech duration are rejected on exit rather than on entry.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass

from ..config import VadConfig


class DetectorState(enum.Enum):
    IDLE = "idle"
    SPEAKING = "speaking"


class TransitionKind(enum.Enum):
    STARTED = "started"
    ENDED = "ended"
    REJECTED = "rejected"


@dataclass(slots=True, frozen=True)
class Transition:
    """Outcome of a state change reported by :meth:`SpeechDetector.update`."""

    kind: TransitionKind
    speech_ms: float = 0.0
    forced: bool = False


class SpeechDetector:
    """Two-state hysteresis detector driven by volume samples.

    All mutable state lives here and is only changed inside :meth:`update`
    and :meth:`reset`, so a caller polling from several callbacks sees one
    consistent state per call.

    Parameters
    ----------
    cfg:
        Validated threshold and timing configuration.
    """

    def __init__(self, cfg: VadConfig) -> None:
        self.cfg = cfg
        self._state = DetectorState.IDLE
        self._speech_start_ms = 0.0
        self._silence_start_ms: float | None = None

    @property
    def state(self) -> DetectorState:
        return self._state

    @property
    def speaking(self) -> bool:
        return self._state is DetectorState.SPEAKING

    @property
    def speech_start_ms(self) -> float:
        return self._speech_start_ms

    @property
    def silence_start_ms(self) -> float | None:
        """Start of the pending silence run, or ``None`` while voice is present."""
        return self._silence_start_ms

    def update(self, volume: float, now_ms: float) -> Transition | None:
        """Advance the state machine with one volume reading.

        Parameters
        ----------
        volume:
            Normalized volume in [0, 1] of the current analysis frame.
        now_ms:
            Monotonic timestamp of the reading in milliseconds.

        Returns
        -------
        Transition | None
            ``STARTED`` on speech onset, ``ENDED`` when a confirmed utterance
            is long enough to keep, ``REJECTED`` when it is too short, and
            ``None`` when the state did not change.
        """
        above = volume > self.cfg.positive_speech_threshold

        if self._state is DetectorState.IDLE:
            if not above:
                return None
            self._state = DetectorState.SPEAKING
            self._speech_start_ms = now_ms
            self._silence_start_ms = None
            return Transition(TransitionKind.STARTED)

        if above:
            self._silence_start_ms = None
        else:
            if self._silence_start_ms is None:
                self._silence_start_ms = now_ms
            if now_ms - self._silence_start_ms > self.cfg.silence_timeout_ms:
                return self._finish(self._silence_start_ms, forced=False)

        cap = self.cfg.max_speech_ms
        if cap is not None and now_ms - self._speech_start_ms > cap:
            end_ms = self._silence_start_ms if self._silence_start_ms is not None else now_ms
            return self._finish(end_ms, forced=True)
        return None

    def reset(self) -> None:
        """Drop back to idle without reporting a transition (stop/cancel)."""
        self._state = DetectorState.IDLE
        self._speech_start_ms = 0.0
        self._silence_start_ms = None

    def _finish(self, end_ms: float, forced: bool) -> Transition:
        speech_ms = end_ms - self._speech_start_ms
        self.reset()
        if speech_ms > self.cfg.min_speech_ms:
            return Transition(TransitionKind.ENDED, speech_ms=speech_ms, forced=forced)
        return Transition(TransitionKind.REJECTED, speech_ms=speech_ms, forced=forced)
