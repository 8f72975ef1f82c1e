from __future__ import annotations

import numpy as np
import pytest

from companion_voice.config import AudioConfig

CHUNK = AudioConfig().chunk_samples
RATE = AudioConfig().rate_hz


class FakePortAudioError(Exception):
    pass


class FakeStream:
    def __init__(self, sd: "FakeSoundDevice", **kwargs) -> None:
        self.sd = sd
        self.kwargs = kwargs
        self.started = False
        self.aborted = 0
        self.closed = False

    def start(self) -> None:
        if self.sd.start_error is not None:
            raise self.sd.start_error
        self.started = True

    def abort(self) -> None:
        self.aborted += 1

    def close(self) -> None:
        self.closed = True

    def push(self, chunk: np.ndarray) -> None:
        self.kwargs["callback"](chunk.reshape(-1, 1), len(chunk), None, None)

    def finish(self) -> None:
        self.kwargs["finished_callback"]()


class FakeSoundDevice:
    """Stands in for the ``sounddevice`` module."""

    PortAudioError = FakePortAudioError

    def __init__(self, devices=None, query_error=None, start_error=None) -> None:
        self.devices = devices if devices is not None else [
            {"name": "Built-in Microphone", "max_input_channels": 1},
        ]
        self.query_error = query_error
        self.start_error = start_error
        self.streams: list[FakeStream] = []

    def query_devices(self, device=None, kind=None):
        if self.query_error is not None:
            raise self.query_error
        if kind is None:
            return self.devices
        return self.devices[0 if device is None else device]

    def InputStream(self, **kwargs) -> FakeStream:
        stream = FakeStream(self, **kwargs)
        self.streams.append(stream)
        return stream

    @property
    def stream(self) -> FakeStream:
        return self.streams[-1]


class FakeClock:
    def __init__(self, start: float = 0.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def silence(n: int = CHUNK) -> np.ndarray:
    return np.zeros(n, dtype=np.float32)


def voice(n: int = CHUNK, seed: int = 0) -> np.ndarray:
    """Broadband noise loud enough to read as speech."""
    rng = np.random.default_rng(seed)
    return (0.3 * rng.standard_normal(n)).astype(np.float32)


@pytest.fixture
def fake_sd() -> FakeSoundDevice:
    return FakeSoundDevice()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()
