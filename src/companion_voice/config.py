from __future__ import annotations

import dataclasses
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml

from .errors import ConfigError


@dataclass(slots=True)
class AudioConfig:
    """Parameters for the microphone tap and the energy analyser."""

    device_name: str = ""
    rate_hz: int = 16_000
    chunk_samples: int = 4096  # raw tap size, ~0.25 s at 16 kHz
    fft_size: int = 512
    smoothing: float = 0.4
    min_db: float = -100.0
    max_db: float = -30.0
    tick_ms: int = 50  # UI-facing energy poll

    def validate(self) -> None:
        """Raise :class:`ConfigError` when capture or analysis cannot work."""
        for name in ("rate_hz", "chunk_samples", "fft_size", "tick_ms"):
            if _number(self, name, integral=True) <= 0:
                raise ConfigError(f"{name} must be positive")
        if self.fft_size < 32 or self.fft_size & (self.fft_size - 1):
            raise ConfigError(f"fft_size must be a power of two >= 32, got {self.fft_size}")
        if not 0.0 <= _number(self, "smoothing") < 1.0:
            raise ConfigError("smoothing must be in [0, 1)")
        if _number(self, "max_db") <= _number(self, "min_db"):
            raise ConfigError("max_db must be greater than min_db")


@dataclass(slots=True, frozen=True)
class VadConfig:
    """Energy threshold and timing for the speech detector.

    Immutable for the lifetime of a session; call :meth:`validate` before use.
    """

    positive_speech_threshold: float = 0.1
    min_speech_ms: int = 500
    silence_timeout_ms: int = 800
    max_speech_ms: int | None = 10_000

    def validate(self) -> None:
        """Raise :class:`ConfigError` when the thresholds cannot work."""
        if not 0.0 <= _number(self, "positive_speech_threshold") <= 1.0:
            raise ConfigError("positive_speech_threshold must be in [0, 1]")
        if _number(self, "min_speech_ms") < 0:
            raise ConfigError("min_speech_ms must not be negative")
        if _number(self, "silence_timeout_ms") <= 0:
            raise ConfigError("silence_timeout_ms must be positive")
        if self.max_speech_ms is not None and _number(self, "max_speech_ms") <= self.min_speech_ms:
            raise ConfigError("max_speech_ms must be larger than min_speech_ms")


def _number(section: Any, name: str, integral: bool = False) -> float:
    """Return ``section.name`` or raise :class:`ConfigError` if it is not numeric."""
    value = getattr(section, name)
    allowed = int if integral else (int, float)
    if isinstance(value, bool) or not isinstance(value, allowed):
        kind = "an integer" if integral else "a number"
        raise ConfigError(f"{name} must be {kind}, got {value!r}")
    return value


@dataclass(slots=True)
class GatewayConfig:
    """Chat endpoint and retry policy for transport failures."""

    url: str = "http://127.0.0.1:3000/api/chat"
    timeout_ms: int = 30_000
    backoff_ms: tuple[int, ...] = (500, 1000, 2000)
    prompt: str = "Respond to this verbal statement."


@dataclass(slots=True)
class PersonaConfig:
    """Persona record configured by the caregiver."""

    name: str = "Sarah"
    relation: str = "Daughter"
    gender: str = "female"
    life_story: str = "A loving family with many happy memories."
    block_travel: bool = True
    block_alive_claims: bool = True
    redirect_confusion: bool = True
    custom_boundaries: str = ""
    active_background_index: int = 0

    def to_payload(self) -> dict[str, Any]:
        """Return the camelCase profile sent alongside each message."""
        return {
            "name": self.name,
            "relation": self.relation,
            "gender": self.gender,
            "lifeStory": self.life_story,
            "blockTravel": self.block_travel,
            "blockAliveClaims": self.block_alive_claims,
            "redirectConfusion": self.redirect_confusion,
            "customBoundaries": self.custom_boundaries,
            "activeBackgroundIndex": self.active_background_index,
        }


@dataclass(slots=True)
class QueueConfig:
    """Bounded queue capacities."""

    utterances: int = 4


@dataclass(slots=True)
class LoggingConfig:
    """Global logging preferences."""

    level: str = "INFO"


@dataclass(slots=True)
class CompanionConfig:
    """Top-level configuration for the companion voice loop."""

    audio: AudioConfig = dataclasses.field(default_factory=AudioConfig)
    vad: VadConfig = dataclasses.field(default_factory=VadConfig)
    gateway: GatewayConfig = dataclasses.field(default_factory=GatewayConfig)
    persona: PersonaConfig = dataclasses.field(default_factory=PersonaConfig)
    queues: QueueConfig = dataclasses.field(default_factory=QueueConfig)
    logging: LoggingConfig = dataclasses.field(default_factory=LoggingConfig)


def load_config(path: str | Path) -> CompanionConfig:
    """
    Load configuration from ``path`` if it exists; otherwise, return defaults.

    Parameters
    ----------
    path : str | Path
        Location of the YAML config file.

    Raises
    ------
    ConfigError
        When a section has unknown keys or its values are invalid.
    """

    data: dict[str, Any] = {}
    p = Path(path)
    if p.exists():
        data = yaml.safe_load(p.read_text(encoding="utf-8")) or {}
    gateway = dict(data.get("gateway", {}))
    if "backoff_ms" in gateway:
        gateway["backoff_ms"] = tuple(gateway["backoff_ms"])
    try:
        config = CompanionConfig(
            audio=AudioConfig(**data.get("audio", {})),
            vad=VadConfig(**data.get("vad", {})),
            gateway=GatewayConfig(**gateway),
            persona=PersonaConfig(**data.get("persona", {})),
            queues=QueueConfig(**data.get("queues", {})),
            logging=LoggingConfig(**data.get("logging", {})),
        )
    except TypeError as exc:
        raise ConfigError(f"Invalid config in {p}: {exc}") from exc
    config.audio.validate()
    config.vad.validate()
    return config
