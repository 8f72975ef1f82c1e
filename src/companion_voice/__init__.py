"""Companion voice loop package exports."""

from .config import CompanionConfig, VadConfig, load_config
from .runtime import CompanionRuntime
from .session import AudioSession, SpeechEnded, SpeechStarted

__all__ = [
    "AudioSession",
    "CompanionConfig",
    "CompanionRuntime",
    "SpeechEnded",
    "SpeechStarted",
    "VadConfig",
    "load_config",
]
