"""Exceptions raised by the companion voice loop."""


class CompanionError(Exception):
    """Base class for companion voice errors."""


class ConfigError(CompanionError, ValueError):
    """Raised when configuration values are malformed."""


class CaptureError(CompanionError):
    """Base class for microphone capture failures."""


class PermissionDenied(CaptureError):
    """Raised when access to the microphone is refused."""


class DeviceUnavailable(CaptureError):
    """Raised when no usable input device exists."""


class CaptureInterrupted(CaptureError):
    """Reported when the input device is lost mid-session."""


class SessionActiveError(CompanionError):
    """Raised when a second session tries to capture from the device."""


class ChatServiceError(CompanionError):
    """Raised when the chat endpoint fails or rejects a request."""

    def __init__(self, message: str, status: int | None = None) -> None:
        super().__init__(message)
        self.status = status
