"""Client for the conversational endpoint that answers as the persona.

The endpoint accepts a message (an inline WAV part plus a text instruction,
or plain text) together with the persona profile, and returns the reply text
and optionally base64-encoded speech audio.
"""

from __future__ import annotations

import base64
import binascii
import json
import logging
import time
from dataclasses import dataclass
from typing import Any, Callable
from urllib import error, request

from .config import GatewayConfig, PersonaConfig
from .errors import ChatServiceError

logger = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class ChatReply:
    """Reply from the endpoint; ``audio`` is absent when speech synthesis failed."""

    text: str
    audio: bytes | None = None
    error: str | None = None


class ChatClient:
    """POST utterances to the chat endpoint.

    Transport failures (connection refused, timeouts) are retried according
    to ``backoff_ms``; an HTTP error status is raised immediately.
    """

    def __init__(
        self,
        cfg: GatewayConfig,
        opener: Callable[..., Any] = request.urlopen,
        sleeper: Callable[[float], None] = time.sleep,
    ) -> None:
        self.cfg = cfg
        self._opener = opener
        self._sleeper = sleeper

    def send_audio(self, wav_bytes: bytes, persona: PersonaConfig) -> ChatReply:
        """Send a WAV utterance and return the persona's reply."""
        message = [
            {
                "inlineData": {
                    "mimeType": "audio/wav",
                    "data": base64.b64encode(wav_bytes).decode("ascii"),
                }
            },
            {"text": self.cfg.prompt},
        ]
        return self._post({"message": message, "profile": persona.to_payload()})

    def send_text(self, text: str, persona: PersonaConfig) -> ChatReply:
        return self._post({"message": text, "profile": persona.to_payload()})

    def _post(self, payload: dict[str, Any]) -> ChatReply:
        body = json.dumps(payload).encode("utf-8")
        delays = list(self.cfg.backoff_ms)
        attempt = 0
        while True:
            attempt += 1
            req = request.Request(
                self.cfg.url,
                data=body,
                headers={"Content-Type": "application/json", "Accept": "application/json"},
                method="POST",
            )
            try:
                with self._opener(req, timeout=self.cfg.timeout_ms / 1000.0) as resp:
                    return self._parse(resp.read())
            except error.HTTPError as exc:
                raise ChatServiceError(
                    f"Chat endpoint returned {exc.code}: {self._error_detail(exc)}",
                    status=exc.code,
                ) from exc
            except (error.URLError, TimeoutError) as exc:
                if not delays:
                    raise ChatServiceError(
                        f"Chat endpoint unreachable after {attempt} attempts: {exc}"
                    ) from exc
                delay_ms = delays.pop(0)
                logger.warning("Chat request failed (%s); retrying in %dms", exc, delay_ms)
                self._sleeper(delay_ms / 1000.0)

    @staticmethod
    def _parse(raw: bytes) -> ChatReply:
        try:
            data = json.loads(raw)
        except ValueError as exc:
            raise ChatServiceError(f"Chat endpoint returned invalid JSON: {exc}") from exc
        if not isinstance(data, dict):
            raise ChatServiceError(
                f"Chat endpoint returned {type(data).__name__}, expected a JSON object"
            )
        text = data.get("text")
        if not isinstance(text, str) or not text.strip():
            raise ChatServiceError(data.get("error") or "Chat endpoint returned no text")
        text = text.strip()

        audio = None
        if data.get("audio"):
            try:
                audio = base64.b64decode(data["audio"], validate=True)
            except (binascii.Error, TypeError, ValueError) as exc:
                logger.warning("Discarding undecodable reply audio: %s", exc)
        return ChatReply(text=text, audio=audio, error=data.get("error"))

    @staticmethod
    def _error_detail(exc: error.HTTPError) -> str:
        try:
            data = json.loads(exc.read() or b"{}")
        except ValueError:
            return exc.reason
        if isinstance(data, dict) and data.get("error"):
            return str(data["error"])
        return exc.reason
