"""Reply playback seam.

Decoding the compressed speech returned by the endpoint is left to the
embedding application; it supplies a :class:`ReplyPlayer`. The runtime only
needs to start a reply and to cut it off when the user barges in.
"""

from __future__ import annotations

import logging
import threading
from typing import Protocol

from .chat import ChatReply

logger = logging.getLogger(__name__)


class ReplyPlayer(Protocol):
    """Plays persona replies."""

    def play(self, reply: ChatReply) -> None:
        """Start playing ``reply``; must not block until playback ends."""

    def stop(self) -> None:
        """Interrupt playback; a no-op when nothing is playing."""


class LoggingPlayer:
    """Fallback player that logs reply text instead of producing sound."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._playing = False
        self.replies: list[ChatReply] = []

    @property
    def playing(self) -> bool:
        return self._playing

    def play(self, reply: ChatReply) -> None:  # noqa: D401
        with self._lock:
            self.replies.append(reply)
            self._playing = True
        logger.info(
            "Reply: %s (%s)",
            reply.text,
            f"{len(reply.audio)} bytes audio" if reply.audio else "no audio",
        )

    def stop(self) -> None:
        with self._lock:
            if not self._playing:
                return
            self._playing = False
        logger.info("Playback interrupted")
