from __future__ import annotations

import logging
import queue
import threading
from typing import Any, Callable

from .chat import ChatClient
from .config import CompanionConfig
from .errors import CaptureError, CompanionError
from .playback import LoggingPlayer, ReplyPlayer
from .session import AudioSession, SpeechEnded, SpeechStarted
from .wav import encode_wav


class BoundedQueue:
    """
    Thread-safe queue that enforces a maximum size and drops newest items
    when the queue is full. Each put/get supports a timeout so callers can
    periodically check for shutdown signals.
    """

    def __init__(self, maxsize: int, name: str) -> None:
        self._queue: queue.Queue = queue.Queue(maxsize=maxsize)
        self._name = name

    def put(self, item: Any, timeout_ms: float) -> bool:
        """
        Attempt to enqueue ``item`` within the given timeout.

        Returns False when the queue is still full after ``timeout_ms``.
        """
        try:
            self._queue.put(item, timeout=timeout_ms / 1000.0)
            return True
        except queue.Full:
            return False

    def get(self, timeout_ms: float) -> tuple[bool, Any | None]:
        """
        Attempt to dequeue an item within ``timeout_ms`` milliseconds.

        Returns ``(False, None)`` when the queue is empty so consumers can
        poll again while respecting shutdown events.
        """
        try:
            return True, self._queue.get(timeout=timeout_ms / 1000.0)
        except queue.Empty:
            return False, None

    def clear(self) -> int:
        """Drop all pending items and return how many were removed."""
        dropped = 0
        while True:
            try:
                self._queue.get_nowait()
            except queue.Empty:
                return dropped
            dropped += 1

    def qsize(self) -> int:
        return self._queue.qsize()

    def name(self) -> str:
        return self._name


class CompanionRuntime:
    """
    Orchestrates the patient voice loop (capture → VAD → chat → playback).

    The audio session runs on the PortAudio callback; this class adds a
    ticking thread for timeouts and UI volume, and a chat thread so network
    calls never block capture.
    """

    def __init__(
        self,
        config: CompanionConfig,
        session_factory: Callable[..., AudioSession] = AudioSession,
        chat_client: ChatClient | None = None,
        player: ReplyPlayer | None = None,
        sd_module: Any = None,
    ) -> None:
        self.config = config
        self.logger = logging.getLogger(__name__)
        self.utterance_queue = BoundedQueue(
            maxsize=config.queues.utterances, name="UtteranceQueue"
        )
        self.chat_client = chat_client or ChatClient(config.gateway)
        self.player = player or LoggingPlayer()
        self.session = session_factory(
            config.vad,
            config.audio,
            on_speech_start=self.on_speech_start,
            on_speech_end=self.on_speech_end,
            on_error=self.on_capture_error,
            sd_module=sd_module,
        )
        self.last_error: CaptureError | None = None
        self.volume = 0.0
        self._stop = threading.Event()
        self._threads: list[threading.Thread] = []

    def start(self) -> None:
        """Start listening, then launch the tick and chat worker threads.

        Capture errors propagate before any thread is started. Workers left
        over from a session lost to a capture error are retired first.
        """
        self.logger.info("Companion runtime starting.")
        self.session.start()
        if self._threads:
            self._stop.set()
            self._join_workers()
        self._stop.clear()
        self.last_error = None
        self._threads = [
            threading.Thread(target=self.tick_loop, name="TickThread", daemon=True),
            threading.Thread(target=self.chat_loop, name="ChatThread", daemon=True),
        ]
        for thread in self._threads:
            thread.start()

    def stop(self) -> None:
        """Stop listening and wait for workers with a bounded timeout."""
        if self._stop.is_set() and not self._threads:
            return
        self.logger.info("Companion runtime stopping...")
        self._stop.set()
        self.session.stop()
        self.player.stop()
        self._join_workers()
        self.logger.info("Companion runtime stopped.")

    def _join_workers(self) -> None:
        for thread in self._threads:
            if thread is not threading.current_thread():
                thread.join(timeout=1.0)
        self._threads = []

    def should_stop(self) -> bool:
        return self._stop.is_set()

    # --- session handlers (called on the audio callback) ---

    def on_speech_start(self, event: SpeechStarted) -> None:
        """Barge-in: the user talking cuts off the current reply."""
        self.logger.info("Hearing voice...")
        self.player.stop()

    def on_speech_end(self, event: SpeechEnded) -> None:
        rate = self.config.audio.rate_hz
        self.logger.info("Speech end (%.2fs)", event.duration_s(rate))
        ok = self.utterance_queue.put(event, timeout_ms=5)
        if not ok:
            self.logger.warning(
                "[%s] drop (qsize=%d)",
                self.utterance_queue.name(),
                self.utterance_queue.qsize(),
            )

    def on_capture_error(self, exc: CaptureError) -> None:
        self.logger.error("Microphone lost: %s; call start() to resume", exc)
        self.last_error = exc
        dropped = self.utterance_queue.clear()
        if dropped:
            self.logger.info("Dropped %d pending utterances", dropped)

    # --- workers ---

    def tick_loop(self) -> None:
        """Poll the session so timeouts fire between chunks and volume stays fresh."""
        interval = self.config.audio.tick_ms / 1000.0
        while not self._stop.wait(interval):
            self.volume = self.session.tick()

    def chat_loop(self) -> None:
        """Encode utterances, send them to the chat endpoint and play replies."""
        rate = self.config.audio.rate_hz
        while not self.should_stop():
            ok, event = self.utterance_queue.get(timeout_ms=50)
            if not ok:
                continue
            try:
                wav_bytes = encode_wav(event.samples, rate)
                reply = self.chat_client.send_audio(wav_bytes, self.config.persona)
            except CompanionError as exc:
                self.logger.error("Chat request failed: %s", exc)
                continue
            except Exception as exc:  # pragma: no cover - protect thread
                self.logger.exception("Unexpected chat error: %s", exc)
                continue

            if reply.error:
                self.logger.warning("Chat endpoint reported: %s", reply.error)
            if self.session.speaking:
                # The user started talking again while we waited; skip the stale reply.
                self.logger.info("Skipping reply; user is speaking")
                continue
            self.player.play(reply)
