import base64
import io
import json
from urllib import error

import pytest

from companion_voice.chat import ChatClient
from companion_voice.config import GatewayConfig, PersonaConfig
from companion_voice.errors import ChatServiceError


class FakeResponse:
    def __init__(self, payload: dict) -> None:
        self._body = json.dumps(payload).encode("utf-8")

    def read(self) -> bytes:
        return self._body

    def __enter__(self):
        return self

    def __exit__(self, *exc) -> None:
        return None


class FakeOpener:
    def __init__(self, outcomes: list) -> None:
        self.outcomes = list(outcomes)
        self.requests = []

    def __call__(self, req, timeout):
        self.requests.append((req, timeout))
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return FakeResponse(outcome)


def test_send_audio_posts_inline_wav_and_profile() -> None:
    opener = FakeOpener([{"text": "Hi Mom, it's Sarah."}])
    client = ChatClient(GatewayConfig(url="http://chat.test/api/chat", timeout_ms=5000), opener=opener)

    reply = client.send_audio(b"RIFFdata", PersonaConfig(name="Sarah"))

    assert reply.text == "Hi Mom, it's Sarah."
    assert reply.audio is None
    req, timeout = opener.requests[0]
    assert req.full_url == "http://chat.test/api/chat"
    assert req.get_method() == "POST"
    assert timeout == 5.0
    body = json.loads(req.data)
    inline = body["message"][0]["inlineData"]
    assert inline["mimeType"] == "audio/wav"
    assert base64.b64decode(inline["data"]) == b"RIFFdata"
    assert body["message"][1] == {"text": "Respond to this verbal statement."}
    assert body["profile"]["name"] == "Sarah"
    assert body["profile"]["lifeStory"]


def test_reply_audio_is_decoded() -> None:
    audio = base64.b64encode(b"mp3-bytes").decode("ascii")
    client = ChatClient(GatewayConfig(), opener=FakeOpener([{"text": "Hello", "audio": audio}]))
    reply = client.send_text("hello", PersonaConfig())
    assert reply.audio == b"mp3-bytes"


def test_voice_failure_still_returns_text() -> None:
    client = ChatClient(
        GatewayConfig(), opener=FakeOpener([{"text": "Hello", "error": "Voice failed"}])
    )
    reply = client.send_text("hello", PersonaConfig())
    assert reply.text == "Hello"
    assert reply.audio is None
    assert reply.error == "Voice failed"


def test_http_error_raises_with_server_message() -> None:
    http_error = error.HTTPError(
        "http://chat.test",
        500,
        "Internal Server Error",
        hdrs={},
        fp=io.BytesIO(b'{"error": "Server Configuration Error: Missing API Key"}'),
    )
    sleeps = []
    client = ChatClient(GatewayConfig(), opener=FakeOpener([http_error]), sleeper=sleeps.append)

    with pytest.raises(ChatServiceError) as excinfo:
        client.send_text("hello", PersonaConfig())
    assert excinfo.value.status == 500
    assert "Missing API Key" in str(excinfo.value)
    assert sleeps == []


def test_transport_errors_are_retried_with_backoff() -> None:
    opener = FakeOpener(
        [error.URLError("refused"), error.URLError("refused"), {"text": "There you are."}]
    )
    sleeps = []
    client = ChatClient(GatewayConfig(backoff_ms=(100, 200, 400)), opener=opener, sleeper=sleeps.append)

    reply = client.send_text("hello", PersonaConfig())
    assert reply.text == "There you are."
    assert sleeps == [0.1, 0.2]


def test_transport_errors_raise_after_backoff_exhausted() -> None:
    opener = FakeOpener([error.URLError("refused")] * 2)
    client = ChatClient(GatewayConfig(backoff_ms=(10,)), opener=opener, sleeper=lambda _: None)
    with pytest.raises(ChatServiceError, match="after 2 attempts"):
        client.send_text("hello", PersonaConfig())


def test_empty_reply_is_an_error() -> None:
    client = ChatClient(GatewayConfig(), opener=FakeOpener([{"error": "AI Processing Failed"}]))
    with pytest.raises(ChatServiceError, match="AI Processing Failed"):
        client.send_text("hello", PersonaConfig())


@pytest.mark.parametrize("payload", [["Hello"], "Hello", 42, None])
def test_non_object_reply_is_an_error(payload) -> None:
    client = ChatClient(GatewayConfig(), opener=FakeOpener([payload]))
    with pytest.raises(ChatServiceError, match="expected a JSON object"):
        client.send_text("hello", PersonaConfig())


def test_non_string_text_is_an_error() -> None:
    client = ChatClient(GatewayConfig(), opener=FakeOpener([{"text": 7}]))
    with pytest.raises(ChatServiceError, match="no text"):
        client.send_text("hello", PersonaConfig())


def test_http_error_with_non_object_body_uses_reason() -> None:
    http_error = error.HTTPError(
        "http://chat.test", 502, "Bad Gateway", hdrs={}, fp=io.BytesIO(b'["upstream"]')
    )
    client = ChatClient(GatewayConfig(), opener=FakeOpener([http_error]))
    with pytest.raises(ChatServiceError, match="502: Bad Gateway"):
        client.send_text("hello", PersonaConfig())
