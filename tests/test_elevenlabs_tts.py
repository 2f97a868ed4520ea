import requests

from virtual_date.core.config import VoiceConfig
from virtual_date.voice.elevenlabs_tts import ElevenLabsSpeechClient


class FakeStreamResponse:
    def __init__(self, chunks, status=200, fail_after=None):
        self.chunks = chunks
        self.status = status
        self.fail_after = fail_after
        self.closed = False

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.closed = True
        return False

    def raise_for_status(self):
        if self.status >= 400:
            raise requests.HTTPError(f"{self.status} error")

    def iter_content(self, chunk_size=1):
        for index, chunk in enumerate(self.chunks):
            if self.fail_after is not None and index >= self.fail_after:
                raise requests.exceptions.ChunkedEncodingError("connection broken")
            yield chunk


class FakeHTTP:
    def __init__(self, response=None, error=None):
        self.response = response
        self.error = error
        self.calls = []

    def post(self, url, **kwargs):
        self.calls.append((url, kwargs))
        if self.error:
            raise self.error
        return self.response

    def close(self):
        pass


def make_client(http, **overrides):
    settings = {"elevenlabs_api_key": "xi-key", "default_voice_id": "voice-1"}
    settings.update(overrides)
    return ElevenLabsSpeechClient(VoiceConfig(**settings), http=http)


async def test_stream_is_drained_into_one_buffer():
    http = FakeHTTP(FakeStreamResponse([b"ID3", b"", b"abc", b"def"]))
    client = make_client(http)

    audio = await client.synthesize("Hi there~", "voice-9")

    assert audio == b"ID3abcdef"
    url, kwargs = http.calls[0]
    assert url == "https://api.elevenlabs.io/v1/text-to-speech/voice-9/stream"
    assert kwargs["headers"]["xi-api-key"] == "xi-key"
    assert kwargs["headers"]["Accept"] == "audio/mpeg"
    assert kwargs["json"] == {
        "text": "Hi there~",
        "model_id": "eleven_monolingual_v1",
        "voice_settings": {"stability": 0.5, "similarity_boost": 0.75},
    }
    assert kwargs["params"] == {"output_format": "mp3_44100_128"}
    assert kwargs["stream"] is True
    assert http.response.closed


async def test_default_voice_used_when_none_given():
    http = FakeHTTP(FakeStreamResponse([b"x"]))
    await make_client(http).synthesize("hi")
    assert http.calls[0][0].endswith("/voice-1/stream")


async def test_missing_key_returns_none_without_request():
    http = FakeHTTP(FakeStreamResponse([b"x"]))
    client = make_client(http, elevenlabs_api_key=None)
    assert await client.synthesize("hi", "voice-1") is None
    assert http.calls == []


async def test_missing_voice_returns_none():
    http = FakeHTTP(FakeStreamResponse([b"x"]))
    client = make_client(http, default_voice_id="")
    assert await client.synthesize("hi") is None
    assert http.calls == []


async def test_disabled_returns_none():
    http = FakeHTTP(FakeStreamResponse([b"x"]))
    client = make_client(http)
    client.toggle()
    assert await client.synthesize("hi") is None
    assert http.calls == []


async def test_http_error_returns_none():
    client = make_client(FakeHTTP(FakeStreamResponse([b"x"], status=401)))
    assert await client.synthesize("hi") is None


async def test_network_error_returns_none():
    client = make_client(FakeHTTP(error=requests.ConnectionError("down")))
    assert await client.synthesize("hi") is None


async def test_partial_stream_returns_none():
    client = make_client(FakeHTTP(FakeStreamResponse([b"abc", b"def"], fail_after=1)))
    assert await client.synthesize("hi") is None


async def test_empty_stream_returns_none():
    client = make_client(FakeHTTP(FakeStreamResponse([])))
    assert await client.synthesize("hi") is None
