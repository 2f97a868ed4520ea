import pytest

from virtual_date.ai.gemini_client import (
    GeminiDialogueClient, build_system_instruction, to_gemini_history,
)
from virtual_date.core.config import DialogueConfig
from virtual_date.core.errors import ConfigurationError, UpstreamError
from virtual_date.core.session import Turn
from virtual_date.models.character import DEFAULT_PERSONAS


class FakeResponse:
    def __init__(self, text=None, blocked=False):
        self._text = text
        self._blocked = blocked

    @property
    def text(self):
        if self._blocked:
            raise ValueError("response was blocked")
        return self._text


class FakeChat:
    def __init__(self, model):
        self.model = model

    def send_message(self, message):
        self.model.sent.append(message)
        if self.model.error:
            raise self.model.error
        return self.model.response


class FakeModel:
    def __init__(self, response=None, error=None):
        self.response = response
        self.error = error
        self.history = None
        self.sent = []

    def start_chat(self, history):
        self.history = history
        return FakeChat(self)


class ModelFactory:
    def __init__(self, model):
        self.model = model
        self.instructions = []

    def __call__(self, system_instruction):
        self.instructions.append(system_instruction)
        return self.model


def make_client(model, api_key="test-key"):
    factory = ModelFactory(model)
    client = GeminiDialogueClient(DialogueConfig(gemini_api_key=api_key), DEFAULT_PERSONAS,
                                  model_factory=factory)
    return client, factory


async def test_missing_key_fails_before_any_call():
    client, factory = make_client(FakeModel(FakeResponse("hi")), api_key=None)

    with pytest.raises(ConfigurationError):
        await client.converse("hello", [], "arisa", 50)

    assert factory.instructions == []
    assert factory.model.sent == []


async def test_history_and_system_instruction():
    model = FakeModel(FakeResponse("Oh! Hi~"))
    client, factory = make_client(model)
    history = [Turn("user", "hi"), Turn("assistant", "hello"), Turn("user", "how are you?"),
               Turn("assistant", "good")]

    reply = await client.converse("want coffee?", history, "arisa", 73)

    assert reply == "Oh! Hi~"
    assert model.history == [
        {"role": "user", "parts": ["hi"]},
        {"role": "model", "parts": ["hello"]},
        {"role": "user", "parts": ["how are you?"]},
        {"role": "model", "parts": ["good"]},
    ]
    assert model.sent == ["want coffee?"]
    instruction = factory.instructions[0]
    assert instruction.startswith(DEFAULT_PERSONAS["arisa"].get_personality_prompt())
    assert "User affection: 73/100" in instruction


def test_system_instruction_clamps_affection():
    instruction = build_system_instruction(DEFAULT_PERSONAS["alex"], 180)
    assert "User affection: 100/100" in instruction
    assert "You are Alex" in instruction


def test_to_gemini_history_roles():
    assert to_gemini_history([Turn("assistant", "a")]) == [{"role": "model", "parts": ["a"]}]


async def test_reply_filters_strip_actions_and_whitespace():
    client, _ = make_client(FakeModel(FakeResponse("*blushes*  Y-you\n came   back~")))
    assert await client.converse("hi", [], "arisa", 50) == "Y-you came back~"


async def test_backend_error_is_upstream_error():
    client, _ = make_client(FakeModel(error=RuntimeError("500 internal")))
    with pytest.raises(UpstreamError) as excinfo:
        await client.converse("hi", [], "arisa", 50)
    assert excinfo.value.backend == "gemini"


async def test_blocked_response_is_upstream_error():
    client, _ = make_client(FakeModel(FakeResponse(blocked=True)))
    with pytest.raises(UpstreamError):
        await client.converse("hi", [], "arisa", 50)


@pytest.mark.parametrize("text", ["", "   ", "*sighs*", None])
async def test_empty_reply_is_upstream_error(text):
    client, _ = make_client(FakeModel(FakeResponse(text)))
    with pytest.raises(UpstreamError):
        await client.converse("hi", [], "arisa", 50)


async def test_single_attempt_per_call():
    model = FakeModel(error=RuntimeError("boom"))
    client, factory = make_client(model)
    with pytest.raises(UpstreamError):
        await client.converse("hi", [], "arisa", 50)
    assert len(model.sent) == 1
