import pytest

from fakes import FakeDialogue, FakeSpeech
from virtual_date.core.config import Config
from virtual_date.core.session import Session
from virtual_date.models.character import DEFAULT_PERSONAS


@pytest.fixture
def config():
    return Config()


@pytest.fixture
def arisa():
    return DEFAULT_PERSONAS["arisa"]


@pytest.fixture
def alex():
    return DEFAULT_PERSONAS["alex"]


@pytest.fixture
def session(arisa):
    return Session(persona=arisa, affection=50)


@pytest.fixture
def fake_dialogue():
    return FakeDialogue()


@pytest.fixture
def fake_speech():
    return FakeSpeech()
