import io
import json

import pytest
from rich.console import Console

from fakes import FakeDialogue, FakePlayer, FakeSpeech, noise, pcm_bytes
from virtual_date.ai.expression import Expression
from virtual_date.core.application import DateApplication, FrameLoop
from virtual_date.core.config import Config
from virtual_date.graphics.live2d import MOUTH_PARAMETER, Live2DRigBackend
from virtual_date.voice.lip_sync import LipSyncDriver
from virtual_date.voice.playback import AudioPlayback


def test_frame_loop_runs_callbacks_and_survives_errors():
    loop = FrameLoop(target_fps=60)
    seen = []
    loop.add(seen.append)
    loop.add(lambda delta: 1 / 0)
    loop.add(lambda delta: seen.append(delta * 2))

    loop.step(0.5)

    assert seen == [0.5, 1.0]
    assert loop.frames == 1


async def test_frame_loop_stops():
    loop = FrameLoop(target_fps=120)
    loop.add(lambda delta: loop.stop() if loop.frames >= 2 else None)
    await loop.run()
    assert loop.frames == 3


@pytest.fixture
def model_file(tmp_path):
    path = tmp_path / "arisa.model3.json"
    path.write_text(json.dumps({"FileReferences": {
        "Moc": "arisa.moc3",
        "Expressions": [{"Name": name, "File": f"{name}.exp3.json"} for name in ("Normal", "Smile", "Angry")],
        "Motions": {"Idle": []},
    }}), encoding="utf-8")
    return path


@pytest.fixture
def app():
    backend = Live2DRigBackend()
    player = FakePlayer()
    playback = AudioPlayback(LipSyncDriver(backend), player=player, audio_format="pcm_16000")
    return DateApplication(
        Config(),
        dialogue=FakeDialogue(replies=["Hmph! You're late.", "Hehe, thanks~"]),
        speech=FakeSpeech(audio=pcm_bytes(noise(seconds=0.5))),
        backend=backend,
        playback=playback,
        console=Console(file=io.StringIO(), width=100),
    )


async def test_reply_drives_expression_and_playback(app, model_file):
    await app.initialize()
    app.backend.load_asset(str(model_file))

    assert await app.handle_line("Sorry I'm late")

    assert app.backend.expression is Expression.ANGRY
    assert app.backend.current_expression == "Angry"
    assert app.playback.playing
    assert app.session.affection == 46

    app.playback.player.busy = False
    app.frame_loop.step(1 / 60)
    assert not app.playback.playing
    assert app.backend.parameters[MOUTH_PARAMETER] == 0.0


async def test_cafe_receipt_and_pay(app):
    await app.initialize()

    assert app.receipt is None
    await app.handle_line("/cafe")
    assert app.scene == "cafe"
    assert app.receipt.model_name == "Arisa"

    await app.handle_line("/pay")
    assert app.scene == "home"
    assert app.receipt is None
    assert "Total:" in app.console.file.getvalue()


async def test_voice_toggle_and_quit(app):
    await app.initialize()
    assert await app.handle_line("/voice")
    assert app.speech.enabled is False
    assert await app.handle_line("/quit") is False


async def test_blank_line_is_ignored(app):
    await app.initialize()
    assert await app.handle_line("   ")
    assert app.dialogue.calls == []


def test_model_path_follows_backend(app):
    assert app.model_path == app.session.persona.live2d_model


async def test_stats_command(app):
    await app.initialize()
    await app.handle_line("Sorry I'm late")
    assert await app.handle_line("/stats")
    output = app.console.file.getvalue()
    assert "turns 2" in output
    assert "affection 46/100" in output


async def test_shutdown_releases_subscriptions(app):
    await app.initialize()
    app.running = True
    await app.shutdown()
    assert not any(app.event_bus.listeners.values())
    assert app._unsubscribers == []


def test_persona_without_live2d_model_uses_gltf():
    app = DateApplication(Config(), persona_id="alex", dialogue=FakeDialogue(), speech=FakeSpeech(),
                          playback=AudioPlayback(LipSyncDriver(), player=FakePlayer()),
                          console=Console(file=io.StringIO()))
    assert app.backend.name == "gltf"
    assert app.model_path == app.session.persona.gltf_model
