"""
Main application class for Virtual Date.
Owns one date session and coordinates the conversation, speech playback,
lip-sync and the render backend on a single asyncio loop.
"""

import asyncio
import logging
import signal
import time
from typing import Callable, List, Optional

from rich.console import Console
from rich.panel import Panel

from .config import Config
from .errors import ValidationError
from .event_bus import EXPRESSION_CHANGED, SPEECH_READY, EventBus
from .session import Session
from ..ai.conversation import ChatController
from ..ai.expression import Expression
from ..ai.gemini_client import GeminiDialogueClient, create_dialogue_client
from ..graphics.backend import RenderBackend, create_backend, mount
from ..graphics.parallax import compose
from ..models.character import get_persona
from ..models.receipt import DEFAULT_CAFE_ORDER, Receipt
from ..voice.elevenlabs_tts import ElevenLabsSpeechClient
from ..voice.lip_sync import LipSyncDriver
from ..voice.playback import AudioPlayback

logger = logging.getLogger(__name__)

class FrameLoop:
    """Cooperative per-frame loop: one callback pass per display refresh.

    Callbacks get the frame delta in seconds and must not block.
    """

    def __init__(self, target_fps: int = 60, clock: Callable[[], float] = time.monotonic):
        self.target_fps = target_fps
        self.clock = clock
        self.callbacks: List[Callable[[float], object]] = []
        self.running = False
        self.frames = 0

    def add(self, callback: Callable[[float], object]):
        self.callbacks.append(callback)

    def step(self, delta: float):
        for callback in self.callbacks:
            try:
                callback(delta)
            except Exception as e:
                logger.error(f"Error in frame callback: {e}", exc_info=True)
        self.frames += 1

    async def run(self):
        self.running = True
        last = self.clock()
        while self.running:
            now = self.clock()
            self.step(now - last)
            last = now
            await asyncio.sleep(1 / self.target_fps)

    def stop(self):
        self.running = False

class DateApplication:
    """One virtual date: session, controller, playback and renderer."""

    def __init__(self, config: Config, persona_id: Optional[str] = None,
                 dialogue: Optional[GeminiDialogueClient] = None,
                 speech: Optional[ElevenLabsSpeechClient] = None,
                 backend: Optional[RenderBackend] = None,
                 playback: Optional[AudioPlayback] = None,
                 console: Optional[Console] = None):
        self.config = config
        self.running = False
        self.event_bus = EventBus()
        self.console = console or Console()

        persona = get_persona(config.personas, persona_id or config.session.default_persona)
        self.session = Session(persona=persona, affection=config.session.starting_affection)

        self.backend = backend or create_backend(config.graphics, persona)
        self.dialogue = dialogue or create_dialogue_client(config.ai, config.personas)
        self.speech = speech or ElevenLabsSpeechClient(config.voice)
        self.playback = playback or AudioPlayback(
            LipSyncDriver(self.backend, fft_size=config.graphics.fft_size,
                          smoothing=config.graphics.smoothing),
            audio_format=config.voice.output_format,
        )
        self.controller = ChatController(self.session, self.dialogue, self.speech,
                                         event_bus=self.event_bus)
        self.frame_loop = FrameLoop(config.graphics.target_fps)
        self.scene = config.graphics.default_scene
        self.receipt: Optional[Receipt] = None
        self._unsubscribers: List[Callable[[], None]] = []

        logger.info(f"Date application initialized with {persona.name}")

    @property
    def model_path(self) -> str:
        return self.session.persona.model_path(self.backend.name)

    async def initialize(self):
        await self.event_bus.initialize()
        self._setup_event_handlers()
        self.frame_loop.add(self.backend.update)
        if self.config.graphics.lip_sync_enabled:
            self.frame_loop.add(lambda delta: self.playback.tick())

    def _setup_event_handlers(self):
        self._unsubscribers = [
            self.event_bus.subscribe(EXPRESSION_CHANGED, self._handle_expression),
            self.event_bus.subscribe(SPEECH_READY, self._handle_speech),
        ]
        logger.info("Event handlers configured")

    def _handle_expression(self, expression: Expression):
        self.backend.set_expression(expression)

    def _handle_speech(self, audio: bytes):
        self.playback.play(audio)

    # Console commands

    def go_to(self, scene: str):
        self.scene = scene
        if scene == "cafe":
            self.receipt = Receipt(
                model_name=self.session.persona.name,
                items=list(DEFAULT_CAFE_ORDER),
                on_pay=lambda: self.go_to("home"),
            )
        else:
            self.receipt = None

    def show_receipt(self):
        if not self.receipt:
            self.console.print("[yellow]The bill only comes at the café. Try /cafe first.[/yellow]")
            return
        self.console.print(Panel("\n".join(self.receipt.lines()), title="Receipt"))

    def show_scene(self):
        background = compose(self.scene, 0.0)
        state = self.backend.snapshot()
        self.console.print(
            f"[dim]{background['scene']} ({background['time_of_day']}) | "
            f"{state['backend']} {state['expression']} | affection {self.session.affection}/100[/dim]"
        )

    def show_stats(self):
        stats = self.controller.get_stats()
        self.console.print(
            f"[dim]turns {stats['total_turns']} | affection {stats['affection']}/100 | "
            f"avg reply {stats['average_response_time']:.2f}s | errors {stats['error_count']}[/dim]"
        )

    async def handle_line(self, line: str) -> bool:
        """Process one console line; returns False to end the date."""
        command = line.strip().lower()
        if command in ("/quit", "/exit"):
            return False
        if command == "/cafe":
            self.go_to("cafe")
            self.console.print("[magenta]You head to the café together.[/magenta]")
        elif command == "/home":
            self.go_to("home")
        elif command == "/pay":
            self.show_receipt()
            if self.receipt:
                self.receipt.confirm()
                self.console.print("[magenta]Paid. Back home you go.[/magenta]")
        elif command == "/voice":
            enabled = self.speech.toggle()
            self.console.print(f"Voice: {'ON' if enabled else 'OFF'}")
        elif command == "/scene":
            self.show_scene()
        elif command == "/stats":
            self.show_stats()
        else:
            await self.chat(line)
        return True

    async def chat(self, text: str):
        try:
            with self.console.status("Thinking..."):
                result = await self.controller.send(text)
        except ValidationError:
            return

        if result is None:
            return
        style = "red" if result.degraded else "magenta"
        self.console.print(f"[{style}]{self.session.persona.name}[/{style}] "
                           f"[dim]({result.expression.value})[/dim]: {result.reply}")

    async def _read_lines(self):
        while self.running:
            line = await asyncio.to_thread(self.console.input, "[bold cyan]You[/bold cyan]: ")
            if not await self.handle_line(line):
                break

    async def run_console(self):
        """Interactive date in the terminal."""
        await self.initialize()
        self.running = True

        loop = asyncio.get_running_loop()
        try:
            loop.add_signal_handler(signal.SIGTERM, self.frame_loop.stop)
        except NotImplementedError:
            pass

        with mount(self.backend, self.model_path):
            if self.backend.is_placeholder:
                self.console.print(f"[yellow]Model not found at {self.model_path}; using placeholder.[/yellow]")

            persona = self.session.persona
            self.console.print(Panel(persona.greeting or f"Hi, I'm {persona.name}!",
                                     title=persona.name,
                                     subtitle="/cafe /home /pay /voice /scene /stats /quit"))

            frames = asyncio.create_task(self.frame_loop.run())
            try:
                await self._read_lines()
            except (EOFError, KeyboardInterrupt):
                pass
            finally:
                self.frame_loop.stop()
                await frames
                await self.shutdown()

    async def shutdown(self):
        """Shutdown the application gracefully."""
        if not self.running:
            return

        logger.info("Shutting down application...")
        self.running = False

        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers = []

        for component in (self.playback, self.speech, self.event_bus):
            try:
                await component.shutdown()
            except Exception as e:
                logger.error(f"Error shutting down component: {e}")

        logger.info("Application shutdown complete")
