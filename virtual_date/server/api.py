"""
HTTP surface for the browser front end.

The server keeps no conversation state: each request carries its own history
and affection, is replayed into a fresh Session and answered once.
"""

import asyncio
import base64
import logging
import math
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional

from aiohttp import web

from ..ai.conversation import ChatController
from ..ai.gemini_client import GeminiDialogueClient, create_dialogue_client
from ..core.config import Config
from ..core.errors import ConfigurationError, ValidationError
from ..core.session import Session, Turn
from ..graphics.parallax import SCENES, compose, normalize_pointer
from ..models.character import get_persona
from ..models.receipt import Receipt, ReceiptItem
from ..voice.elevenlabs_tts import ElevenLabsSpeechClient
from ..voice.lip_sync import decode_audio, envelope

logger = logging.getLogger(__name__)

CONFIG_KEY = web.AppKey("config", Config)
DIALOGUE_KEY = web.AppKey("dialogue", GeminiDialogueClient)
SPEECH_KEY = web.AppKey("speech", ElevenLabsSpeechClient)

ROLE_ALIASES = {"user": "user", "assistant": "assistant", "model": "assistant", "ai": "assistant"}

def error_response(message: str, status: int) -> web.Response:
    return web.json_response({"error": message}, status=status)

def parse_history(raw: Any) -> List[Turn]:
    """Client history items {role, content} to Turns, in order."""
    if raw is None:
        return []
    if not isinstance(raw, list):
        raise ValidationError("history must be a list")

    turns = []
    for item in raw:
        if not isinstance(item, dict):
            raise ValidationError("history items must be objects")
        role = ROLE_ALIASES.get(item.get("role"))
        content = item.get("content", item.get("text"))
        if role is None or not isinstance(content, str):
            raise ValidationError("history items need a role and string content")
        turns.append(Turn(role, content))
    return turns

def parse_chat_request(body: Any, config: Config) -> Dict[str, Any]:
    if not isinstance(body, dict):
        raise ValidationError("Invalid message")

    message = body.get("message")
    if not isinstance(message, str) or not message.strip():
        raise ValidationError("Invalid message")

    persona_id = body.get("persona") or config.session.default_persona
    if not isinstance(persona_id, str) or persona_id not in config.personas:
        raise ValidationError(f"Unknown persona: {persona_id}")

    affection = body.get("affection", config.session.starting_affection)
    if isinstance(affection, bool) or not isinstance(affection, (int, float)):
        raise ValidationError("affection must be a number")
    if isinstance(affection, float) and not math.isfinite(affection):
        raise ValidationError("affection must be finite")

    return {
        "message": message,
        "history": parse_history(body.get("history")),
        "persona": config.personas[persona_id],
        "affection": affection,
    }

async def handle_chat(request: web.Request) -> web.Response:
    """POST /api/chat -> {reply, expression, affection, audio?, lip_sync?}"""
    config = request.app[CONFIG_KEY]

    try:
        body = await request.json()
    except ValueError:
        return error_response("Invalid message", 400)

    try:
        chat = parse_chat_request(body, config)
    except ValidationError as e:
        logger.debug(f"Rejected chat request: {e}")
        return error_response(str(e), 400)

    session = Session.from_history(chat["persona"], chat["history"], chat["affection"])
    controller = ChatController(session, request.app[DIALOGUE_KEY], request.app[SPEECH_KEY])

    result = await controller.send(chat["message"])

    if result.degraded:
        if isinstance(result.error, ConfigurationError):
            return error_response("Missing GEMINI_API_KEY. Add it to .env.", 500)
        return error_response("Gemini request failed", 500)

    payload = result.to_dict()
    if result.audio:
        audio_format = request.app[SPEECH_KEY].audio_format
        payload["audio"] = base64.b64encode(result.audio).decode("ascii")
        payload["audio_format"] = audio_format
        if config.server.include_lip_sync:
            lip_sync = await asyncio.to_thread(build_lip_sync, result.audio, audio_format, config)
            if lip_sync is not None:
                payload["lip_sync"] = lip_sync

    return web.json_response(payload)

def build_lip_sync(audio: bytes, audio_format: str, config: Config) -> Optional[Dict[str, Any]]:
    """Per-frame mouth openness track for the browser to replay."""
    try:
        samples, sample_rate = decode_audio(audio, audio_format)
    except ValueError as e:
        logger.warning(f"Skipping lip-sync track: {e}")
        return None

    fps = config.graphics.target_fps
    values = envelope(samples, sample_rate, fps=fps,
                      fft_size=config.graphics.fft_size, smoothing=config.graphics.smoothing)
    return {"fps": fps, "mouth": [round(value, 3) for value in values]}

async def handle_personas(request: web.Request) -> web.Response:
    config = request.app[CONFIG_KEY]
    return web.json_response({
        "default": config.session.default_persona,
        "personas": [persona.public_dict() for persona in config.personas.values()],
    })

async def handle_scene(request: web.Request) -> web.Response:
    """GET /api/scene?scene=home&x=0.2&y=-0.1[&hour=14]

    Raw pointer coordinates may be sent instead of x and y:
    client_x, client_y, width and height of the viewport in px.
    """
    config = request.app[CONFIG_KEY]
    query = request.query
    scene = query.get("scene", config.graphics.default_scene)
    if scene not in SCENES:
        return error_response(f"Unknown scene: {scene}", 400)

    try:
        hour = int(query["hour"]) if "hour" in query else None
        if "client_x" in query:
            raw = [float(query[key]) for key in ("client_x", "client_y", "width", "height")]
        else:
            raw = [float(query.get("x", 0)), float(query.get("y", 0))]
    except (KeyError, ValueError):
        return error_response("pointer and hour must be numbers", 400)
    if not all(math.isfinite(value) for value in raw):
        return error_response("pointer must be finite", 400)

    try:
        x, y = normalize_pointer(*raw) if len(raw) == 4 else raw
    except ValidationError as e:
        return error_response(str(e), 400)

    return web.json_response(compose(scene, x, y, hour))

async def handle_receipt(request: web.Request) -> web.Response:
    """POST /api/receipt {items: [{name, price}]} -> totals"""
    config = request.app[CONFIG_KEY]
    try:
        body = await request.json()
        items = [
            ReceiptItem(str(item["name"]), Decimal(str(item["price"])))
            for item in body["items"]
        ]
    except (ValueError, KeyError, TypeError, InvalidOperation):
        return error_response("items must be a list of {name, price}", 400)

    persona_id = body.get("persona")
    persona = get_persona(config.personas, persona_id if isinstance(persona_id, str) else None)
    receipt = Receipt(model_name=persona.name, items=items)
    return web.json_response(receipt.to_dict())

async def handle_health(request: web.Request) -> web.Response:
    config = request.app[CONFIG_KEY]
    return web.json_response({
        "status": "ok",
        "app": config.app_name,
        "version": config.version,
        "dialogue": request.app[DIALOGUE_KEY].available,
        "voice": request.app[SPEECH_KEY].available,
    })

async def _close_speech(app: web.Application):
    await app[SPEECH_KEY].shutdown()

def create_app(config: Config, dialogue: Optional[GeminiDialogueClient] = None,
               speech: Optional[ElevenLabsSpeechClient] = None) -> web.Application:
    """Build the aiohttp application."""
    app = web.Application()
    app[CONFIG_KEY] = config
    app[DIALOGUE_KEY] = dialogue or create_dialogue_client(config.ai, config.personas)
    app[SPEECH_KEY] = speech or ElevenLabsSpeechClient(config.voice)

    app.router.add_post("/api/chat", handle_chat)
    app.router.add_get("/api/personas", handle_personas)
    app.router.add_get("/api/scene", handle_scene)
    app.router.add_post("/api/receipt", handle_receipt)
    app.router.add_get("/health", handle_health)
    app.on_cleanup.append(_close_speech)

    logger.info("HTTP API routes configured")
    return app

def run_server(config: Config):
    app = create_app(config)
    logger.info(f"Serving on http://{config.server.host}:{config.server.port}")
    web.run_app(app, host=config.server.host, port=config.server.port)
