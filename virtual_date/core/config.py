"""
Configuration management for Virtual Date.
Handles loading and validation of application settings.
"""

import os
from pathlib import Path
from typing import Dict, Any, Optional

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field

from ..models.character import DEFAULT_PERSONAS, Persona

class DialogueConfig(BaseModel):
    """Hosted LLM (Gemini) configuration."""
    model_config = ConfigDict(frozen=True)

    gemini_api_key: Optional[str] = None
    gemini_model: str = "gemini-flash-latest"
    temperature: float = 0.9
    top_k: int = 40
    top_p: float = 0.95
    max_output_tokens: int = 200

class VoiceConfig(BaseModel):
    """Hosted text-to-speech (ElevenLabs) configuration."""
    model_config = ConfigDict(frozen=True)

    enabled: bool = True
    elevenlabs_api_key: Optional[str] = None
    elevenlabs_api_url: str = "https://api.elevenlabs.io/v1/text-to-speech"
    default_voice_id: str = ""
    model_id: str = "eleven_monolingual_v1"
    output_format: str = "mp3_44100_128"
    stability: float = 0.5
    similarity_boost: float = 0.75
    chunk_size: int = 4096
    timeout: float = 30.0

class GraphicsConfig(BaseModel):
    """Render backend and lip-sync configuration."""
    model_config = ConfigDict(frozen=True)

    backend: str = "live2d"  # live2d, gltf
    target_fps: int = 60
    lip_sync_enabled: bool = True
    fft_size: int = 256
    smoothing: float = 0.8
    mouth_threshold: float = 0.1
    default_scene: str = "home"  # home, cafe

class ServerConfig(BaseModel):
    """HTTP surface configuration."""
    model_config = ConfigDict(frozen=True)

    host: str = "127.0.0.1"
    port: int = 8080
    include_lip_sync: bool = True

class SessionConfig(BaseModel):
    """Per-session defaults."""
    model_config = ConfigDict(frozen=True)

    default_persona: str = "arisa"
    starting_affection: int = 50

class Config(BaseModel):
    """Main application configuration."""
    model_config = ConfigDict(frozen=True)

    app_name: str = "Virtual Date"
    version: str = "1.0.0"
    debug: bool = False
    log_level: str = "INFO"
    log_dir: Path = Path("logs")

    # Component configurations
    ai: DialogueConfig = Field(default_factory=DialogueConfig)
    voice: VoiceConfig = Field(default_factory=VoiceConfig)
    graphics: GraphicsConfig = Field(default_factory=GraphicsConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)
    session: SessionConfig = Field(default_factory=SessionConfig)
    personas: Dict[str, Persona] = Field(default_factory=lambda: dict(DEFAULT_PERSONAS))

# Environment variable -> (section, key)
ENV_OVERRIDES = {
    "GEMINI_API_KEY": ("ai", "gemini_api_key"),
    "GEMINI_MODEL": ("ai", "gemini_model"),
    "ELEVENLABS_API_KEY": ("voice", "elevenlabs_api_key"),
    "ELEVENLABS_VOICE_ID": ("voice", "default_voice_id"),
    "RENDER_BACKEND": ("graphics", "backend"),
    "SERVER_HOST": ("server", "host"),
    "SERVER_PORT": ("server", "port"),
}

def deep_merge(base: dict, override: dict) -> dict:
    """Deep merge two dictionaries."""
    for key, value in override.items():
        if key in base and isinstance(base[key], dict) and isinstance(value, dict):
            base[key] = deep_merge(base[key], value)
        else:
            base[key] = value
    return base

def load_config(config_file: Optional[str] = None, use_env: bool = True) -> Config:
    """Load configuration from file, then environment variables.

    Loaded once at startup; the returned models are frozen.
    """
    if config_file is None:
        config_file = "configs/config.yaml"

    config_path = Path(config_file)

    config_data: Dict[str, Any] = {}
    if config_path.exists() and config_path.suffix in ['.yaml', '.yml']:
        with open(config_path, 'r', encoding='utf-8') as f:
            config_data = yaml.safe_load(f) or {}

    env_overrides: Dict[str, Any] = {}
    if use_env:
        load_dotenv()
        for env_name, (section, key) in ENV_OVERRIDES.items():
            value = os.getenv(env_name)
            if value:
                env_overrides.setdefault(section, {})[key] = value
        if os.getenv('LOG_LEVEL'):
            env_overrides['log_level'] = os.getenv('LOG_LEVEL')

    final_config = deep_merge(config_data, env_overrides)

    # YAML personas extend the built-in ones rather than replacing them
    if 'personas' in final_config:
        personas = {key: persona.model_dump() for key, persona in DEFAULT_PERSONAS.items()}
        for persona_id, data in (final_config['personas'] or {}).items():
            merged = deep_merge(personas.get(persona_id, {}), dict(data or {}))
            merged['id'] = persona_id
            personas[persona_id] = merged
        final_config['personas'] = personas

    return Config(**final_config)

def save_config(config: Config, config_file: str = "configs/config.yaml"):
    """Save configuration to YAML file, without credentials."""
    config_path = Path(config_file)
    config_path.parent.mkdir(parents=True, exist_ok=True)

    config_dict = config.model_dump(mode="json", exclude={
        "ai": {"gemini_api_key"},
        "voice": {"elevenlabs_api_key"},
    })

    with open(config_path, 'w', encoding='utf-8') as f:
        yaml.dump(config_dict, f, default_flow_style=False, indent=2)
