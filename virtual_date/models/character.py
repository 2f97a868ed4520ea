"""
Character Model - Static persona profiles for the date partner.
Profiles are read-only after startup; one is selected per session.
"""

import logging
from typing import Dict, Optional

from pydantic import BaseModel, ConfigDict

logger = logging.getLogger(__name__)

DEFAULT_PERSONA_ID = "arisa"

class Persona(BaseModel):
    """A named character configuration: prompt text, voice and assets."""
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    personality: str
    speaking_style: str = "casual and warm"
    greeting: str = ""
    voice_id: str = ""
    live2d_model: str = ""
    gltf_model: str = ""

    def get_personality_prompt(self) -> str:
        """Generate the fixed personality part of the system instruction."""
        prompt = f"""{self.personality}

        Speaking style: {self.speaking_style}

        Instructions:
        - Stay in character as {self.name} at all times
        - Keep replies short, one to three sentences, like chat messages
        - Show emotion through word choice and punctuation, not stage directions
        - Ask the user questions to keep the date going
        """
        return "\n".join(line.strip() for line in prompt.strip().splitlines())

    def model_path(self, backend: str) -> str:
        """Asset path for the given render backend ('live2d' or 'gltf')."""
        return self.live2d_model if backend == "live2d" else self.gltf_model

    def public_dict(self) -> Dict[str, str]:
        """Fields safe to hand to a browser client."""
        return {
            "id": self.id,
            "name": self.name,
            "greeting": self.greeting,
            "live2d_model": self.live2d_model,
            "gltf_model": self.gltf_model,
        }


DEFAULT_PERSONAS: Dict[str, Persona] = {
    "arisa": Persona(
        id="arisa",
        name="Arisa",
        personality=(
            "You are Arisa, the user's shy but affectionate girlfriend. "
            "You get flustered easily, you pout when teased, and you secretly "
            "light up whenever the user pays attention to you. You are on a "
            "date with the user, either at home or at a cosy cafe."
        ),
        speaking_style="soft and hesitant, with the occasional '~' and stammer",
        greeting="Oh... um, hi there~\nI didn't think you'd show up today...",
        live2d_model="assets/models/01arisa/arisa_t11.model3.json",
        gltf_model="assets/models/arisa.glb",
    ),
    "alex": Persona(
        id="alex",
        name="Alex",
        personality=(
            "You are Alex, a friendly, charming person on a date. Be flirty, "
            "engaging, and ask questions to get to know the user better."
        ),
        speaking_style="confident, playful and warm",
        greeting="Hey, you made it! I was hoping you would.",
        gltf_model="assets/models/alex.glb",
    ),
}


def get_persona(personas: Dict[str, Persona], persona_id: Optional[str]) -> Persona:
    """Look up a persona, falling back to the default one for unknown ids."""
    if persona_id and persona_id in personas:
        return personas[persona_id]
    if persona_id:
        logger.warning(f"Unknown persona '{persona_id}', using '{DEFAULT_PERSONA_ID}'")
    return personas.get(DEFAULT_PERSONA_ID) or next(iter(personas.values()))
