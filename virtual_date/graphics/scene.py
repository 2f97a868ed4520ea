"""
3D scene backend - glTF/GLB (and VRM) character state.
Parses the asset with pygltflib, picks the idle and mouth clips by name and
maps expressions onto VRM blend-shape presets when the model has them.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional

from pygltflib import GLTF2

from .backend import RenderBackend
from ..ai.expression import Expression
from ..core.errors import RenderError

logger = logging.getLogger(__name__)

# VRM 0.x blendShapeGroup presets
VRM0_PRESETS = {
    Expression.NORMAL: "neutral",
    Expression.SMILE: "joy",
    Expression.SAD: "sorrow",
    Expression.ANGRY: "angry",
    Expression.SURPRISED: "surprised",
}

# VRM 1.0 expression presets
VRM1_PRESETS = {
    Expression.NORMAL: "neutral",
    Expression.SMILE: "happy",
    Expression.SAD: "sad",
    Expression.ANGRY: "angry",
    Expression.SURPRISED: "surprised",
}

@dataclass
class AnimationAction:
    """Playback state of one animation clip."""
    name: str
    duration: float = 0.0
    time: float = 0.0
    weight: float = 1.0
    running: bool = False

    def play(self):
        self.running = True

    def stop(self):
        self.running = False
        self.time = 0.0

    def advance(self, delta: float):
        if not self.running:
            return
        self.time += delta
        if self.duration > 0:
            self.time %= self.duration

def _is_glb(raw: bytes) -> bool:
    return len(raw) >= 4 and raw[:4] == b'glTF'

def find_clip(names: List[str], *keywords: str) -> Optional[str]:
    """First clip whose name contains any keyword, case-insensitive."""
    for name in names:
        lowered = name.lower()
        if any(keyword in lowered for keyword in keywords):
            return name
    return None

class GltfSceneBackend(RenderBackend):
    """3D scene-graph backend for a single static glTF asset."""

    name = "gltf"

    def __init__(self, mouth_threshold: float = 0.1):
        super().__init__(mouth_threshold)
        self.gltf: Optional[GLTF2] = None
        self.actions: Dict[str, AnimationAction] = {}
        self.idle_action: Optional[AnimationAction] = None
        self.mouth_action: Optional[AnimationAction] = None
        self.blend_shapes: Dict[str, float] = {}
        self.presets: Dict[Expression, str] = {}
        self.mouth_shape: Optional[str] = None

    def _load(self, path: str):
        model_path = Path(path)
        if not model_path.is_file():
            raise RenderError("model file not found", path=path)

        raw = model_path.read_bytes()
        try:
            if model_path.suffix.lower() in (".glb", ".vrm") or _is_glb(raw):
                gltf = GLTF2.load_binary(str(model_path))
            else:
                gltf = GLTF2.from_json(raw.decode("utf-8"))
        except Exception as e:
            raise RenderError(f"failed to parse glTF: {e}", path=path) from e

        if gltf is None:
            raise RenderError("failed to parse glTF", path=path)

        self.gltf = gltf
        self._setup_animations()
        self._setup_blend_shapes()

    def _clip_duration(self, animation) -> float:
        duration = 0.0
        for sampler in animation.samplers or []:
            if sampler.input is None or sampler.input >= len(self.gltf.accessors or []):
                continue
            accessor = self.gltf.accessors[sampler.input]
            if accessor.max:
                duration = max(duration, float(accessor.max[0]))
        return duration

    def _setup_animations(self):
        self.actions = {}
        for index, animation in enumerate(self.gltf.animations or []):
            name = animation.name or f"clip_{index}"
            self.actions[name] = AnimationAction(name=name, duration=self._clip_duration(animation))

        names = list(self.actions)
        mouth_name = find_clip(names, "mouth", "talk")
        idle_name = find_clip(names, "idle")

        self.mouth_action = self.actions.get(mouth_name) if mouth_name else None
        self.idle_action = self.actions.get(idle_name) if idle_name else None

        if self.idle_action:
            self.idle_action.play()
            logger.debug(f"Autoplaying idle clip '{self.idle_action.name}'")

    def _setup_blend_shapes(self):
        extensions = self.gltf.extensions or {}
        self.blend_shapes = {}
        self.presets = {}
        self.mouth_shape = None

        if "VRM" in extensions:
            groups = extensions["VRM"].get("blendShapeMaster", {}).get("blendShapeGroups", [])
            available = {group.get("presetName", "") for group in groups}
            self.presets = {expr: preset for expr, preset in VRM0_PRESETS.items() if preset in available}
            if "a" in available:
                self.mouth_shape = "a"
        elif "VRMC_vrm" in extensions:
            available = set(extensions["VRMC_vrm"].get("expressions", {}).get("preset", {}))
            self.presets = {expr: preset for expr, preset in VRM1_PRESETS.items() if preset in available}
            if "aa" in available:
                self.mouth_shape = "aa"

        self.blend_shapes = {preset: 0.0 for preset in self.presets.values()}
        if self.mouth_shape:
            self.blend_shapes[self.mouth_shape] = 0.0

    def _reset_asset(self):
        self.gltf = None
        self.actions = {}
        self.idle_action = None
        self.mouth_action = None
        self.blend_shapes = {}
        self.presets = {}
        self.mouth_shape = None

    def _apply_expression(self, expression: Expression):
        for expr, preset in self.presets.items():
            self.blend_shapes[preset] = 1.0 if expr is expression else 0.0

    def _apply_mouth(self, value: float):
        if self.mouth_action:
            if value > self.mouth_threshold:
                self.mouth_action.weight = value
                if not self.mouth_action.running:
                    self.mouth_action.play()
            elif self.mouth_action.running:
                self.mouth_action.stop()
        elif self.mouth_shape:
            self.blend_shapes[self.mouth_shape] = value if value > self.mouth_threshold else 0.0

    def update(self, delta: float):
        super().update(delta)
        for action in self.actions.values():
            action.advance(delta)

    def snapshot(self) -> Dict[str, Any]:
        state = super().snapshot()
        state.update({
            "clips": {
                name: {"time": round(action.time, 3), "weight": round(action.weight, 3),
                       "running": action.running}
                for name, action in self.actions.items()
            },
            "blend_shapes": dict(self.blend_shapes),
        })
        return state
