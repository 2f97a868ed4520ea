"""
Parallax background composition for the home and café scenes.
Each layer slides horizontally in proportion to the pointer position.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Dict, List, Optional, Tuple

from ..core.errors import ValidationError

@dataclass(frozen=True)
class Layer:
    name: str
    factor: float = 0.0  # px per unit of pointer offset; 0 is static

SCENES: Dict[str, List[Layer]] = {
    "home": [
        Layer("sky"),
        Layer("house"),
        Layer("bush", 8),
        Layer("model", 20),
    ],
    "cafe": [
        Layer("cafe-background"),
        Layer("chair", 10),
        Layer("model", 15),
        Layer("table", 4),
    ],
}

def time_of_day(hour: Optional[int] = None) -> str:
    """morning 5-11, afternoon 12-16, evening 17-19, night otherwise."""
    if hour is None:
        hour = datetime.now().hour
    if 5 <= hour < 12:
        return "morning"
    if 12 <= hour < 17:
        return "afternoon"
    if 17 <= hour < 20:
        return "evening"
    return "night"

def _clamp(value: float) -> float:
    return max(-1.0, min(1.0, value))

def normalize_pointer(client_x: float, client_y: float, width: float, height: float) -> Tuple[float, float]:
    """Map a pointer position in a viewport onto [-1, 1] on both axes."""
    if width <= 0 or height <= 0:
        raise ValidationError("Viewport size must be positive")
    return (
        _clamp((client_x / width - 0.5) * 2),
        _clamp((client_y / height - 0.5) * 2),
    )

def layer_offsets(scene: str, x: float) -> Dict[str, float]:
    """translateX in px for every layer of scene at pointer x."""
    if scene not in SCENES:
        raise ValidationError(f"Unknown scene: {scene}")
    x = _clamp(x)
    return {layer.name: x * layer.factor for layer in SCENES[scene]}

def compose(scene: str, x: float, y: float = 0.0, hour: Optional[int] = None) -> Dict[str, object]:
    """Full background state for a scene at a pointer position."""
    period = time_of_day(hour)
    layers = layer_offsets(scene, x)
    classes = {name: f"parallax-layer {name}-layer" for name in layers}
    if scene == "home":
        classes["sky"] = f"parallax-layer sky-layer sky-{period}"
    return {
        "scene": scene,
        "time_of_day": period,
        "pointer": {"x": _clamp(x), "y": _clamp(y)},
        "offsets": layers,
        "classes": classes,
    }
