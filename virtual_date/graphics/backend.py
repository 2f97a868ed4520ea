"""
Render backend contract and selection.

Both character renderers (3D glTF scene, 2D Live2D rig) expose the same
capabilities so the rest of the application never branches on which one is
in use. Pixels are drawn by the front end; backends hold the state it reads.
"""

import logging
from abc import ABC, abstractmethod
from contextlib import contextmanager
from typing import Any, Dict, Iterator, Optional

from ..ai.expression import Expression
from ..core.config import GraphicsConfig
from ..core.errors import ConfigurationError, RenderError
from ..models.character import Persona

logger = logging.getLogger(__name__)

# Shown instead of the character when its asset fails to load
PLACEHOLDER = {
    "kind": "box",
    "size": [1.0, 1.5, 0.8],
    "position": [0.0, 1.0, 0.0],
    "color": "#667eea",
}

class RenderBackend(ABC):
    """Common capability contract for character renderers."""

    name = "base"

    def __init__(self, mouth_threshold: float = 0.1):
        self.mouth_threshold = mouth_threshold
        self.asset_path: Optional[str] = None
        self.placeholder: Optional[Dict[str, Any]] = None
        self.expression = Expression.NORMAL
        self.mouth_openness = 0.0
        self.elapsed = 0.0
        self.loaded = False
        self.destroyed = False

    @property
    def is_placeholder(self) -> bool:
        return self.placeholder is not None

    def load_asset(self, path: str) -> bool:
        """Load the character asset, falling back to the placeholder.

        Returns False when the placeholder had to be used.
        """
        self.asset_path = str(path)
        try:
            self._load(self.asset_path)
        except RenderError as e:
            logger.warning(f"Error loading model {e.path or path}: {e} - using placeholder")
            self._reset_asset()
            self.placeholder = dict(PLACEHOLDER)
            self.loaded = True
            return False

        self.placeholder = None
        self.loaded = True
        logger.info(f"{self.name} model loaded: {path}")
        return True

    @abstractmethod
    def _load(self, path: str):
        """Parse the asset; raise RenderError on failure."""

    def _reset_asset(self):
        """Drop any partially loaded asset state."""

    def set_expression(self, name) -> Expression:
        """Switch expression; unknown names fall back to Normal."""
        expression = name if isinstance(name, Expression) else Expression.parse(name)
        self.expression = expression
        if not self.is_placeholder:
            self._apply_expression(expression)
        return expression

    @abstractmethod
    def _apply_expression(self, expression: Expression):
        pass

    def set_mouth_openness(self, value: float):
        self.mouth_openness = max(0.0, min(1.0, float(value)))
        if not self.is_placeholder:
            self._apply_mouth(self.mouth_openness)

    @abstractmethod
    def _apply_mouth(self, value: float):
        pass

    def update(self, delta: float):
        """Advance animation time by delta seconds."""
        self.elapsed += delta

    def destroy(self):
        """Release the render surface. Safe to call more than once."""
        if self.destroyed:
            return
        self._reset_asset()
        self.loaded = False
        self.destroyed = True
        logger.info(f"{self.name} backend destroyed")

    def snapshot(self) -> Dict[str, Any]:
        """Current render state for a front end or console view."""
        return {
            "backend": self.name,
            "asset": self.asset_path,
            "placeholder": self.placeholder,
            "expression": self.expression.value,
            "mouth_openness": round(self.mouth_openness, 3),
        }

@contextmanager
def mount(backend: RenderBackend, path: str) -> Iterator[RenderBackend]:
    """Acquire backend with path loaded; always destroy it on exit."""
    try:
        backend.load_asset(path)
        yield backend
    finally:
        backend.destroy()

def create_backend(config: GraphicsConfig, persona: Optional[Persona] = None) -> RenderBackend:
    """Build the render backend named by graphics.backend.

    When the persona ships no asset for that backend but has one for the
    other, the other backend is used instead.
    """
    from .live2d import Live2DRigBackend
    from .scene import GltfSceneBackend

    backends = {
        "live2d": Live2DRigBackend,
        "gltf": GltfSceneBackend,
    }

    name = config.backend.lower()
    if name not in backends:
        raise ConfigurationError(
            f"Unknown render backend '{config.backend}' (expected one of {', '.join(backends)})"
        )

    if persona is not None and not persona.model_path(name):
        for other in backends:
            if persona.model_path(other):
                logger.warning(f"{persona.name} has no {name} model; using the {other} backend")
                name = other
                break

    backend_class = backends[name]
    return backend_class(mouth_threshold=config.mouth_threshold)
