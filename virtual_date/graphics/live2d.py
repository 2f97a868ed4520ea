"""
2D rig backend - Live2D Cubism model state.
Reads the model3.json settings file for its expressions and motion groups.
"""

import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

from .backend import RenderBackend
from ..ai.expression import Expression
from ..core.errors import RenderError

logger = logging.getLogger(__name__)

MOUTH_PARAMETER = "ParamMouthOpenY"
IDLE_GROUP = "Idle"

class Live2DRigBackend(RenderBackend):
    """Layered-sprite rig with named expressions and an idle motion."""

    name = "live2d"

    def __init__(self, mouth_threshold: float = 0.1):
        super().__init__(mouth_threshold)
        self.settings: Dict[str, Any] = {}
        self.expressions: Dict[str, str] = {}
        self.motions: Dict[str, List[Dict[str, Any]]] = {}
        self.current_expression: Optional[str] = None
        self.current_motion: Optional[str] = None
        self.parameters: Dict[str, float] = {}

    def _load(self, path: str):
        model_path = Path(path)
        if not model_path.is_file():
            raise RenderError("model settings not found", path=path)

        try:
            with open(model_path, 'r', encoding='utf-8') as f:
                settings = json.load(f)
        except (OSError, ValueError) as e:
            raise RenderError(f"failed to read model settings: {e}", path=path) from e

        references = settings.get("FileReferences") if isinstance(settings, dict) else None
        if not isinstance(references, dict) or "Moc" not in references:
            raise RenderError("not a Cubism model3.json (no FileReferences.Moc)", path=path)

        self.settings = settings
        self.expressions = {
            entry["Name"]: entry.get("File", "")
            for entry in references.get("Expressions", [])
            if entry.get("Name")
        }
        self.motions = dict(references.get("Motions", {}))
        self.parameters = {MOUTH_PARAMETER: 0.0}
        self.current_expression = None

        self.motion(IDLE_GROUP)

    def _reset_asset(self):
        self.settings = {}
        self.expressions = {}
        self.motions = {}
        self.current_expression = None
        self.current_motion = None
        self.parameters = {}

    def motion(self, group: str) -> bool:
        """Start a motion group, matched case-insensitively."""
        for name in self.motions:
            if name.lower() == group.lower():
                self.current_motion = name
                return True
        logger.debug(f"Motion group '{group}' not in model")
        return False

    def _resolve_expression(self, name: str) -> str:
        for available in self.expressions:
            if available.lower() == name.lower():
                return available
        return Expression.NORMAL.value

    def _apply_expression(self, expression: Expression):
        self.current_expression = self._resolve_expression(expression.value)

    def _apply_mouth(self, value: float):
        self.parameters[MOUTH_PARAMETER] = value

    def snapshot(self) -> Dict[str, Any]:
        state = super().snapshot()
        state.update({
            "expression_file": self.expressions.get(self.current_expression or ""),
            "motion": self.current_motion,
            "parameters": dict(self.parameters),
        })
        return state
