"""Geometry, visual style and interaction records shared by all element kinds."""

from .base import DocumentModel
from .vocabulary import InteractionType, TriggerType


class Geometry(DocumentModel):
    """Absolute canvas-space placement. ``left``/``top`` is the top-left corner."""
    left: float = 0.0
    top: float = 0.0
    width: float = 100.0
    height: float = 60.0
    angle: float = 0.0  # degrees, clockwise

    @property
    def right(self) -> float:
        return self.left + self.width

    @property
    def bottom(self) -> float:
        return self.top + self.height

    def contains(self, x: float, y: float) -> bool:
        return self.left <= x <= self.right and self.top <= y <= self.bottom

    def offset(self, dx: float, dy: float) -> "Geometry":
        return self.model_copy(update={"left": self.left + dx, "top": self.top + dy})


class ElementStyle(DocumentModel):
    """Fill, outline and shadow. Opacity is a 0-100 percentage."""
    color: str = "#4285F4"
    outline: bool = False
    outline_width: float = 1.0
    outline_color: str = "#000000"
    shadow: bool = False
    opacity: float = 100.0


class Interaction(DocumentModel):
    """What a viewer gesture on the element does."""
    interaction_type: InteractionType = "None"
    triggers: TriggerType = "Click"

    def fires_on(self, event: str) -> bool:
        if self.interaction_type == "None":
            return False
        return self.triggers == "Both" or self.triggers == event
