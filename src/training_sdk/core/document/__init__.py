"""Document package: public API re-exports."""

from .vocabulary import (
    ProjectStatus,
    ElementKind,
    FileType,
    InteractionType,
    TriggerType,
    QuestionType,
    PROJECT_STATUSES,
    ELEMENT_KINDS,
)
from .styles import Geometry, ElementStyle, Interaction
from .timeline import Timeline, Quiz
from .element import (
    Element,
    ElementBase,
    RectangleElement,
    RoundedRectangleElement,
    CircleElement,
    ArrowElement,
    TextElement,
    HotspotElement,
    ImageElement,
    ELEMENT_CLASSES,
    element_adapter,
    new_id,
)
from .slide import Slide, BackgroundMedia
from .project import Project, TrackingSettings, utc_now
from .codec import parse, serialize, validate, save_timestamp, Violation

__all__ = [
    "ProjectStatus",
    "ElementKind",
    "FileType",
    "InteractionType",
    "TriggerType",
    "QuestionType",
    "PROJECT_STATUSES",
    "ELEMENT_KINDS",
    "Geometry",
    "ElementStyle",
    "Interaction",
    "Timeline",
    "Quiz",
    "Element",
    "ElementBase",
    "RectangleElement",
    "RoundedRectangleElement",
    "CircleElement",
    "ArrowElement",
    "TextElement",
    "HotspotElement",
    "ImageElement",
    "ELEMENT_CLASSES",
    "element_adapter",
    "new_id",
    "Slide",
    "BackgroundMedia",
    "Project",
    "TrackingSettings",
    "utc_now",
    "parse",
    "serialize",
    "validate",
    "save_timestamp",
    "Violation",
]
