"""Closed value sets used by project documents."""

from typing import Literal, get_args

ProjectStatus = Literal["Draft", "Active", "Inactive"]
ElementKind = Literal[
    "Rectangle", "RoundedRectangle", "Circle", "Arrow", "Text", "Hotspot", "Image",
]
FileType = Literal["Image", "Video", "Audio", "None"]
InteractionType = Literal["Reveal", "Spotlight", "Pan/Zoom", "Center", "Quiz", "None"]
TriggerType = Literal["Hover", "Click", "Both"]
QuestionType = Literal[
    "Multiple choice", "True/False", "Fill in the blank", "Matching", "Ordering", "Hotspot",
]
EntranceEffect = Literal["Fade In", "Slide In", "Pop", "None"]
ExitEffect = Literal["Fade Out", "Slide Out", "Shrink", "None"]

PROJECT_STATUSES: tuple[str, ...] = get_args(ProjectStatus)
ELEMENT_KINDS: tuple[str, ...] = get_args(ElementKind)
