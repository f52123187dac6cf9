"""Default element construction and change application for the editor."""

import copy
from typing import Any

from pydantic import BaseModel, ValidationError as PydanticValidationError
from pydantic.alias_generators import to_snake

from ..core.document import ELEMENT_CLASSES, Element, element_adapter
from ..core.errors import ValidationError

CANVAS_WIDTH = 800
CANVAS_HEIGHT = 600

# (width, height) per kind
DEFAULT_SIZES: dict[str, tuple[float, float]] = {
    "Rectangle": (100, 60),
    "RoundedRectangle": (100, 60),
    "Circle": (100, 100),
    "Arrow": (100, 2),
    "Text": (200, 50),
    "Hotspot": (100, 100),
    "Image": (300, 300),
}

NICKNAMES: dict[str, str] = {
    "RoundedRectangle": "Rounded Rectangle",
}

HOTSPOT_FILL = "rgba(66, 133, 244, 0.3)"
HOTSPOT_OPACITY = 20


def deep_merge(base: dict, changes: dict) -> dict:
    """Merge ``changes`` into a copy of ``base``.

    A camelCase key is folded onto the matching snake_case key of ``base``.
    Plain dicts merge key by key; pydantic models and every other value
    replace the existing value wholesale.
    """
    merged = copy.deepcopy(base)
    for key, value in changes.items():
        if to_snake(key) in merged:
            key = to_snake(key)
        if isinstance(value, BaseModel):
            merged[key] = value.model_dump()
        elif isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = deep_merge(merged[key], value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


def build_element(data: dict) -> Element:
    try:
        return element_adapter.validate_python(data)
    except PydanticValidationError as e:
        raise ValidationError(f"Invalid element: {e}") from e


def create_element(kind: str, slide_id: str, sequence: int, **overrides: Any) -> Element:
    """A new element of ``kind`` centred on the canvas with editor defaults."""
    if kind not in ELEMENT_CLASSES:
        raise ValidationError(
            f"Unknown element type '{kind}'; expected one of {', '.join(ELEMENT_CLASSES)}"
        )
    width, height = DEFAULT_SIZES[kind]
    data: dict[str, Any] = {
        "type": kind,
        "slide_id": slide_id,
        "sequence": sequence,
        "nickname": NICKNAMES.get(kind, kind),
        "geometry": {
            "left": (CANVAS_WIDTH - width) / 2,
            "top": (CANVAS_HEIGHT - height) / 2,
            "width": width,
            "height": height,
            "angle": 0,
        },
    }
    if kind == "Hotspot":
        data["style"] = {"color": HOTSPOT_FILL, "opacity": HOTSPOT_OPACITY}
        data["interaction"] = {"interaction_type": "Reveal", "triggers": "Click"}

    return build_element(deep_merge(data, overrides))


def apply_changes(element: Element, changes: dict) -> Element:
    """A new element equal to ``element`` with ``changes`` merged in."""
    merged = deep_merge(element.model_dump(), changes)
    for locked in ("element_id", "type"):
        if merged[locked] != getattr(element, locked):
            raise ValidationError(f"Cannot change {locked} of element {element.element_id}")
    return build_element(merged)
