"""Canvas elements: a shared base record plus one class per kind.

``Element`` is a discriminated union on ``type``, so the kind tag is checked
before any kind-specific field is read.
"""

import uuid
from typing import Annotated, Literal, Optional, Union
from pydantic import Field, TypeAdapter

from .base import DocumentModel
from .styles import ElementStyle, Geometry, Interaction
from .timeline import Quiz, Timeline


def new_id() -> str:
    return str(uuid.uuid4())


class ElementBase(DocumentModel):
    """Fields every element carries regardless of kind."""
    element_id: str = Field(default_factory=new_id)
    slide_id: str
    nickname: str = ""
    sequence: int = 0  # project-wide stacking key, higher draws on top
    geometry: Geometry = Field(default_factory=Geometry)
    style: ElementStyle = Field(default_factory=ElementStyle)
    initially_hidden: bool = False
    interaction: Interaction = Field(default_factory=Interaction)
    timeline: Optional[Timeline] = None
    quiz: Optional[Quiz] = None

    def is_visible_at(self, t: float) -> bool:
        if self.timeline is None:
            return not self.initially_hidden
        return self.timeline.is_visible_at(t)


class RectangleElement(ElementBase):
    type: Literal["Rectangle"] = "Rectangle"


class RoundedRectangleElement(ElementBase):
    type: Literal["RoundedRectangle"] = "RoundedRectangle"
    corner_radius: float = 10.0


class CircleElement(ElementBase):
    type: Literal["Circle"] = "Circle"

    @property
    def radius(self) -> float:
        return min(self.geometry.width, self.geometry.height) / 2


class ArrowElement(ElementBase):
    type: Literal["Arrow"] = "Arrow"


class TextElement(ElementBase):
    type: Literal["Text"] = "Text"
    text: str = "Double click to edit text"
    font: str = "Roboto"
    font_size: float = 14
    font_color: str = "#000000"


class HotspotElement(ElementBase):
    type: Literal["Hotspot"] = "Hotspot"


class ImageElement(ElementBase):
    type: Literal["Image"] = "Image"
    image_url: str = ""


Element = Annotated[
    Union[
        RectangleElement,
        RoundedRectangleElement,
        CircleElement,
        ArrowElement,
        TextElement,
        HotspotElement,
        ImageElement,
    ],
    Field(discriminator="type"),
]

ELEMENT_CLASSES: dict[str, type[ElementBase]] = {
    "Rectangle": RectangleElement,
    "RoundedRectangle": RoundedRectangleElement,
    "Circle": CircleElement,
    "Arrow": ArrowElement,
    "Text": TextElement,
    "Hotspot": HotspotElement,
    "Image": ImageElement,
}

element_adapter: TypeAdapter = TypeAdapter(Element)
