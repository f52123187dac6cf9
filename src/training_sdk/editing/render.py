"""Binding between a session's elements and drawable objects on a canvas.

A Renderable is what a drawing surface manipulates while the user drags or
scales things. Changes flow back into the document only through
``object_modified`` and ``commit_group``; changes in the document reach the
renderables only through ``reload``.
"""

import logging
from dataclasses import dataclass, field
from typing import Optional

from ..core.document import Element, Interaction
from ..core.errors import ValidationError
from .session import EditSession

logger = logging.getLogger("TrainingStudio.editing.render")

VIEWER_EVENTS = ("Hover", "Click")
HOTSPOT_STROKE = "#4285F4"


@dataclass
class Renderable:
    """Drawable state for one element. ``element_id`` points back at the model."""
    element_id: str
    kind: str
    left: float
    top: float
    width: float
    height: float
    angle: float = 0.0
    scale_x: float = 1.0
    scale_y: float = 1.0
    fill: str = "#4285F4"
    stroke: Optional[str] = None
    stroke_width: float = 0.0
    dashed: bool = False
    opacity: float = 1.0  # 0-1
    shadow: bool = False
    visible: bool = True
    z_index: int = 0
    corner_radius: float = 0.0
    text: Optional[str] = None
    font: Optional[str] = None
    font_size: Optional[float] = None
    font_color: Optional[str] = None
    image_url: Optional[str] = None

    @property
    def scaled_width(self) -> float:
        return self.width * self.scale_x

    @property
    def scaled_height(self) -> float:
        return self.height * self.scale_y

    def contains(self, x: float, y: float) -> bool:
        return (self.left <= x <= self.left + self.scaled_width
                and self.top <= y <= self.top + self.scaled_height)

    @classmethod
    def from_element(cls, element: Element, z_index: int = 0) -> "Renderable":
        g = element.geometry
        s = element.style
        r = cls(
            element_id=element.element_id,
            kind=element.type,
            left=g.left,
            top=g.top,
            width=g.width,
            height=g.height,
            angle=g.angle,
            fill=s.color,
            stroke=s.outline_color if s.outline else None,
            stroke_width=s.outline_width if s.outline else 0.0,
            opacity=s.opacity / 100,
            shadow=s.shadow,
            visible=not element.initially_hidden,
            z_index=z_index,
        )
        if element.type == "RoundedRectangle":
            r.corner_radius = element.corner_radius
        elif element.type == "Text":
            r.text = element.text
            r.font = element.font
            r.font_size = element.font_size
            r.font_color = element.font_color
        elif element.type == "Image":
            r.image_url = element.image_url
        elif element.type == "Hotspot":
            r.stroke = r.stroke or HOTSPOT_STROKE
            r.stroke_width = r.stroke_width or 2.0
            r.dashed = True
        return r


@dataclass
class GroupSelection:
    """Several renderables moved and scaled as one bounding box."""
    members: list[Renderable]
    left: float
    top: float
    width: float
    height: float
    scale_x: float = 1.0
    scale_y: float = 1.0
    _origin: tuple[float, float] = field(default=(0.0, 0.0), repr=False)

    @classmethod
    def around(cls, members: list[Renderable]) -> "GroupSelection":
        left = min(m.left for m in members)
        top = min(m.top for m in members)
        right = max(m.left + m.scaled_width for m in members)
        bottom = max(m.top + m.scaled_height for m in members)
        return cls(members=members, left=left, top=top,
                   width=right - left, height=bottom - top, _origin=(left, top))

    def move_by(self, dx: float, dy: float):
        self.left += dx
        self.top += dy

    def scale_by(self, sx: float, sy: Optional[float] = None):
        self.scale_x *= sx
        self.scale_y *= sx if sy is None else sy


class RenderBinding:
    """Keeps a slide's renderables in step with an EditSession."""

    def __init__(self, session: EditSession):
        self.session = session
        self.slide_id: Optional[str] = None
        self.renderables: dict[str, Renderable] = {}

    def render_slide(self, slide_id: Optional[str] = None) -> list[Renderable]:
        """Build renderables for a slide, bottom of the stack first."""
        slide_id = slide_id or self.session.current_slide_id
        if slide_id is None:
            self.slide_id = None
            self.renderables = {}
            return []
        self.session.get_slide(slide_id)
        elements = self.session.elements_on_slide(slide_id)
        self.slide_id = slide_id
        self.renderables = {
            e.element_id: Renderable.from_element(e, z_index=i)
            for i, e in enumerate(elements)
        }
        return self.ordered()

    def reload(self) -> list[Renderable]:
        """Rebuild from the document, e.g. after undo or a slide switch."""
        project = self.session._require_project()
        slide_id = self.slide_id
        if slide_id is None or project.get_slide(slide_id) is None:
            slide_id = self.session.current_slide_id
        return self.render_slide(slide_id)

    def ordered(self) -> list[Renderable]:
        return sorted(self.renderables.values(), key=lambda r: r.z_index)

    def get(self, element_id: str) -> Renderable:
        try:
            return self.renderables[element_id]
        except KeyError:
            raise ValidationError(f"Element {element_id} is not rendered") from None

    def hit_test(self, x: float, y: float) -> Optional[str]:
        """Topmost visible element under the point."""
        for r in reversed(self.ordered()):
            if r.visible and r.contains(x, y):
                return r.element_id
        return None

    # ── Surface → document ─────────────────────────────────────────────

    @staticmethod
    def _bake(r: Renderable) -> dict:
        r.width = r.scaled_width
        r.height = r.scaled_height
        r.scale_x = r.scale_y = 1.0
        return {"left": r.left, "top": r.top, "width": r.width,
                "height": r.height, "angle": r.angle}

    def object_modified(self, renderable: Renderable) -> Element:
        """Write one renderable's geometry (and text) back into its element."""
        changes: dict = {"geometry": self._bake(renderable)}
        if renderable.kind == "Text" and renderable.text is not None:
            changes["text"] = renderable.text
        return self.session.update_elements({renderable.element_id: changes},
                                            "Transform element")[0]

    def group(self, element_ids: list[str]) -> GroupSelection:
        if not element_ids:
            raise ValidationError("Cannot group an empty selection")
        return GroupSelection.around([self.get(i) for i in element_ids])

    def commit_group(self, group: GroupSelection) -> list[Element]:
        """Decompose the group's move/scale into each member's own geometry."""
        origin_left, origin_top = group._origin
        changes = {}
        for m in group.members:
            m.left = group.left + (m.left - origin_left) * group.scale_x
            m.top = group.top + (m.top - origin_top) * group.scale_y
            m.scale_x *= group.scale_x
            m.scale_y *= group.scale_y
            changes[m.element_id] = {"geometry": self._bake(m)}

        group.width *= group.scale_x
        group.height *= group.scale_y
        group.scale_x = group.scale_y = 1.0
        group._origin = (group.left, group.top)
        logger.debug(f"Committing group transform of {len(changes)} elements")
        return self.session.update_elements(changes, "Transform selection")

    # ── Viewer ─────────────────────────────────────────────────────────

    def trigger(self, element_id: str, event: str) -> Optional[Interaction]:
        """The interaction a viewer Hover/Click on the element fires, if any."""
        if event not in VIEWER_EVENTS:
            raise ValidationError(f"Unknown viewer event '{event}'")
        interaction = self.session.get_element(element_id).interaction
        return interaction if interaction.fires_on(event) else None

    def visible_at(self, slide_id: Optional[str], t: float) -> list[str]:
        """Element ids on the slide that are showing ``t`` seconds into playback."""
        slide_id = slide_id or self.session.current_slide_id
        return [e.element_id for e in self.session.elements_on_slide(slide_id)
                if e.is_visible_at(t)]
