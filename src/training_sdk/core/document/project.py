"""Project data model: the root of one document blob."""

import uuid
from datetime import datetime, timezone
from typing import Optional
from pydantic import Field, field_validator

from .base import DocumentModel
from .element import Element
from .slide import Slide
from .vocabulary import ProjectStatus


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class TrackingSettings(DocumentModel):
    """Completion tracking for learners viewing the project."""
    track_completion: bool = False
    require_quiz_completion: bool = False
    passing_score: float = 0.0  # percent of quiz points


class Project(DocumentModel):
    """A training project: ordered slides plus a flat, project-wide element set."""
    project_id: str
    title: str
    status: ProjectStatus = "Draft"
    created_date: Optional[datetime] = None
    last_modified: Optional[datetime] = None
    blob_locator: Optional[str] = None
    tracking: TrackingSettings = Field(default_factory=TrackingSettings)
    slides: list[Slide] = Field(default_factory=list)
    elements: list[Element] = Field(default_factory=list)

    @field_validator("created_date", "last_modified")
    @classmethod
    def _assume_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    @classmethod
    def new(cls, title: str, project_id: Optional[str] = None,
            blob_locator: Optional[str] = None,
            now: Optional[datetime] = None) -> "Project":
        now = now or utc_now()
        return cls(
            project_id=project_id or str(uuid.uuid4()),
            title=title,
            status="Draft",
            created_date=now,
            last_modified=now,
            blob_locator=blob_locator,
        )

    def get_slide(self, slide_id: str) -> Optional[Slide]:
        for s in self.slides:
            if s.slide_id == slide_id:
                return s
        return None

    def get_element(self, element_id: str) -> Optional[Element]:
        for e in self.elements:
            if e.element_id == element_id:
                return e
        return None

    def ordered_slides(self) -> list[Slide]:
        return sorted(self.slides, key=lambda s: s.slide_number)

    def elements_for_slide(self, slide_id: str) -> list[Element]:
        """Elements on one slide, bottom of the stack first."""
        return sorted(
            (e for e in self.elements if e.slide_id == slide_id),
            key=lambda e: e.sequence,
        )

    def next_element_sequence(self) -> int:
        return max((e.sequence for e in self.elements), default=0) + 1

    def next_slide_number(self) -> int:
        return max((s.slide_number for s in self.slides), default=0) + 1
