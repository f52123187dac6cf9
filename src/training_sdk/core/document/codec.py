"""Canonical text form of a project document, plus invariant checks.

The canonical form is UTF-8 JSON with camelCase keys, sorted, indented by two
spaces. Nothing here performs I/O.
"""

import json
from collections import Counter
from dataclasses import dataclass
from datetime import datetime
from typing import Optional
from pydantic import ValidationError as PydanticValidationError

from ..errors import ParseError
from .project import Project, utc_now
from .timeline import MAX_INCORRECT_ANSWERS

REQUIRED_FIELDS = (("projectId", "project_id"), ("title", "title"))


def parse(text: str) -> Project:
    """Parse document text into a Project.

    Raises ParseError when the text is not a JSON object, lacks projectId or
    title, or fails validation (including an unknown element type).
    """
    try:
        data = json.loads(text)
    except (json.JSONDecodeError, TypeError) as e:
        raise ParseError(f"Document is not valid JSON: {e}") from e

    if not isinstance(data, dict):
        raise ParseError(f"Document must be a JSON object, got {type(data).__name__}")

    for alias, name in REQUIRED_FIELDS:
        if data.get(alias) is None and data.get(name) is None:
            raise ParseError(f"Document is missing required field '{alias}'")

    try:
        return Project.model_validate(data)
    except PydanticValidationError as e:
        raise ParseError(f"Document failed validation: {e}") from e


def save_timestamp(project: Project, now: Optional[datetime] = None) -> datetime:
    """The lastModified a save should record; never earlier than the current one."""
    now = now or utc_now()
    if project.last_modified is not None and project.last_modified > now:
        return project.last_modified
    return now


def serialize(project: Project, *, for_save: bool = False,
              now: Optional[datetime] = None) -> str:
    """Render the canonical text of a project.

    Only a save (``for_save=True``) stamps a fresh lastModified, and only into
    the emitted text; the in-memory project is left as is.
    """
    if for_save:
        project = project.model_copy(
            update={"last_modified": save_timestamp(project, now)}
        )
    data = project.model_dump(mode="json", by_alias=True)
    return json.dumps(data, indent=2, sort_keys=True, ensure_ascii=False)


@dataclass
class Violation:
    """One broken invariant found by validate()."""
    code: str
    message: str
    subject_id: str = ""


def validate(project: Project) -> list[Violation]:
    """Report invariant breaches without modifying or dropping anything."""
    violations: list[Violation] = []

    slide_counts = Counter(s.slide_id for s in project.slides)
    for slide_id, count in slide_counts.items():
        if count > 1:
            violations.append(Violation(
                "duplicate_slide_id", f"Slide id used {count} times", slide_id))

    element_counts = Counter(e.element_id for e in project.elements)
    for element_id, count in element_counts.items():
        if count > 1:
            violations.append(Violation(
                "duplicate_element_id", f"Element id used {count} times", element_id))

    sequence_counts = Counter(e.sequence for e in project.elements)
    for sequence, count in sequence_counts.items():
        if count > 1:
            violations.append(Violation(
                "duplicate_sequence",
                f"Sequence {sequence} shared by {count} elements", str(sequence)))

    for e in project.elements:
        if e.slide_id not in slide_counts:
            violations.append(Violation(
                "orphan_element",
                f"Element references missing slide '{e.slide_id}'", e.element_id))
        if not 0 <= e.style.opacity <= 100:
            violations.append(Violation(
                "opacity_range",
                f"Opacity {e.style.opacity} outside 0-100", e.element_id))
        if e.geometry.width <= 0 or e.geometry.height <= 0:
            violations.append(Violation(
                "degenerate_geometry",
                f"Size {e.geometry.width}x{e.geometry.height} is not positive",
                e.element_id))
        if e.timeline is not None and e.timeline.end_time is not None \
                and e.timeline.end_time < e.timeline.start_time:
            violations.append(Violation(
                "timeline_order",
                f"Timeline ends at {e.timeline.end_time} before it starts at "
                f"{e.timeline.start_time}", e.element_id))
        if e.quiz is not None and len(e.quiz.incorrect_answers) > MAX_INCORRECT_ANSWERS:
            violations.append(Violation(
                "too_many_answers",
                f"Quiz has {len(e.quiz.incorrect_answers)} incorrect answers, "
                f"max {MAX_INCORRECT_ANSWERS}", e.element_id))

    if project.created_date and project.last_modified \
            and project.last_modified < project.created_date:
        violations.append(Violation(
            "timestamp_order", "lastModified is earlier than createdDate",
            project.project_id))

    return violations
