"""Tests for training_sdk.core.document: entities, element union, project helpers."""

import pytest
from datetime import datetime, timezone
from pydantic import ValidationError as PydanticValidationError

from training_sdk.core.document import (
    ELEMENT_CLASSES,
    CircleElement,
    Geometry,
    HotspotElement,
    Interaction,
    Project,
    Quiz,
    RectangleElement,
    Slide,
    TextElement,
    Timeline,
    element_adapter,
)


# ── Geometry ───────────────────────────────────────────────────────────

class TestGeometry:
    def test_defaults(self):
        g = Geometry()
        assert (g.left, g.top, g.width, g.height, g.angle) == (0, 0, 100, 60, 0)

    def test_edges(self):
        g = Geometry(left=10, top=20, width=30, height=40)
        assert g.right == 40
        assert g.bottom == 60

    def test_contains_is_inclusive(self):
        g = Geometry(left=10, top=10, width=10, height=10)
        assert g.contains(10, 10)
        assert g.contains(20, 20)
        assert not g.contains(21, 15)

    def test_offset_returns_copy(self):
        g = Geometry(left=1, top=2)
        moved = g.offset(10, 10)
        assert (moved.left, moved.top) == (11, 12)
        assert (g.left, g.top) == (1, 2)


# ── Interaction ────────────────────────────────────────────────────────

class TestInteraction:
    def test_none_never_fires(self):
        assert not Interaction(interaction_type="None", triggers="Both").fires_on("Click")

    def test_matches_trigger(self):
        i = Interaction(interaction_type="Reveal", triggers="Hover")
        assert i.fires_on("Hover")
        assert not i.fires_on("Click")

    def test_both(self):
        i = Interaction(interaction_type="Spotlight", triggers="Both")
        assert i.fires_on("Hover") and i.fires_on("Click")

    def test_rejects_unknown_type(self):
        with pytest.raises(PydanticValidationError):
            Interaction(interaction_type="Explode")


# ── Timeline & Quiz ────────────────────────────────────────────────────

class TestTimeline:
    def test_visible_between_start_and_end(self):
        t = Timeline(start_time=2, end_time=5)
        assert not t.is_visible_at(1.9)
        assert t.is_visible_at(2)
        assert t.is_visible_at(5)
        assert not t.is_visible_at(5.1)

    def test_open_ended(self):
        t = Timeline(start_time=1)
        assert t.effective_end() is None
        assert t.is_visible_at(1000)

    def test_show_for_duration(self):
        t = Timeline(start_time=3, show_for_duration=2)
        assert t.effective_end() == 5
        assert not t.is_visible_at(5.5)


class TestQuiz:
    def test_choices_cap_incorrect_answers(self):
        q = Quiz(correct_answer="A", incorrect_answers=["B", "C", "D", "E"])
        assert q.choices() == ["A", "B", "C", "D"]

    def test_is_correct_ignores_case_and_whitespace(self):
        q = Quiz(correct_answer="Paris")
        assert q.is_correct("  paris ")
        assert not q.is_correct("Lyon")


# ── Elements ───────────────────────────────────────────────────────────

class TestElements:
    def test_union_dispatches_on_type(self):
        e = element_adapter.validate_python(
            {"type": "Text", "slideId": "s1", "text": "Hi"})
        assert isinstance(e, TextElement)
        assert e.text == "Hi"
        assert e.font == "Roboto"

    def test_every_kind_registered(self):
        for kind, cls in ELEMENT_CLASSES.items():
            e = element_adapter.validate_python({"type": kind, "slide_id": "s"})
            assert type(e) is cls

    def test_unknown_type_rejected(self):
        with pytest.raises(PydanticValidationError):
            element_adapter.validate_python({"type": "Star", "slideId": "s1"})

    def test_ids_are_unique(self):
        a = RectangleElement(slide_id="s")
        b = RectangleElement(slide_id="s")
        assert a.element_id != b.element_id

    def test_circle_radius(self):
        c = CircleElement(slide_id="s", geometry=Geometry(width=80, height=100))
        assert c.radius == 40

    def test_visibility_without_timeline(self):
        assert RectangleElement(slide_id="s").is_visible_at(0)
        assert not RectangleElement(slide_id="s", initially_hidden=True).is_visible_at(0)

    def test_visibility_with_timeline(self):
        e = HotspotElement(slide_id="s", timeline=Timeline(start_time=1, end_time=2))
        assert not e.is_visible_at(0.5)
        assert e.is_visible_at(1.5)

    def test_camel_case_dump(self):
        e = RectangleElement(slide_id="s", initially_hidden=True)
        data = e.model_dump(by_alias=True)
        assert data["slideId"] == "s"
        assert data["initiallyHidden"] is True

    def test_extra_fields_kept(self):
        e = element_adapter.validate_python(
            {"type": "Rectangle", "slideId": "s", "customTag": "x"})
        assert e.model_dump(by_alias=True)["customTag"] == "x"


# ── Project ────────────────────────────────────────────────────────────

class TestProject:
    def _project(self) -> Project:
        p = Project.new("Demo", project_id="p1")
        p.slides = [Slide(slide_id="s2", slide_number=4), Slide(slide_id="s1", slide_number=1)]
        p.elements = [
            RectangleElement(element_id="e3", slide_id="s1", sequence=7),
            RectangleElement(element_id="e1", slide_id="s1", sequence=2),
            RectangleElement(element_id="e2", slide_id="s2", sequence=5),
        ]
        return p

    def test_new_project(self):
        now = datetime(2024, 1, 1, tzinfo=timezone.utc)
        p = Project.new("Intro", now=now)
        assert p.status == "Draft"
        assert p.created_date == now == p.last_modified
        assert p.slides == [] and p.elements == []
        assert len(p.project_id) == 36

    def test_naive_timestamps_become_utc(self):
        p = Project(project_id="p", title="t", last_modified=datetime(2024, 1, 1))
        assert p.last_modified.tzinfo == timezone.utc

    def test_lookups(self):
        p = self._project()
        assert p.get_slide("s2").slide_number == 4
        assert p.get_slide("nope") is None
        assert p.get_element("e2").slide_id == "s2"
        assert p.get_element("nope") is None

    def test_ordered_slides(self):
        assert [s.slide_id for s in self._project().ordered_slides()] == ["s1", "s2"]

    def test_elements_for_slide_sorted_by_sequence(self):
        ids = [e.element_id for e in self._project().elements_for_slide("s1")]
        assert ids == ["e1", "e3"]

    def test_next_sequence_is_max_plus_one(self):
        assert self._project().next_element_sequence() == 8
        assert Project.new("Empty").next_element_sequence() == 1

    def test_next_slide_number_keeps_gaps(self):
        assert self._project().next_slide_number() == 5
        assert Project.new("Empty").next_slide_number() == 1

    def test_rejects_bad_status(self):
        with pytest.raises(PydanticValidationError):
            Project(project_id="p", title="t", status="Published")
