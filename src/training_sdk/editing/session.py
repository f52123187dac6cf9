"""Edit session: the in-memory project a single editor works on.

A session owns the Project loaded from the coordinator together with the
editor-only state around it (current slide, selection, clipboard, undo
history). Every document mutation is synchronous, pushes an undo snapshot
and marks the session Dirty; saving is the only step that talks to a store.
"""

import copy
import logging
import threading
from contextlib import contextmanager
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Iterable, Optional
from pydantic import ValidationError as PydanticValidationError

from ..core.document import (
    Element,
    Project,
    Slide,
    Violation,
    new_id,
    save_timestamp,
    serialize,
    validate,
)
from ..core.errors import SaveInProgressError, TrainingStudioError, ValidationError
from ..persistence.access import AccessGate, AccessLevel, require_access
from ..persistence.coordinator import PersistenceCoordinator
from ..persistence.stores import IndexRow
from .factory import apply_changes, build_element, create_element, deep_merge
from .history import MAX_HISTORY, History, UndoEntry

logger = logging.getLogger("TrainingStudio.editing.session")

PASTE_OFFSET = (10.0, 10.0)


class SessionState(str, Enum):
    UNLOADED = "Unloaded"
    LOADING = "Loading"
    READY = "Ready"
    DIRTY = "Dirty"
    SAVING = "Saving"
    SAVE_FAILED = "SaveFailed"


class EditSession:
    """Editing context for one project.

    Sessions are independent: two sessions on the same project never see
    each other's changes and the last one to save wins.
    """

    def __init__(self, coordinator: Optional[PersistenceCoordinator] = None,
                 history_limit: int = MAX_HISTORY):
        self.coordinator = coordinator
        self.project: Optional[Project] = None
        self.state = SessionState.UNLOADED
        self.current_slide_id: Optional[str] = None
        self.selection: set[str] = set()
        self.clipboard: list[Element] = []
        self.history = History(history_limit)
        self.access_level: Optional[AccessLevel] = None
        self.last_save_error: Optional[Exception] = None
        self.listeners: list[Callable[[SessionState], None]] = []

        self._lock = threading.Lock()
        self._pending: list[SessionState] = []
        self._save_stamp: Optional[datetime] = None
        self._changed_while_saving = False

    # ── Lifecycle ──────────────────────────────────────────────────────

    @classmethod
    def open(cls, coordinator: PersistenceCoordinator, project_id: str,
             identity: str = "", gate: Optional[AccessGate] = None) -> "EditSession":
        session = cls(coordinator)
        session.load(project_id, identity=identity, gate=gate)
        return session

    @classmethod
    def from_project(cls, project: Project,
                     coordinator: Optional[PersistenceCoordinator] = None) -> "EditSession":
        """A Ready session over an already parsed project."""
        session = cls(coordinator)
        session._attach(project)
        return session

    def load(self, project_id: str, identity: str = "",
             gate: Optional[AccessGate] = None) -> Project:
        """Load a project for editing. Needs Editor access when a gate is given."""
        if self.coordinator is None:
            raise ValidationError("Session has no persistence coordinator")
        with self._lock:
            if self.state in (SessionState.LOADING, SessionState.SAVING):
                raise SaveInProgressError(
                    f"Cannot load while session is {self.state.value}"
                )
            self._set_state(SessionState.LOADING)
        self._notify()

        try:
            self.access_level = require_access(gate, project_id, identity,
                                               AccessLevel.EDITOR)
            project = self.coordinator.load_project(project_id)
        except Exception as e:
            logger.error(f"Failed to load project {project_id}: {e}")
            self.project = None
            with self._lock:
                self._set_state(SessionState.UNLOADED)
            self._notify()
            raise

        self._attach(project)
        logger.info(f"Loaded project {project_id} ({len(project.slides)} slides, "
                    f"{len(project.elements)} elements)")
        return project

    def _attach(self, project: Project):
        self.project = project
        self.history.clear()
        self.selection.clear()
        self.clipboard = []
        slides = project.ordered_slides()
        self.current_slide_id = slides[0].slide_id if slides else None
        with self._lock:
            self._set_state(SessionState.READY)
        self._notify()

    def _set_state(self, state: SessionState):
        """Apply a transition. Callers hold the lock and call _notify after releasing it."""
        if state == self.state:
            return
        logger.debug(f"Session state {self.state.value} -> {state.value}")
        self.state = state
        self._pending.append(state)

    def _notify(self):
        with self._lock:
            pending, self._pending = self._pending, []
        for state in pending:
            for listener in list(self.listeners):
                listener(state)

    @property
    def is_loaded(self) -> bool:
        return self.project is not None and self.state not in (
            SessionState.UNLOADED, SessionState.LOADING)

    @property
    def is_dirty(self) -> bool:
        return self.state in (SessionState.DIRTY, SessionState.SAVE_FAILED) or (
            self.state == SessionState.SAVING and self._changed_while_saving)

    def _require_project(self) -> Project:
        if not self.is_loaded:
            raise ValidationError("No project loaded")
        return self.project

    def _mark_dirty(self):
        with self._lock:
            if self.state == SessionState.SAVING:
                self._changed_while_saving = True
            else:
                self._set_state(SessionState.DIRTY)
        self._notify()

    @contextmanager
    def _edit(self, description: str):
        """Wrap a document mutation: snapshot first, roll back on error."""
        project = self._require_project()
        snapshot = project.model_dump_json()
        selection = set(self.selection)
        try:
            yield project
        except (TrainingStudioError, PydanticValidationError) as e:
            self.project = Project.model_validate_json(snapshot)
            self.selection = selection
            if isinstance(e, PydanticValidationError):
                raise ValidationError(f"{description} failed: {e}") from e
            raise
        self.history.record(description, snapshot, selection)
        self._mark_dirty()
        logger.debug(f"Edit: {description}")

    # ── Project ────────────────────────────────────────────────────────

    def set_title(self, title: str):
        if not title or not title.strip():
            raise ValidationError("Project title cannot be empty")
        with self._edit("Rename project") as project:
            project.title = title.strip()

    def check(self) -> list[Violation]:
        """Structural problems in the current document."""
        return validate(self._require_project())

    def export_text(self) -> str:
        """Canonical document text without touching the save timestamp."""
        return serialize(self._require_project())

    # ── Slides ─────────────────────────────────────────────────────────

    def get_slide(self, slide_id: str) -> Slide:
        slide = self._require_project().get_slide(slide_id)
        if slide is None:
            raise ValidationError(f"Slide not found: {slide_id}")
        return slide

    @property
    def current_slide(self) -> Optional[Slide]:
        if self.current_slide_id is None or self.project is None:
            return None
        return self.project.get_slide(self.current_slide_id)

    def go_to_slide(self, slide_id: str):
        """Switch the current slide. Clears the selection."""
        self.get_slide(slide_id)
        if slide_id != self.current_slide_id:
            self.selection.clear()
        self.current_slide_id = slide_id

    def add_slide(self, title: str = "Untitled Slide", **fields: Any) -> Slide:
        """Append a slide numbered after the highest existing number and go to it."""
        with self._edit("Add slide") as project:
            slide = Slide.model_validate({
                **fields,
                "title": title,
                "slide_number": project.next_slide_number(),
            })
            project.slides.append(slide)
        self.go_to_slide(slide.slide_id)
        return slide

    def update_slide(self, slide_id: str, **changes: Any) -> Slide:
        slide = self.get_slide(slide_id)
        merged = deep_merge(slide.model_dump(), changes)
        if merged["slide_id"] != slide_id:
            raise ValidationError(f"Cannot change slide_id of slide {slide_id}")
        with self._edit("Edit slide") as project:
            updated = Slide.model_validate(merged)
            index = project.slides.index(slide)
            project.slides[index] = updated
        return updated

    def delete_slide(self, slide_id: str) -> int:
        """Delete a slide and its elements. Returns how many elements went with it.

        Remaining slides keep their numbers.
        """
        self.get_slide(slide_id)
        with self._edit("Delete slide") as project:
            project.slides = [s for s in project.slides if s.slide_id != slide_id]
            before = len(project.elements)
            project.elements = [e for e in project.elements if e.slide_id != slide_id]
            removed = before - len(project.elements)

        if self.current_slide_id == slide_id:
            self.selection.clear()
            slides = self.project.ordered_slides()
            self.current_slide_id = slides[0].slide_id if slides else None
        return removed

    # ── Elements ───────────────────────────────────────────────────────

    def get_element(self, element_id: str) -> Element:
        element = self._require_project().get_element(element_id)
        if element is None:
            raise ValidationError(f"Element not found: {element_id}")
        return element

    def _target_slide_id(self, slide_id: Optional[str]) -> str:
        slide_id = slide_id or self.current_slide_id
        if slide_id is None:
            raise ValidationError("No slide to place the element on")
        self.get_slide(slide_id)
        return slide_id

    def elements_on_slide(self, slide_id: Optional[str] = None) -> list[Element]:
        project = self._require_project()
        target = slide_id or self.current_slide_id
        return project.elements_for_slide(target) if target else []

    def add_element(self, kind: str, slide_id: Optional[str] = None,
                    **overrides: Any) -> Element:
        """Create an element of ``kind`` on top of the stack and select it."""
        slide_id = self._target_slide_id(slide_id)
        with self._edit(f"Add {kind}") as project:
            element = create_element(kind, slide_id, project.next_element_sequence(),
                                     **overrides)
            project.elements.append(element)
        if slide_id == self.current_slide_id:
            self.selection = {element.element_id}
        return element

    def update_element(self, element_id: str, **changes: Any) -> Element:
        """Merge ``changes`` into one element. Nested dicts merge field by field."""
        return self.update_elements({element_id: changes}, "Edit element")[0]

    def update_elements(self, changes: dict[str, dict],
                        description: str = "Edit elements") -> list[Element]:
        """Apply per-element changes as a single undo step."""
        for element_id in changes:
            self.get_element(element_id)
        updated = []
        with self._edit(description) as project:
            for element_id, element_changes in changes.items():
                index = next(i for i, e in enumerate(project.elements)
                             if e.element_id == element_id)
                project.elements[index] = apply_changes(project.elements[index],
                                                        element_changes)
                if project.get_slide(project.elements[index].slide_id) is None:
                    raise ValidationError(
                        f"Slide not found: {project.elements[index].slide_id}")
                updated.append(project.elements[index])
        self._prune_selection()
        return updated

    def transform_element(self, element_id: str, left: float, top: float,
                          width: Optional[float] = None, height: Optional[float] = None,
                          angle: Optional[float] = None) -> Element:
        geometry = {"left": left, "top": top}
        for key, value in (("width", width), ("height", height), ("angle", angle)):
            if value is not None:
                geometry[key] = value
        return self.update_elements({element_id: {"geometry": geometry}},
                                    "Transform element")[0]

    def delete_elements(self, element_ids: Optional[Iterable[str]] = None) -> int:
        """Delete the given elements, or the selection when none are given."""
        ids = set(element_ids) if element_ids is not None else set(self.selection)
        if not ids:
            return 0
        for element_id in ids:
            self.get_element(element_id)
        with self._edit("Delete elements") as project:
            project.elements = [e for e in project.elements if e.element_id not in ids]
        self.selection -= ids
        return len(ids)

    # ── Selection ──────────────────────────────────────────────────────

    def _check_selectable(self, element_id: str):
        element = self.get_element(element_id)
        if element.slide_id != self.current_slide_id:
            raise ValidationError(
                f"Element {element_id} is not on the current slide"
            )

    def _change_selection(self, ids: set[str], description: str = "Select"):
        """Selection changes are undoable edits; unchanged selections record nothing."""
        project = self._require_project()
        if ids == self.selection:
            return
        self.history.record(description, project.model_dump_json(), self.selection)
        self.selection = ids
        self._mark_dirty()

    def select(self, element_ids: Iterable[str]):
        ids = set(element_ids)
        for element_id in ids:
            self._check_selectable(element_id)
        self._change_selection(ids)

    def add_to_selection(self, element_id: str):
        self._check_selectable(element_id)
        self._change_selection(self.selection | {element_id})

    def deselect(self, element_id: str):
        self._change_selection(self.selection - {element_id}, "Deselect")

    def clear_selection(self):
        self._change_selection(set(), "Clear selection")

    def select_all(self):
        self._change_selection({e.element_id for e in self.elements_on_slide()}, "Select all")

    def selected_elements(self) -> list[Element]:
        """Selected elements, bottom of the stack first."""
        return [e for e in self.elements_on_slide() if e.element_id in self.selection]

    def _prune_selection(self):
        if self.project is None:
            self.selection.clear()
            return
        on_slide = {e.element_id for e in self.elements_on_slide()}
        self.selection &= on_slide

    # ── Clipboard ──────────────────────────────────────────────────────

    def copy_selection(self) -> int:
        self.clipboard = [e.model_copy(deep=True) for e in self.selected_elements()]
        return len(self.clipboard)

    def _clone_onto_slide(self, project: Project, sources: list[Element],
                          slide_id: str) -> list[Element]:
        dx, dy = PASTE_OFFSET
        clones = []
        for source in sorted(sources, key=lambda e: e.sequence):
            data = copy.deepcopy(source.model_dump())
            data["element_id"] = new_id()
            data["slide_id"] = slide_id
            data["sequence"] = project.next_element_sequence()
            data["geometry"]["left"] += dx
            data["geometry"]["top"] += dy
            clone = build_element(data)
            project.elements.append(clone)
            clones.append(clone)
        return clones

    def paste(self) -> list[Element]:
        """Paste the clipboard onto the current slide.

        Each paste lands one offset further than the last.
        """
        if not self.clipboard:
            return []
        slide_id = self._target_slide_id(None)
        with self._edit("Paste") as project:
            pasted = self._clone_onto_slide(project, self.clipboard, slide_id)
        dx, dy = PASTE_OFFSET
        self.clipboard = [
            e.model_copy(update={"geometry": e.geometry.offset(dx, dy)}, deep=True)
            for e in self.clipboard
        ]
        self.selection = {e.element_id for e in pasted}
        return pasted

    def duplicate_selection(self) -> list[Element]:
        sources = self.selected_elements()
        if not sources:
            return []
        with self._edit("Duplicate") as project:
            clones = self._clone_onto_slide(project, sources, self.current_slide_id)
        self.selection = {e.element_id for e in clones}
        return clones

    # ── Z-order ────────────────────────────────────────────────────────

    def _moving(self, element_ids: Optional[Iterable[str]]) -> set[str]:
        ids = set(element_ids) if element_ids is not None else set(self.selection)
        for element_id in ids:
            self._check_selectable(element_id)
        return ids

    def _restack(self, new_order: list[str], description: str) -> bool:
        """Give the current slide's sequence values to ``new_order`` bottom up."""
        stack = self.elements_on_slide()
        if [e.element_id for e in stack] == new_order:
            return False
        values = sorted(e.sequence for e in stack)
        sequence_for = dict(zip(new_order, values))
        with self._edit(description) as project:
            for element in project.elements:
                if element.element_id in sequence_for:
                    element.sequence = sequence_for[element.element_id]
        return True

    def bring_forward(self, element_ids: Optional[Iterable[str]] = None) -> bool:
        moving = self._moving(element_ids)
        order = [e.element_id for e in self.elements_on_slide()]
        for i in range(len(order) - 2, -1, -1):
            if order[i] in moving and order[i + 1] not in moving:
                order[i], order[i + 1] = order[i + 1], order[i]
        return self._restack(order, "Bring forward")

    def send_backward(self, element_ids: Optional[Iterable[str]] = None) -> bool:
        moving = self._moving(element_ids)
        order = [e.element_id for e in self.elements_on_slide()]
        for i in range(1, len(order)):
            if order[i] in moving and order[i - 1] not in moving:
                order[i], order[i - 1] = order[i - 1], order[i]
        return self._restack(order, "Send backward")

    def bring_to_front(self, element_ids: Optional[Iterable[str]] = None) -> bool:
        moving = self._moving(element_ids)
        order = [e.element_id for e in self.elements_on_slide()]
        order = [i for i in order if i not in moving] + [i for i in order if i in moving]
        return self._restack(order, "Bring to front")

    def send_to_back(self, element_ids: Optional[Iterable[str]] = None) -> bool:
        moving = self._moving(element_ids)
        order = [e.element_id for e in self.elements_on_slide()]
        order = [i for i in order if i in moving] + [i for i in order if i not in moving]
        return self._restack(order, "Send to back")

    # ── Undo / redo ────────────────────────────────────────────────────

    def undo(self) -> Optional[str]:
        """Revert the last edit. Returns its description, or None."""
        current = self._require_project()
        entry = self.history.undo(current.model_dump_json(), self.selection)
        if entry is None:
            return None
        self._restore(entry)
        return entry.description

    def redo(self) -> Optional[str]:
        current = self._require_project()
        entry = self.history.redo(current.model_dump_json(), self.selection)
        if entry is None:
            return None
        self._restore(entry)
        return entry.description

    def _restore(self, entry: UndoEntry):
        restored = Project.model_validate_json(entry.project_json)
        current = self.project.last_modified
        if current is not None and (restored.last_modified is None
                                    or restored.last_modified < current):
            restored.last_modified = current
        self.project = restored
        self.selection = set(entry.selection)
        if self.current_slide_id is None or restored.get_slide(self.current_slide_id) is None:
            slides = restored.ordered_slides()
            self.current_slide_id = slides[0].slide_id if slides else None
            self.selection.clear()
        self._prune_selection()
        self._mark_dirty()

    # ── Save ───────────────────────────────────────────────────────────

    def begin_save(self) -> str:
        """Enter Saving and return the text to write.

        Raises SaveInProgressError if a save is already running.
        """
        with self._lock:
            if self.state == SessionState.SAVING:
                raise SaveInProgressError(
                    f"Save already in progress for {self.project.project_id}"
                )
            project = self._require_project()
            self._save_stamp = save_timestamp(project)
            text = serialize(project, for_save=True, now=self._save_stamp)
            self._changed_while_saving = False
            self._set_state(SessionState.SAVING)
        self._notify()
        return text

    def finish_save(self, error: Optional[Exception] = None):
        """Settle a save started with begin_save."""
        with self._lock:
            if self.state != SessionState.SAVING:
                raise ValidationError("No save in progress")
            if error is None:
                self.project.last_modified = self._save_stamp
                self.last_save_error = None
                self._set_state(SessionState.DIRTY if self._changed_while_saving
                                else SessionState.READY)
            else:
                logger.error(f"Save failed for {self.project.project_id}: {error}")
                self.last_save_error = error
                self._set_state(SessionState.SAVE_FAILED)
                self._set_state(SessionState.DIRTY)
            self._changed_while_saving = False
            self._save_stamp = None
        self._notify()

    def save(self) -> IndexRow:
        """Write the project through the coordinator. Local edits survive a failure."""
        if self.coordinator is None:
            raise ValidationError("Session has no persistence coordinator")
        text = self.begin_save()
        try:
            row = self.coordinator.save_document(self.project.project_id, text)
        except Exception as e:
            self.finish_save(e)
            raise
        self.finish_save()
        logger.info(f"Session saved project {row.project_id}")
        return row
