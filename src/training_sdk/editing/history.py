"""Snapshot-based undo/redo for an edit session."""

from typing import Iterable, Optional
from pydantic import BaseModel, Field

MAX_HISTORY = 50


class UndoEntry(BaseModel):
    """A snapshot of the project and selection taken before a change."""
    description: str
    project_json: str  # JSON-serialized Project
    selection: list[str] = Field(default_factory=list)


class History:
    """Linear history: recording a new step discards everything redoable."""

    def __init__(self, limit: int = MAX_HISTORY):
        self.limit = limit
        self.undo_stack: list[UndoEntry] = []
        self.redo_stack: list[UndoEntry] = []

    def record(self, description: str, project_json: str, selection: Iterable[str] = ()):
        self.undo_stack.append(UndoEntry(description=description, project_json=project_json,
                                         selection=sorted(selection)))
        if len(self.undo_stack) > self.limit:
            self.undo_stack = self.undo_stack[-self.limit:]
        self.redo_stack.clear()

    def undo(self, current_json: str, current_selection: Iterable[str] = ()) -> Optional[UndoEntry]:
        """Pop the last snapshot; the current state becomes redoable."""
        if not self.undo_stack:
            return None
        entry = self.undo_stack.pop()
        self.redo_stack.append(UndoEntry(description=entry.description,
                                         project_json=current_json,
                                         selection=sorted(current_selection)))
        return entry

    def redo(self, current_json: str, current_selection: Iterable[str] = ()) -> Optional[UndoEntry]:
        if not self.redo_stack:
            return None
        entry = self.redo_stack.pop()
        self.undo_stack.append(UndoEntry(description=entry.description,
                                         project_json=current_json,
                                         selection=sorted(current_selection)))
        return entry

    def clear(self):
        self.undo_stack.clear()
        self.redo_stack.clear()

    @property
    def can_undo(self) -> bool:
        return bool(self.undo_stack)

    @property
    def can_redo(self) -> bool:
        return bool(self.redo_stack)
