"""Training Studio MCP Server - MCP tools for authoring interactive training projects."""

from mcp.server.fastmcp import FastMCP, Context
import json
import logging
import uuid
from dataclasses import asdict
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict, Any, Optional
import os
from pathlib import Path

# SDK imports
from training_sdk.core.document import serialize
from training_sdk.core.errors import TrainingStudioError, ValidationError
from training_sdk.editing.render import RenderBinding
from training_sdk.editing.session import EditSession
from training_sdk.persistence.access import AccessGate, AccessLevel, StaticAccessGate, require_access
from training_sdk.persistence.coordinator import PersistenceCoordinator
from training_sdk.persistence.filesystem import JsonIndexStore, open_file_stores
from training_sdk.persistence.http import HttpBlobStore
from training_sdk.persistence.memory import InMemoryBlobStore, InMemoryIndexStore

# Configure logging
logging.basicConfig(level=logging.INFO,
                    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')
logger = logging.getLogger("TrainingStudio.mcp")

# Default configuration
DEFAULT_STORE_BACKEND = "file"
DEFAULT_STORE_DIR = "./training_projects"
DEFAULT_BLOB_TIMEOUT = 30


# ── Global State ────────────────────────────────────────────────────────

_coordinator: Optional[PersistenceCoordinator] = None
_access_gate: Optional[AccessGate] = None
_sessions: dict[str, EditSession] = {}
_bindings: dict[str, RenderBinding] = {}


def build_coordinator() -> PersistenceCoordinator:
    backend = os.getenv("TRAINING_STORE_BACKEND", DEFAULT_STORE_BACKEND).lower()
    root = Path(os.getenv("TRAINING_STORE_DIR", DEFAULT_STORE_DIR))

    if backend == "memory":
        logger.info("Using in-memory stores; projects will not survive a restart")
        return PersistenceCoordinator(InMemoryIndexStore(), InMemoryBlobStore())
    if backend == "http":
        base_url = os.getenv("TRAINING_BLOB_URL")
        if not base_url:
            raise ValidationError("TRAINING_BLOB_URL must be set for the http backend")
        blobs = HttpBlobStore(base_url, token=os.getenv("TRAINING_BLOB_TOKEN"),
                              timeout=DEFAULT_BLOB_TIMEOUT)
        logger.info(f"Using blob service at {base_url}, index at {root}")
        return PersistenceCoordinator(JsonIndexStore(root / "project_index.json"), blobs)
    if backend != "file":
        raise ValidationError(f"Unknown store backend '{backend}'")

    blobs, index = open_file_stores(root)
    logger.info(f"Using file stores under {root}")
    return PersistenceCoordinator(index, blobs)


def build_access_gate() -> Optional[AccessGate]:
    admins = [a for a in os.getenv("TRAINING_ADMIN_EMAILS", "").split(",") if a.strip()]
    if not admins:
        logger.info("TRAINING_ADMIN_EMAILS not set; access checks disabled")
        return None
    return StaticAccessGate(admins=admins)


def get_coordinator() -> PersistenceCoordinator:
    global _coordinator, _access_gate
    if _coordinator is None:
        _coordinator = build_coordinator()
        _access_gate = build_access_gate()
    return _coordinator


def _get_session(session_id: str) -> EditSession:
    session = _sessions.get(session_id)
    if session is None:
        raise ValidationError(
            f"No open session '{session_id}'. Use open_project first."
        )
    return session


def _get_binding(session_id: str) -> RenderBinding:
    session = _get_session(session_id)
    binding = _bindings.get(session_id)
    if binding is None:
        binding = _bindings[session_id] = RenderBinding(session)
    binding.reload()
    return binding


def _json_arg(text: str, name: str) -> dict:
    if not text:
        return {}
    try:
        value = json.loads(text)
    except json.JSONDecodeError as e:
        raise ValidationError(f"{name} is not valid JSON: {e}") from e
    if not isinstance(value, dict):
        raise ValidationError(f"{name} must be a JSON object")
    return value


def _dump(model) -> dict:
    return model.model_dump(mode="json", by_alias=True)


def _session_summary(session_id: str, session: EditSession) -> dict:
    project = session.project
    return {
        "session_id": session_id,
        "project_id": project.project_id if project else None,
        "title": project.title if project else None,
        "state": session.state.value,
        "current_slide_id": session.current_slide_id,
        "selection": sorted(session.selection),
        "slide_count": len(project.slides) if project else 0,
        "element_count": len(project.elements) if project else 0,
        "undo_depth": len(session.history.undo_stack),
        "redo_depth": len(session.history.redo_stack),
    }


# ── Server Setup ────────────────────────────────────────────────────────

@asynccontextmanager
async def server_lifespan(server: FastMCP) -> AsyncIterator[Dict[str, Any]]:
    try:
        logger.info("TrainingStudioMCP server starting up")
        try:
            get_coordinator()
        except TrainingStudioError as e:
            logger.warning(f"Could not configure stores on startup: {str(e)}")
        yield {}
    finally:
        dirty = [sid for sid, s in _sessions.items() if s.is_dirty]
        if dirty:
            logger.warning(f"Shutting down with unsaved sessions: {', '.join(dirty)}")
        _sessions.clear()
        _bindings.clear()
        logger.info("TrainingStudioMCP server shut down")


mcp = FastMCP("TrainingStudioMCP", lifespan=server_lifespan)


# ═══════════════════════════════════════════════════════════════════════
# PROJECT MANAGEMENT TOOLS
# ═══════════════════════════════════════════════════════════════════════

@mcp.tool()
def create_project(ctx: Context, title: str) -> str:
    """Create a new Draft training project with no slides.

    Parameters:
    - title: Project title (also used to name its storage folder)
    """
    try:
        row = get_coordinator().create_project(title)
    except TrainingStudioError as e:
        return f"Error: {str(e)}"
    return json.dumps({"status": "created", **row.to_row()}, indent=2)


@mcp.tool()
def list_projects(ctx: Context, status: str = "") -> str:
    """List projects from the index.

    Parameters:
    - status: Optional filter (Draft, Active or Inactive)
    """
    try:
        rows = get_coordinator().list_projects(status=status or None)
    except TrainingStudioError as e:
        return f"Error: {str(e)}"
    return json.dumps({
        "count": len(rows),
        "projects": [r.to_row() for r in rows],
    }, indent=2)


@mcp.tool()
def set_project_status(ctx: Context, project_id: str, status: str, identity: str = "") -> str:
    """Publish, unpublish or return a project to draft.

    Parameters:
    - project_id: Project to change
    - status: Draft, Active or Inactive
    - identity: Caller e-mail, checked when access control is enabled
    """
    try:
        coordinator = get_coordinator()
        require_access(_access_gate, project_id, identity, AccessLevel.ADMIN)
        row = coordinator.set_status(project_id, status)
    except TrainingStudioError as e:
        return f"Error: {str(e)}"
    return json.dumps(row.to_row(), indent=2)


@mcp.tool()
def delete_project(ctx: Context, project_id: str, identity: str = "") -> str:
    """Delete a project. Deleting an unknown project succeeds.

    Parameters:
    - project_id: Project to delete
    - identity: Caller e-mail, checked when access control is enabled
    """
    try:
        coordinator = get_coordinator()
        require_access(_access_gate, project_id, identity, AccessLevel.ADMIN)
        result = coordinator.delete_project(project_id)
    except TrainingStudioError as e:
        return f"Error: {str(e)}"

    for sid in [sid for sid, s in _sessions.items()
                if s.project and s.project.project_id == project_id]:
        _sessions.pop(sid)
        _bindings.pop(sid, None)

    return json.dumps({
        "status": "partial" if result.partial else "deleted",
        "project_id": project_id,
        "index_row_removed": result.index_row_removed,
        "blob_removed": result.blob_removed,
        "warnings": [str(w) for w in result.warnings],
    }, indent=2)


# ═══════════════════════════════════════════════════════════════════════
# VIEWER TOOLS
# ═══════════════════════════════════════════════════════════════════════

@mcp.tool()
def list_published_projects(ctx: Context) -> str:
    """List projects that are Active and visible to learners."""
    try:
        rows = get_coordinator().list_active_projects()
    except TrainingStudioError as e:
        return f"Error: {str(e)}"
    return json.dumps([
        {"project_id": r.project_id, "title": r.project_title,
         "last_modified": r.last_modified.isoformat()}
        for r in rows
    ], indent=2)


@mcp.tool()
def view_project(ctx: Context, project_id: str) -> str:
    """Get the document of an Active project as a learner would see it."""
    try:
        return get_coordinator().load_published_document(project_id)
    except TrainingStudioError as e:
        return f"Error: {str(e)}"


# ═══════════════════════════════════════════════════════════════════════
# SESSION TOOLS
# ═══════════════════════════════════════════════════════════════════════

@mcp.tool()
def open_project(ctx: Context, project_id: str, identity: str = "") -> str:
    """Open a project for editing and return a session id for the other tools.

    Parameters:
    - project_id: Project to edit
    - identity: Caller e-mail, needs Editor access when access control is enabled
    """
    try:
        session = EditSession.open(get_coordinator(), project_id,
                                   identity=identity, gate=_access_gate)
    except TrainingStudioError as e:
        return f"Error: {str(e)}"

    session_id = uuid.uuid4().hex[:12]
    _sessions[session_id] = session
    logger.info(f"Opened session {session_id} for project {project_id}")
    return json.dumps(_session_summary(session_id, session), indent=2)


@mcp.tool()
def close_session(ctx: Context, session_id: str, discard_changes: bool = False) -> str:
    """Close an editing session.

    Parameters:
    - session_id: Session to close
    - discard_changes: Close even if there are unsaved edits
    """
    try:
        session = _get_session(session_id)
    except TrainingStudioError as e:
        return f"Error: {str(e)}"
    if session.is_dirty and not discard_changes:
        return "Error: Session has unsaved changes. Save first or pass discard_changes=true."
    _sessions.pop(session_id)
    _bindings.pop(session_id, None)
    return f"Session {session_id} closed."


@mcp.tool()
def get_session_status(ctx: Context, session_id: str) -> str:
    """Get the state, current slide, selection and undo depth of a session."""
    try:
        session = _get_session(session_id)
    except TrainingStudioError as e:
        return f"Error: {str(e)}"
    return json.dumps(_session_summary(session_id, session), indent=2)


@mcp.tool()
def save_project(ctx: Context, session_id: str) -> str:
    """Save the session's project. Unsaved edits are kept if the save fails."""
    try:
        row = _get_session(session_id).save()
    except TrainingStudioError as e:
        return f"Error: {str(e)}"
    return f"Project '{row.project_title}' saved at {row.last_modified.isoformat()}."


@mcp.tool()
def validate_project(ctx: Context, session_id: str) -> str:
    """List structural problems in the session's document."""
    try:
        violations = _get_session(session_id).check()
    except TrainingStudioError as e:
        return f"Error: {str(e)}"
    return json.dumps([asdict(v) for v in violations], indent=2)


@mcp.tool()
def export_project(ctx: Context, session_id: str) -> str:
    """Get the session's document in canonical form, including unsaved edits."""
    try:
        return serialize(_get_session(session_id).project)
    except TrainingStudioError as e:
        return f"Error: {str(e)}"


@mcp.tool()
def undo(ctx: Context, session_id: str) -> str:
    """Undo the last edit in a session."""
    try:
        description = _get_session(session_id).undo()
    except TrainingStudioError as e:
        return f"Error: {str(e)}"
    if description is None:
        return "Nothing to undo."
    return f"Undone: {description}"


@mcp.tool()
def redo(ctx: Context, session_id: str) -> str:
    """Redo the last undone edit in a session."""
    try:
        description = _get_session(session_id).redo()
    except TrainingStudioError as e:
        return f"Error: {str(e)}"
    if description is None:
        return "Nothing to redo."
    return f"Redone: {description}"


# ═══════════════════════════════════════════════════════════════════════
# SLIDE TOOLS
# ═══════════════════════════════════════════════════════════════════════

@mcp.tool()
def get_slides(ctx: Context, session_id: str) -> str:
    """List the slides of a session's project in order."""
    try:
        session = _get_session(session_id)
    except TrainingStudioError as e:
        return f"Error: {str(e)}"
    return json.dumps([
        {**_dump(s), "elementCount": len(session.elements_on_slide(s.slide_id))}
        for s in session.project.ordered_slides()
    ], indent=2)


@mcp.tool()
def add_slide(ctx: Context, session_id: str, title: str = "Untitled Slide",
              properties: str = "") -> str:
    """Add a slide after the last one and make it current.

    Parameters:
    - session_id: Editing session
    - title: Slide title
    - properties: Optional JSON object, e.g. {"backgroundColor": "#000000"}
    """
    try:
        slide = _get_session(session_id).add_slide(title, **_json_arg(properties, "properties"))
    except TrainingStudioError as e:
        return f"Error: {str(e)}"
    return json.dumps(_dump(slide), indent=2)


@mcp.tool()
def update_slide(ctx: Context, session_id: str, slide_id: str, changes: str) -> str:
    """Change slide fields.

    Parameters:
    - session_id: Editing session
    - slide_id: Slide to change
    - changes: JSON object of fields, e.g. {"title": "Welcome"}
    """
    try:
        slide = _get_session(session_id).update_slide(slide_id, **_json_arg(changes, "changes"))
    except TrainingStudioError as e:
        return f"Error: {str(e)}"
    return json.dumps(_dump(slide), indent=2)


@mcp.tool()
def delete_slide(ctx: Context, session_id: str, slide_id: str) -> str:
    """Delete a slide together with its elements."""
    try:
        removed = _get_session(session_id).delete_slide(slide_id)
    except TrainingStudioError as e:
        return f"Error: {str(e)}"
    return f"Slide {slide_id} deleted with {removed} element(s)."


@mcp.tool()
def go_to_slide(ctx: Context, session_id: str, slide_id: str) -> str:
    """Make a slide current and list its rendered elements, bottom first."""
    try:
        _get_session(session_id).go_to_slide(slide_id)
        renderables = _get_binding(session_id).render_slide(slide_id)
    except TrainingStudioError as e:
        return f"Error: {str(e)}"
    return json.dumps([asdict(r) for r in renderables], indent=2)


# ═══════════════════════════════════════════════════════════════════════
# ELEMENT TOOLS
# ═══════════════════════════════════════════════════════════════════════

@mcp.tool()
def add_element(ctx: Context, session_id: str, kind: str, properties: str = "") -> str:
    """Add an element to the current slide, on top of everything else.

    Parameters:
    - session_id: Editing session
    - kind: Rectangle, RoundedRectangle, Circle, Arrow, Text, Hotspot or Image
    - properties: Optional JSON object of overrides, e.g.
      {"geometry": {"left": 100, "top": 100}, "text": "Hello"}
    """
    try:
        element = _get_session(session_id).add_element(kind, **_json_arg(properties, "properties"))
    except TrainingStudioError as e:
        return f"Error: {str(e)}"
    return json.dumps(_dump(element), indent=2)


@mcp.tool()
def update_element(ctx: Context, session_id: str, element_id: str, changes: str) -> str:
    """Change element fields. Nested objects merge field by field.

    Parameters:
    - session_id: Editing session
    - element_id: Element to change
    - changes: JSON object, e.g. {"style": {"opacity": 50}, "timeline": {"start_time": 2}}
    """
    try:
        element = _get_session(session_id).update_element(
            element_id, **_json_arg(changes, "changes"))
    except TrainingStudioError as e:
        return f"Error: {str(e)}"
    return json.dumps(_dump(element), indent=2)


@mcp.tool()
def delete_elements(ctx: Context, session_id: str, element_ids: Optional[list[str]] = None) -> str:
    """Delete elements, or the current selection when no ids are given."""
    try:
        count = _get_session(session_id).delete_elements(element_ids)
    except TrainingStudioError as e:
        return f"Error: {str(e)}"
    return f"Deleted {count} element(s)."


@mcp.tool()
def select_elements(ctx: Context, session_id: str, element_ids: list[str]) -> str:
    """Replace the selection. Elements must be on the current slide."""
    try:
        session = _get_session(session_id)
        session.select(element_ids)
    except TrainingStudioError as e:
        return f"Error: {str(e)}"
    return json.dumps(sorted(session.selection))


@mcp.tool()
def transform_selection(ctx: Context, session_id: str, dx: float = 0, dy: float = 0,
                        scale_x: float = 1, scale_y: float = 1) -> str:
    """Move and scale the selected elements together as one group.

    Parameters:
    - session_id: Editing session
    - dx, dy: Distance to move the group
    - scale_x, scale_y: Scale factors for the group's bounding box
    """
    try:
        session = _get_session(session_id)
        if not session.selection:
            return "Error: Nothing selected."
        binding = _get_binding(session_id)
        group = binding.group([e.element_id for e in session.selected_elements()])
        group.move_by(dx, dy)
        group.scale_by(scale_x, scale_y)
        elements = binding.commit_group(group)
    except TrainingStudioError as e:
        return f"Error: {str(e)}"
    return json.dumps([_dump(e.geometry) | {"elementId": e.element_id}
                       for e in elements], indent=2)


@mcp.tool()
def copy_selection(ctx: Context, session_id: str) -> str:
    """Copy the selected elements to the session clipboard."""
    try:
        count = _get_session(session_id).copy_selection()
    except TrainingStudioError as e:
        return f"Error: {str(e)}"
    return f"Copied {count} element(s)."


@mcp.tool()
def paste(ctx: Context, session_id: str) -> str:
    """Paste the clipboard onto the current slide, offset from the originals."""
    try:
        elements = _get_session(session_id).paste()
    except TrainingStudioError as e:
        return f"Error: {str(e)}"
    return json.dumps([e.element_id for e in elements])


@mcp.tool()
def duplicate_selection(ctx: Context, session_id: str) -> str:
    """Duplicate the selected elements in place, offset from the originals."""
    try:
        elements = _get_session(session_id).duplicate_selection()
    except TrainingStudioError as e:
        return f"Error: {str(e)}"
    return json.dumps([e.element_id for e in elements])


@mcp.tool()
def arrange(ctx: Context, session_id: str, action: str) -> str:
    """Change the stacking order of the selection.

    Parameters:
    - session_id: Editing session
    - action: forward, backward, front or back
    """
    try:
        session = _get_session(session_id)
        actions = {
            "forward": session.bring_forward,
            "backward": session.send_backward,
            "front": session.bring_to_front,
            "back": session.send_to_back,
        }
        if action not in actions:
            return f"Error: Unknown action '{action}'. Use forward, backward, front or back."
        changed = actions[action]()
    except TrainingStudioError as e:
        return f"Error: {str(e)}"
    return "Stacking order updated." if changed else "Stacking order unchanged."


# ═══════════════════════════════════════════════════════════════════════
# PLAYBACK TOOLS
# ═══════════════════════════════════════════════════════════════════════

@mcp.tool()
def visible_elements(ctx: Context, session_id: str, time: float, slide_id: str = "") -> str:
    """Element ids showing at a playback time in seconds."""
    try:
        ids = _get_binding(session_id).visible_at(slide_id or None, time)
    except TrainingStudioError as e:
        return f"Error: {str(e)}"
    return json.dumps(ids)


@mcp.tool()
def trigger_element(ctx: Context, session_id: str, element_id: str, event: str = "Click") -> str:
    """Show what a learner's Hover or Click on an element does."""
    try:
        interaction = _get_binding(session_id).trigger(element_id, event)
    except TrainingStudioError as e:
        return f"Error: {str(e)}"
    if interaction is None:
        return json.dumps({"fired": False})
    return json.dumps({"fired": True, **_dump(interaction)})


# ═══════════════════════════════════════════════════════════════════════
# PROMPTS
# ═══════════════════════════════════════════════════════════════════════

@mcp.prompt()
def training_authoring_workflow() -> str:
    """Recommended workflow for building a training project"""
    return """You are helping the user build an interactive training project. Follow this workflow:

1. **Create or Open**: Use create_project() for a new project, then open_project()
   to get a session id. Use list_projects() to find existing ones.

2. **Slides**: Use add_slide() for each step of the training and update_slide()
   for titles and backgrounds. go_to_slide() switches the slide you are editing.

3. **Elements**: Use add_element() for shapes, text, hotspots and images.
   - update_element() sets styles, timelines ({"timeline": {"startTime": 2}})
     and quizzes
   - select_elements() then transform_selection(), duplicate_selection(),
     copy_selection()/paste() or arrange() to lay things out
   - undo() and redo() step through edits

4. **Check**: Use validate_project() and visible_elements() to check timing.

5. **Save and Publish**: save_project() writes the document. Then
   set_project_status(status="Active") makes it visible to learners.
"""


def main():
    """Run the MCP server"""
    mcp.run()


if __name__ == "__main__":
    main()
