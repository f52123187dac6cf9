"""Exception taxonomy shared by the document model, persistence and editor."""


class TrainingStudioError(Exception):
    """Base class for every error raised by the training SDK."""


# ── Bad input (raised before any store is touched) ─────────────────────

class ValidationError(TrainingStudioError):
    """Input was rejected before any store mutation."""


class ParseError(ValidationError):
    """Document text is malformed or lacks a required field."""


class InvalidStatusError(ValidationError):
    """Status is not one of Draft, Active, Inactive."""


class ProjectNotPublishedError(ValidationError):
    """A viewer asked for a project whose status is not Active."""


class AccessDeniedError(ValidationError):
    """The caller's access level is below what the operation needs."""


# ── Missing data ───────────────────────────────────────────────────────

class NotFoundError(TrainingStudioError):
    """Index row or blob does not exist."""


class BlobNotFoundError(NotFoundError):
    """Blob store has nothing at the given locator."""


class MalformedIndexRowError(NotFoundError):
    """Index row exists but its columns cannot be read."""


class OrphanedProjectError(NotFoundError):
    """Index row exists but its document blob is missing."""

    def __init__(self, project_id: str, locator: str):
        super().__init__(
            f"Project '{project_id}' is indexed but its blob is missing at {locator}"
        )
        self.project_id = project_id
        self.locator = locator


# ── Store failures ─────────────────────────────────────────────────────

class StoreWriteError(TrainingStudioError):
    """Transient or permission failure while writing to a store."""


# ── Session ────────────────────────────────────────────────────────────

class SaveInProgressError(TrainingStudioError):
    """A save was requested while another save is still running."""


class ConsistencyWarning(UserWarning):
    """Index and blob store disagree; reported as partial success."""
