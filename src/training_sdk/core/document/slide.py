"""Slide data model."""

from pydantic import Field

from .base import DocumentModel
from .element import new_id
from .vocabulary import FileType


class BackgroundMedia(DocumentModel):
    """Media shown behind a slide's elements."""
    file_type: FileType = "None"
    file_url: str = ""


class Slide(DocumentModel):
    """A single slide. Elements live on the project, keyed back by slide_id.

    ``slide_number`` orders slides but is not kept contiguous: deleting a
    slide leaves a gap so external references to numbers stay stable.
    """
    slide_id: str = Field(default_factory=new_id)
    title: str = "Untitled Slide"
    background_color: str = "#FFFFFF"
    background: BackgroundMedia = Field(default_factory=BackgroundMedia)
    slide_number: int = 1
    show_controls: bool = False
