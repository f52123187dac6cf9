"""Shared pydantic base for every entity stored in a project document."""

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class DocumentModel(BaseModel):
    """Base model: camelCase on the wire, snake_case in Python.

    Unknown fields are kept (``extra="allow"``) so documents written by a
    newer editor survive a load/save cycle untouched.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="allow",
    )
