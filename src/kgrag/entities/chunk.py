"""Chunk entity - represents a slice of a source text."""

from pydantic import BaseModel, ConfigDict, Field


class Chunk(BaseModel):
    """A bounded, referenceable slice of source text.

    The reference is a human-readable locator such as ``docs/a.md`` or
    ``docs/a.md, Lines 12 to 40``. It is not a unique key.
    """

    model_config = ConfigDict(frozen=True)

    reference: str = Field(..., description="Locator cited verbatim by consumers")
    content: str = Field(..., description="Text content of this chunk")
