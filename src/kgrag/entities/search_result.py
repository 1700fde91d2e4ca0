"""SearchResult entity - represents a retrieved chunk with similarity score."""

from pydantic import BaseModel


class SearchResult(BaseModel):
    """A retrieved chunk with its cosine similarity to the query (about -1 to 1)."""

    score: float
    reference: str
    content: str
