"""EmbeddingRecord entity - a chunk paired with its vector."""

from pydantic import BaseModel, ConfigDict, Field

from kgrag.entities.chunk import Chunk


class EmbeddingRecord(BaseModel):
    """An embedded chunk as stored by the vector store."""

    model_config = ConfigDict(frozen=True)

    reference: str
    content: str
    vector: tuple[float, ...] = Field(..., description="Embedding vector")

    @classmethod
    def from_chunk(cls, chunk: Chunk, vector: list[float]) -> "EmbeddingRecord":
        return cls(reference=chunk.reference, content=chunk.content, vector=tuple(vector))

    @property
    def dimension(self) -> int:
        return len(self.vector)
