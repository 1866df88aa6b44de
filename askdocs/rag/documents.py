"""Value types shared by the ingestion and question-answering pipelines."""
from dataclasses import dataclass, field
from typing import Dict, Optional


@dataclass(frozen=True)
class Document:
    """A piece of text with its provenance.

    ``metadata["source"]`` is the path relative to the ingestion root. Chunks
    are Documents too and carry a copy of their parent's metadata.
    """

    content: str
    metadata: Dict[str, str] = field(default_factory=dict)

    @property
    def source(self) -> str:
        return self.metadata.get("source", "")


@dataclass(frozen=True)
class StoredMatch:
    """A raw nearest-neighbour hit as returned by a vector collection."""

    id: str
    content: str
    metadata: Dict[str, str]
    distance: float


@dataclass(frozen=True)
class RetrievalResult:
    """A retrieved chunk with its similarity score (1 - cosine distance)."""

    content: str
    metadata: Dict[str, str]
    score: float
    id: Optional[str] = None

    @property
    def source(self) -> str:
        return self.metadata.get("source", "")

    @classmethod
    def from_match(cls, match: StoredMatch) -> "RetrievalResult":
        return cls(
            content=match.content,
            metadata=dict(match.metadata),
            score=1.0 - match.distance,
            id=match.id,
        )
