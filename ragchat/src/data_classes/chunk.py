from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class Chunk:
    """A unit of retrieved reference text.

    Chunks are produced by the retrieval subsystem already ordered most
    relevant first; ``rank`` records that order but is never used to re-sort.

    Attributes:
        content: The chunk text
        rank: Relevance rank assigned by the retriever (0 = most relevant)
        source: Optional name of the document or data source
    """

    content: str
    rank: int = 0
    source: Optional[str] = None

    def __str__(self) -> str:
        return self.content
