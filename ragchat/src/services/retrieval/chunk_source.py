"""Interface to the retrieval subsystem that supplies candidate chunks."""

import abc
from typing import List

from ragchat.src.data_classes import Chunk


class BaseChunkSource(abc.ABC):
    """Base class for chunk sources.

    Ranking and retrieval happen outside this package; implementations adapt
    an existing retriever (vector search, BM25, ...) to this interface.
    """

    @abc.abstractmethod
    def retrieve(self, query: str) -> List[Chunk]:
        """Retrieve candidate chunks for a query.

        Args:
            query: Standalone search query

        Returns:
            Candidate chunks ordered most relevant first
        """
