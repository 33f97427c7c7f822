"""Retrieval interface package."""

from .chunk_source import BaseChunkSource

__all__ = ["BaseChunkSource"]
