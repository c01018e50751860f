"""Repoingest pipeline stages — selection, decoding, chunking, embedding."""

from repoingest.ingest.chunker import TextChunker
from repoingest.ingest.decode import decode_blob, is_likely_binary, to_text
from repoingest.ingest.embedder import Embedder, EmbeddingConfig, MissingEmbeddingKeyError
from repoingest.ingest.selector import FileSelector, should_include

__all__ = [
    "Embedder",
    "EmbeddingConfig",
    "FileSelector",
    "MissingEmbeddingKeyError",
    "TextChunker",
    "decode_blob",
    "is_likely_binary",
    "should_include",
    "to_text",
]
