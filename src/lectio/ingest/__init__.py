"""Lectio ingest pipeline: fetcher, extractor, chunker, and the indexing pipeline."""

from lectio.ingest.books import NT_BOOKS, UnknownBookError
from lectio.ingest.chunker import SentenceChunker
from lectio.ingest.fetcher import Fetcher, FetchError
from lectio.ingest.pipeline import IngestionPipeline, IngestReport, IngestResult

__all__ = [
    "NT_BOOKS",
    "UnknownBookError",
    "SentenceChunker",
    "Fetcher",
    "FetchError",
    "IngestionPipeline",
    "IngestReport",
    "IngestResult",
]
