"""Ingestion core: extraction, crawling, chunking, embedding and vector storage."""

from agentkb.services.ingestion.chunker import TextChunker, chunk_text
from agentkb.services.ingestion.embedding_client import EmbeddingClient
from agentkb.services.ingestion.extractors import extract_text, supported_mime_types
from agentkb.services.ingestion.metadata import extract_metadata
from agentkb.services.ingestion.source_processor import SourceProcessor
from agentkb.services.ingestion.vector_store_adapter import VectorStoreAdapter
from agentkb.services.ingestion.web_crawler import CrawlResult, WebCrawler

__all__ = [
    "CrawlResult",
    "EmbeddingClient",
    "SourceProcessor",
    "TextChunker",
    "VectorStoreAdapter",
    "WebCrawler",
    "chunk_text",
    "extract_metadata",
    "extract_text",
    "supported_mime_types",
]
