"""Application services: the ingestion core, event publishing and source management."""

from agentkb.services.progress_publisher import ProgressPublisher
from agentkb.services.source_service import SourceService

__all__ = ["ProgressPublisher", "SourceService"]
