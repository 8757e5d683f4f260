"""Public interface definitions for all external collaborators.

Every external service the ingestion core touches is accessed exclusively
through the abstract base classes defined in this package.  Concrete
adapters implement these interfaces and are injected at startup by
``agentkb/main.py`` (API process) or ``agentkb/cli/worker.py`` (worker
process).

ADAPTER PATTERN EXPLAINED (for junior developers):
    The source processor never calls ``chromadb`` or ``boto3`` directly; it
    calls ``vector_index.upsert(...)`` or ``object_store.get(...)`` on
    whatever object was injected.  Unit tests inject AsyncMock doubles,
    local development injects the SQLite / local-disk / mock-embedding
    adapters, production injects OpenAI + S3.

CONCRETE PROVIDER MAP:
    Interface              →  Concrete implementations (in agentkb/providers/)
    ─────────────────────────────────────────────────────────────────────
    IEmbeddingProvider     →  OpenAIEmbeddingProvider,
                              DeterministicEmbeddingProvider
    IVectorIndex           →  ChromaDBVectorIndex
    IObjectStore           →  LocalObjectStore, S3ObjectStore
    IRealtimeTransport     →  BroadcastTransport
    IJobStore              →  SQLiteJobStore
    IDataSourceStore       →  SQLiteDataSourceStore
    IJobQueue              →  SQLiteJobQueue
"""

from agentkb.interfaces.data_source_store import IDataSourceStore
from agentkb.interfaces.embedding_provider import IEmbeddingProvider
from agentkb.interfaces.job_queue import IJobQueue
from agentkb.interfaces.job_store import IJobStore
from agentkb.interfaces.object_store import IObjectStore
from agentkb.interfaces.realtime_transport import IRealtimeTransport, RealtimeCallback
from agentkb.interfaces.vector_index import IVectorIndex

__all__ = [
    "IDataSourceStore",
    "IEmbeddingProvider",
    "IJobQueue",
    "IJobStore",
    "IObjectStore",
    "IRealtimeTransport",
    "IVectorIndex",
    "RealtimeCallback",
]
