"""agentkb: content ingestion for chatbot knowledge bases.

Text, files and websites are extracted, chunked, embedded and stored in a
per-agent vector namespace by a queue-driven worker pool.
"""

__version__ = "0.1.0"
