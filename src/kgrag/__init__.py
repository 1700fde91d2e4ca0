"""kgrag - in-memory knowledge retrieval: chunking, vector search and entity graphs."""

__version__ = "0.1.0"
