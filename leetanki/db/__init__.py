from .backends import KeyValueBackend, MemoryBackend, SqlBackend, create_backend

__all__ = ["KeyValueBackend", "MemoryBackend", "SqlBackend", "create_backend"]
