"""
Storage Layer.

This package handles all data persistence: the durable key-value store, the
read cache, the credential vault, and the configuration file.
"""

from .cache import CacheManager
from .config_manager import ConfigManager
from .credentials import CredentialVault
from .kv_store import JsonFileStore, KeyValueStore, MemoryStore

__all__ = [
    "CacheManager",
    "ConfigManager",
    "CredentialVault",
    "JsonFileStore",
    "KeyValueStore",
    "MemoryStore",
]
