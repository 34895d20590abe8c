"""
Core utilities and clients.
"""

from email_suite.core.cache import MailCache, MemoryCache, RedisCache, create_cache_backend
from email_suite.core.events import EventBus
from email_suite.core.generation import RequestGeneration
from email_suite.core.provider_gateway import MailProviderGateway
from email_suite.core.signature_store import SignatureStore
from email_suite.core.storage_gateway import StorageGateway

__all__ = [
    "MailCache",
    "MemoryCache",
    "RedisCache",
    "create_cache_backend",
    "EventBus",
    "RequestGeneration",
    "MailProviderGateway",
    "SignatureStore",
    "StorageGateway",
]
