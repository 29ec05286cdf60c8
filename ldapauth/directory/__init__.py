"""Directory (LDAP) client package.

Public API:
    - Credentials, ConnectionParams, UserRecord
    - DirectoryClient (protocol), Ldap3DirectoryClient
"""

from .models import ConnectionParams, Credentials, DirectoryEntry, SearchResult, UserRecord
from .client import ClientFactory, DirectoryClient, Ldap3DirectoryClient, ldap3_client_factory

__all__ = [
    "ClientFactory",
    "ConnectionParams",
    "Credentials",
    "DirectoryClient",
    "DirectoryEntry",
    "Ldap3DirectoryClient",
    "SearchResult",
    "UserRecord",
    "ldap3_client_factory",
]
