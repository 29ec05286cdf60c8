"""Directory-backed login: admin search, user bind, short-lived credential cache.

Public API:
    - AuthenticationService
    - LdapAuthSettings, RetryPolicy, build_settings, get_settings
    - UserRecord, Signal
    - errors (LdapAuthError and subclasses)
"""

from .directory import UserRecord
from .errors import (
    AmbiguousUserError,
    BindError,
    ConnectTimeoutError,
    DirectoryConnectionError,
    InvalidCredentialsError,
    LdapAuthError,
    NoSuchUserError,
    NotConnectedError,
    SearchError,
    ServiceClosedError,
    ValidationError,
)
from .service import AuthenticationService
from .session import SessionState
from .settings import LdapAuthSettings, RetryPolicy, build_settings, get_settings
from .signals import Signal

__all__ = [
    "AmbiguousUserError",
    "AuthenticationService",
    "BindError",
    "ConnectTimeoutError",
    "DirectoryConnectionError",
    "InvalidCredentialsError",
    "LdapAuthError",
    "LdapAuthSettings",
    "NoSuchUserError",
    "NotConnectedError",
    "RetryPolicy",
    "SearchError",
    "ServiceClosedError",
    "SessionState",
    "Signal",
    "UserRecord",
    "ValidationError",
    "build_settings",
    "get_settings",
]
