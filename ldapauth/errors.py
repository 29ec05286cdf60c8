from __future__ import annotations


class LdapAuthError(Exception):
    """Base class for every error raised by ldapauth."""


class ValidationError(LdapAuthError, ValueError):
    """Missing or empty configuration value or argument. Raised before any I/O."""


class DirectoryConnectionError(LdapAuthError):
    """Transport level failure (connect refused, reset, DNS, TLS handshake)."""


class ConnectTimeoutError(DirectoryConnectionError):
    pass


class BindError(LdapAuthError):
    """Bind rejected for a reason other than bad credentials. Retryable."""

    def __init__(self, message: str, result_code: int | None = None) -> None:
        super().__init__(message)
        self.result_code = result_code


class InvalidCredentialsError(LdapAuthError):
    """Bind rejected with invalidCredentials. Never retried."""

    def __init__(self, dn: str, message: str = "invalid credentials") -> None:
        super().__init__(f"{message} for {dn!r}")
        self.dn = dn


class NotConnectedError(LdapAuthError):
    pass


class SearchError(LdapAuthError):
    pass


class NoSuchUserError(LdapAuthError):
    def __init__(self, username: str) -> None:
        super().__init__(f'no such user: "{username}"')
        self.username = username


class AmbiguousUserError(LdapAuthError):
    def __init__(self, username: str, count: int) -> None:
        super().__init__(f'unexpected number of matches ({count}) for "{username}" username')
        self.username = username
        self.count = count


class ServiceClosedError(LdapAuthError):
    pass


class RetryAborted(LdapAuthError):
    """A connect sequence was interrupted by shutdown. Internal, never reaches callers."""
