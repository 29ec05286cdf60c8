from __future__ import annotations

from functools import lru_cache
from typing import Any, Optional

from pydantic import AliasChoices, BaseModel, Field, ValidationError as PydanticValidationError
from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings

from .directory import ConnectionParams, Credentials
from .errors import ValidationError


class RetryPolicy(BaseModel):
    initial_delay: float = Field(0.1, gt=0)
    max_delay: float = Field(30.0, gt=0, validation_alias=AliasChoices("max_delay", "maxDelay", "max_timeout"))
    # None = retry forever
    max_attempts: Optional[int] = Field(None, ge=1, validation_alias=AliasChoices("max_attempts", "retries"))

    @model_validator(mode="after")
    def _check_delays(self) -> "RetryPolicy":
        if self.max_delay < self.initial_delay:
            raise ValueError("max_delay must be >= initial_delay")
        return self


class LdapAuthSettings(BaseSettings):
    url: str = Field(..., alias="LDAPAUTH_URL")
    admin_dn: str = Field(..., alias="LDAPAUTH_ADMIN_DN")
    admin_password: str = Field("", alias="LDAPAUTH_ADMIN_PASSWORD", repr=False)

    # Filter template; every `{{username}}` is replaced by the escaped login.
    search_base: str = Field(..., alias="LDAPAUTH_SEARCH_BASE")
    search_filter: str = Field(..., alias="LDAPAUTH_SEARCH_FILTER")
    search_attributes: Optional[list[str]] = Field(None, alias="LDAPAUTH_SEARCH_ATTRIBUTES")

    # Passed as-is to ldap3.Tls
    tls_options: Optional[dict[str, Any]] = Field(None, alias="LDAPAUTH_TLS_OPTIONS")
    connect_timeout: Optional[float] = Field(None, gt=0, alias="LDAPAUTH_CONNECT_TIMEOUT")
    timeout: Optional[float] = Field(None, gt=0, alias="LDAPAUTH_TIMEOUT")
    retry: RetryPolicy = Field(default_factory=RetryPolicy, alias="LDAPAUTH_RETRY")

    cache: bool = Field(False, alias="LDAPAUTH_CACHE")
    verbose: bool = Field(False, alias="LDAPAUTH_VERBOSE")

    class Config:
        populate_by_name = True

    @field_validator("url", "admin_dn", "search_base", "search_filter")
    @classmethod
    def _not_empty(cls, v: str) -> str:
        v = (v or "").strip()
        if not v:
            raise ValueError("must not be empty")
        return v

    @property
    def connection_params(self) -> ConnectionParams:
        return ConnectionParams(
            url=self.url,
            tls_options=dict(self.tls_options) if self.tls_options else None,
            connect_timeout=self.connect_timeout,
            timeout=self.timeout,
        )

    @property
    def admin_credentials(self) -> Credentials:
        return Credentials(dn=self.admin_dn, password=self.admin_password)


def build_settings(**values: Any) -> LdapAuthSettings:
    """Construct settings (kwargs override the environment), raising our ValidationError."""
    try:
        return LdapAuthSettings(**values)
    except PydanticValidationError as e:
        raise ValidationError(str(e)) from e


@lru_cache(maxsize=1)
def get_settings() -> LdapAuthSettings:
    return build_settings()
