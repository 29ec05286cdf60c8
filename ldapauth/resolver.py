from __future__ import annotations

import logging
from typing import Optional

from .directory import UserRecord
from .directory.utils import render_user_filter
from .errors import (
    AmbiguousUserError,
    DirectoryConnectionError,
    LdapAuthError,
    NotConnectedError,
    SearchError,
    ValidationError,
)
from .session import AdminSession

log = logging.getLogger(__name__)


class UserResolver:
    def __init__(
        self,
        session: AdminSession,
        search_base: str,
        search_filter: str,
        attributes: Optional[list[str]] = None,
    ) -> None:
        self.session = session
        self.search_base = search_base
        self.search_filter = search_filter
        self.attributes = attributes

    async def find_user(self, username: str) -> Optional[UserRecord]:
        """Find the single entry for `username`.

        Returns None when nothing matches; raises AmbiguousUserError for more
        than one match and SearchError when the search itself fails. Losing
        the admin connection mid-search is NotConnectedError.
        """
        if not username:
            raise ValidationError("empty username")
        client = self.session.require_client()

        flt = render_user_filter(self.search_filter, username)
        try:
            result = await client.search(self.search_base, flt, self.attributes)
        except SearchError:
            log.debug("ldap authenticate: search error for %r", flt, exc_info=True)
            raise
        except DirectoryConnectionError as e:
            # The admin client is gone; the session is already reconnecting.
            log.debug("ldap authenticate: admin connection lost during search: %s", e)
            raise NotConnectedError(f"LDAP connection lost, reconnecting: {e}") from e
        except LdapAuthError as e:
            log.debug("ldap authenticate: search failed for %r: %s", flt, e)
            raise SearchError(f"search for {username!r} failed: {e}") from e

        if result.status != 0:
            msg = f"non-zero status from LDAP search: {result.status}"
            if result.message:
                msg += f" ({result.message})"
            log.debug("ldap authenticate: %s", msg)
            raise SearchError(msg)

        if not result.entries:
            return None
        if len(result.entries) > 1:
            raise AmbiguousUserError(username, len(result.entries))
        return UserRecord.from_entry(result.entries[0])
