from __future__ import annotations

from typing import Any

USERNAME_TOKEN = "{{username}}"


def escape_ldap_filter_value(value: str) -> str:
    """RFC 4515 escaping for LDAP filter values."""
    out: list[str] = []
    for ch in value:
        if ch == "\\":
            out.append("\\5c")
        elif ch == "*":
            out.append("\\2a")
        elif ch == "(":
            out.append("\\28")
        elif ch == ")":
            out.append("\\29")
        elif ch == "\x00":
            out.append("\\00")
        else:
            out.append(ch)
    return "".join(out)


def render_user_filter(template: str, username: str) -> str:
    """Interpolate an escaped username into every `{{username}}` token."""
    return template.replace(USERNAME_TOKEN, escape_ldap_filter_value(username))


def flatten_attributes(attrs: dict[str, Any]) -> dict[str, Any]:
    """Collapse single-valued attribute lists to scalars; empty lists are dropped."""
    out: dict[str, Any] = {}
    for k, v in (attrs or {}).items():
        if isinstance(v, (list, tuple)):
            if not v:
                continue
            out[k] = v[0] if len(v) == 1 else list(v)
        else:
            out[k] = v
    return out
