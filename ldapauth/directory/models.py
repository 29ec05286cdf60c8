from __future__ import annotations

import copy
from dataclasses import dataclass, field
from typing import Any, Iterator, Mapping


@dataclass(frozen=True)
class Credentials:
    dn: str
    password: str = field(repr=False)


@dataclass(frozen=True)
class ConnectionParams:
    """Everything needed to open a transport to the directory, minus identity."""

    url: str
    tls_options: dict[str, Any] | None = None
    connect_timeout: float | None = None
    timeout: float | None = None


@dataclass
class SearchResult:
    status: int
    entries: list[DirectoryEntry]
    message: str = ""


@dataclass
class DirectoryEntry:
    dn: str
    attributes: dict[str, Any]


@dataclass
class UserRecord(Mapping[str, Any]):
    """A resolved directory entry.

    Behaves as a read-only mapping of attribute names to values in which `dn`
    is always present, so `dict(record)` gives `{"dn": ..., "uid": ...}`.
    """

    dn: str
    attributes: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_entry(cls, entry: DirectoryEntry) -> UserRecord:
        attrs = {k: v for k, v in entry.attributes.items() if k.lower() != "dn"}
        return cls(dn=entry.dn, attributes=attrs)

    def __getitem__(self, key: str) -> Any:
        if key == "dn":
            return self.dn
        return self.attributes[key]

    def __iter__(self) -> Iterator[str]:
        yield "dn"
        yield from self.attributes

    def __len__(self) -> int:
        return len(self.attributes) + 1

    def to_dict(self) -> dict[str, Any]:
        return dict(self)

    def copy(self) -> UserRecord:
        """Independent copy; multi-valued attributes are copied too."""
        return UserRecord(dn=self.dn, attributes=copy.deepcopy(self.attributes))
