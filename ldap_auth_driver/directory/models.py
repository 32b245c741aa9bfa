from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


@dataclass(frozen=True)
class DirectoryEntry:
    """Snapshot of one search result: DN plus attribute -> values."""

    dn: str
    attributes: Dict[str, List[str]] = field(default_factory=dict)

    @classmethod
    def from_raw(cls, dn: str, raw: Dict[str, Any]) -> "DirectoryEntry":
        attrs: Dict[str, List[str]] = {}
        for name, values in (raw or {}).items():
            if values is None:
                continue
            if not isinstance(values, (list, tuple)):
                values = [values]
            attrs[name] = [_to_str(v) for v in values]
        return cls(dn=dn, attributes=attrs)

    def get(self, name: str) -> List[str]:
        # LDAP attribute names are case-insensitive.
        if name in self.attributes:
            return list(self.attributes[name])
        key = name.lower()
        for k, v in self.attributes.items():
            if k.lower() == key:
                return list(v)
        return []

    def first(self, name: str, default: Optional[str] = None) -> Optional[str]:
        if name.lower() == "dn":
            return self.dn
        values = self.get(name)
        return values[0] if values else default


def _to_str(v: Any) -> str:
    if isinstance(v, bytes):
        return v.decode("utf-8", errors="replace")
    return str(v)
