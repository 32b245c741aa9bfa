from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterable, Union


@dataclass(frozen=True)
class Credentials:
    identifier: str
    password: str = field(default="", repr=False)


@dataclass
class TransientUser:
    """User built from directory attributes only; nothing is persisted."""

    attributes: dict[str, Any] = field(default_factory=dict)

    @property
    def id(self) -> Any:
        return self.attributes.get("id")

    @property
    def dn(self) -> str:
        return str(self.attributes.get("dn") or "")

    def get(self, key: str, default: Any = None) -> Any:
        return self.attributes.get(key, default)


@dataclass
class LinkedUser:
    """User backed by a row of the local user table.

    `model` holds the ORM instance when the ORM model mode is enabled.
    """

    table: str
    primary_key: Any
    attributes: dict[str, Any] = field(default_factory=dict)
    dn: str = ""
    directory_id: Any = None
    model: Any = None

    @property
    def id(self) -> Any:
        return self.primary_key

    def get(self, key: str, default: Any = None) -> Any:
        return self.attributes.get(key, default)


ApplicationUser = Union[TransientUser, LinkedUser]


def session_payload(user: ApplicationUser, identifier: Any, hidden: Iterable[str] = ()) -> dict:
    """Cookie-safe description of a user (no secrets, JSON types only).

    `identifier` is what the provider needs to find the user again; `hidden`
    names attributes that must never leave the server, such as the
    remember-token column.
    """
    secret = {h.lower() for h in hidden if h}
    if isinstance(user, LinkedUser):
        kind = "linked"
    elif isinstance(user, TransientUser):
        kind = "transient"
    else:
        raise TypeError(f"unsupported user type: {type(user).__name__}")
    return {
        "kind": kind,
        "id": identifier,
        "dn": user.dn,
        "attributes": {
            k: v
            for k, v in user.attributes.items()
            if k.lower() not in secret and isinstance(v, (str, int, float, bool, type(None)))
        },
    }
