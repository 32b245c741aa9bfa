from __future__ import annotations

import fnmatch

import pytest

from ldap_auth_driver.bootstrap import ensure_schema
from ldap_auth_driver.db import make_engine
from ldap_auth_driver.directory import DirectoryEntry, parse_filter
from ldap_auth_driver.directory.filters import And, Comparison, Equality, Not, Or, Present, Substring
from ldap_auth_driver.exceptions import DirectoryConnectionError
from ldap_auth_driver.settings import LdapSettings
from ldap_auth_driver.store import UserStore


ALICE_DN = "uid=alice,ou=people,dc=example,dc=org"
BOB_DN = "uid=bob,ou=people,dc=example,dc=org"


def _matches(node, entry: DirectoryEntry) -> bool:
    if isinstance(node, And):
        return all(_matches(c, entry) for c in node.children)
    if isinstance(node, Or):
        return any(_matches(c, entry) for c in node.children)
    if isinstance(node, Not):
        return not _matches(node.child, entry)
    if isinstance(node, Present):
        return bool(entry.get(node.attribute))
    if isinstance(node, Equality):
        return any(v.lower() == node.value.lower() for v in entry.get(node.attribute))
    if isinstance(node, Substring):
        parts = [node.initial, *node.any, node.final]
        pattern = "*".join(p.replace("[", "[[]").replace("?", "[?]") for p in parts).lower()
        return any(fnmatch.fnmatchcase(v.lower(), pattern) for v in entry.get(node.attribute))
    if isinstance(node, Comparison):
        return False
    raise AssertionError(f"unexpected filter node {node!r}")


class FakeDirectory:
    """In-memory stand-in for DirectoryClient that evaluates real filter strings."""

    def __init__(self, entries=(), passwords=None) -> None:
        self.entries = list(entries)
        self.passwords = dict(passwords or {})
        self.available = True
        self.is_open = False
        self.closed = False
        self.searches: list[str] = []
        self.binds: list[tuple[str, str]] = []

    def open(self) -> None:
        if not self.available:
            raise DirectoryConnectionError("Could not connect to LDAP host ldap://ldap.example.org")
        self.is_open = True

    def close(self) -> None:
        self.is_open = False
        self.closed = True

    def search(self, search_filter, attributes=None, *, base="", size_limit=0, deref_always=True):
        self.searches.append(search_filter)
        if not self.available:
            return []
        tree = parse_filter(search_filter)
        hits = [e for e in self.entries if _matches(tree, e)]
        return hits[:size_limit] if size_limit else hits

    def bind(self, dn, password) -> bool:
        self.binds.append((dn, password))
        if not self.available:
            return False
        return bool(password) and self.passwords.get(dn) == password


def make_entries() -> list[DirectoryEntry]:
    return [
        DirectoryEntry(ALICE_DN, {
            "uid": ["alice"],
            "cn": ["Alice Liddell"],
            "mail": ["alice@example.org"],
            "objectClass": ["top", "person"],
        }),
        DirectoryEntry(BOB_DN, {
            "uid": ["bob"],
            "cn": ["Bob Builder"],
            "mail": ["bob@example.org"],
            "objectClass": ["top", "person"],
        }),
        DirectoryEntry("uid=dup,ou=people,dc=example,dc=org", {
            "uid": ["dup"], "cn": ["Dup One"], "objectClass": ["person"],
        }),
        DirectoryEntry("uid=dup,ou=staff,dc=example,dc=org", {
            "uid": ["dup"], "cn": ["Dup Two"], "objectClass": ["person"],
        }),
        DirectoryEntry("cn=printer,ou=devices,dc=example,dc=org", {
            "uid": ["printer"], "cn": ["printer"], "objectClass": ["device"],
        }),
    ]


PASSWORDS = {ALICE_DN: "wonderland", BOB_DN: "builder"}


@pytest.fixture
def make_settings():
    def _make(**overrides) -> LdapSettings:
        values = dict(
            host="ldap.example.org",
            basedn="dc=example,dc=org",
            filter="(objectClass=person)",
            login_attribute="uid",
            user_id_attribute="uid",
            user_attributes={"cn": "name", "mail": "email"},
            secret_key="test-secret",
        )
        values.update(overrides)
        return LdapSettings(_env_file=None, **values)

    return _make


@pytest.fixture
def directory() -> FakeDirectory:
    return FakeDirectory(make_entries(), PASSWORDS)


@pytest.fixture
def store() -> UserStore:
    engine = make_engine("sqlite://")
    ensure_schema(engine)
    return UserStore(engine)
