from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import pytest
from ldap3 import DEREF_ALWAYS, DEREF_NEVER
from ldap3.core.exceptions import LDAPException, LDAPSocketOpenError

from ldap_auth_driver.directory import DirectoryClient
from ldap_auth_driver.exceptions import DirectoryBindError, DirectoryConnectionError


@pytest.fixture
def ldap3_conn():
    """Patch ldap3.Connection inside the client module; yields the mock class."""
    with patch("ldap_auth_driver.directory.client.Connection") as conn_cls:
        conn = MagicMock()
        conn.bind.return_value = True
        conn.result = {"result": 0, "description": "success"}
        conn.entries = []
        conn_cls.return_value = conn
        yield conn_cls


def _entry(dn, attrs):
    return SimpleNamespace(entry_dn=dn, entry_attributes_as_dict=attrs)


def test_open_anonymous_bind(make_settings, ldap3_conn):
    client = DirectoryClient(make_settings())
    client.open()
    assert client.is_open
    kwargs = ldap3_conn.call_args.kwargs
    assert kwargs["user"] is None
    assert kwargs["version"] == 3
    assert kwargs["auto_referrals"] is False
    assert client.uri == "ldap://ldap.example.org"


def test_open_service_bind(make_settings, ldap3_conn):
    s = make_settings(username="reader", password="secret", rdn="ou=services,dc=example,dc=org")
    DirectoryClient(s).open()
    kwargs = ldap3_conn.call_args.kwargs
    assert kwargs["user"] == "cn=reader,ou=services,dc=example,dc=org"
    assert kwargs["password"] == "secret"


def test_open_connection_failure_is_fatal(make_settings, ldap3_conn):
    ldap3_conn.return_value.open.side_effect = LDAPSocketOpenError("unreachable")
    with pytest.raises(DirectoryConnectionError, match="Could not connect"):
        DirectoryClient(make_settings()).open()


def test_open_bind_rejected_is_fatal(make_settings, ldap3_conn):
    conn = ldap3_conn.return_value
    conn.bind.return_value = False
    conn.result = {"result": 49, "description": "invalidCredentials"}
    with pytest.raises(DirectoryBindError, match="invalidCredentials"):
        DirectoryClient(make_settings()).open()
    conn.unbind.assert_called_once()


def test_search_maps_entries(make_settings, ldap3_conn):
    conn = ldap3_conn.return_value
    conn.entries = [_entry("uid=alice,dc=example,dc=org", {"uid": ["alice"], "cn": ["Alice"]})]
    client = DirectoryClient(make_settings(timeout=7))
    client.open()

    entries = client.search("(uid=alice)", ["uid", "cn"], size_limit=2)

    assert [e.dn for e in entries] == ["uid=alice,dc=example,dc=org"]
    assert entries[0].first("cn") == "Alice"
    kwargs = conn.search.call_args.kwargs
    assert kwargs["search_base"] == "dc=example,dc=org"
    assert kwargs["search_filter"] == "(uid=alice)"
    assert kwargs["size_limit"] == 2
    assert kwargs["time_limit"] == 7
    assert kwargs["dereference_aliases"] == DEREF_ALWAYS


def test_search_without_deref(make_settings, ldap3_conn):
    client = DirectoryClient(make_settings())
    client.open()
    client.search("(uid=alice)", deref_always=False)
    assert ldap3_conn.return_value.search.call_args.kwargs["dereference_aliases"] == DEREF_NEVER


def test_search_failure_is_empty_result(make_settings, ldap3_conn):
    ldap3_conn.return_value.search.side_effect = LDAPException("timeout")
    client = DirectoryClient(make_settings())
    client.open()
    assert client.search("(uid=alice)") == []


def test_search_on_closed_client(make_settings, ldap3_conn):
    assert DirectoryClient(make_settings()).search("(uid=alice)") == []


class _CloseOnAcquire:
    """Lock stand-in that drops the connection as it is acquired, like a concurrent close()."""

    def __init__(self, client):
        self.client = client

    def __enter__(self):
        self.client._conn = None

    def __exit__(self, *exc):
        return False


def test_search_racing_close_is_empty_result(make_settings, ldap3_conn):
    client = DirectoryClient(make_settings())
    client.open()
    client._lock = _CloseOnAcquire(client)
    assert client.search("(uid=alice)") == []
    ldap3_conn.return_value.search.assert_not_called()


def test_bind_uses_separate_connection(make_settings, ldap3_conn):
    client = DirectoryClient(make_settings())
    client.open()
    assert client.bind("uid=alice,dc=example,dc=org", "wonderland") is True
    kwargs = ldap3_conn.call_args.kwargs
    assert kwargs["user"] == "uid=alice,dc=example,dc=org"
    assert kwargs["password"] == "wonderland"
    assert ldap3_conn.call_count == 2


def test_bind_failure_is_false(make_settings, ldap3_conn):
    client = DirectoryClient(make_settings())
    ldap3_conn.return_value.bind.return_value = False
    assert client.bind("uid=alice,dc=example,dc=org", "nope") is False
    ldap3_conn.return_value.bind.side_effect = LDAPException("server down")
    assert client.bind("uid=alice,dc=example,dc=org", "wonderland") is False


def test_close_unbinds(make_settings, ldap3_conn):
    with DirectoryClient(make_settings()) as client:
        assert client.is_open
    assert not client.is_open
    ldap3_conn.return_value.unbind.assert_called()
