import pytest

from ldap_auth_driver.guard import INVALID_CREDENTIALS, SessionGuard
from ldap_auth_driver.resolver import CredentialResolver
from ldap_auth_driver.users import LinkedUser, TransientUser


@pytest.fixture
def guard(make_settings, directory):
    return SessionGuard(CredentialResolver(make_settings(), directory))


@pytest.fixture
def db_guard(make_settings, directory, store):
    return SessionGuard(CredentialResolver(make_settings(use_db=True), directory, store=store))


def test_attempt_success(guard):
    result = guard.attempt("alice", "wonderland")
    assert result.success
    assert isinstance(result.user, TransientUser)
    assert result.remember_token == ""


@pytest.mark.parametrize(
    "identifier, password",
    [("alice", "wrong"), ("nobody", "x"), ("dup", "x"), ("", "wonderland"), ("alice", "")],
)
def test_attempt_failures_look_the_same(guard, identifier, password):
    result = guard.attempt(identifier, password)
    assert not result.success
    assert result.user is None
    assert result.error_message == INVALID_CREDENTIALS


def test_remember_ignored_for_transient_users(guard):
    assert guard.attempt("alice", "wonderland", remember=True).remember_token == ""


def test_remember_issues_token_for_linked_user(db_guard, store):
    result = db_guard.attempt("bob", "builder", remember=True)
    assert isinstance(result.user, LinkedUser)
    assert len(result.remember_token) > 40
    assert store.find_by_id("users", result.user.id)["remember_token"] == result.remember_token

    identifier = db_guard.auth_identifier(result.user)
    assert identifier == "bob"
    recalled = db_guard.user_from_recaller(identifier, result.remember_token)
    assert recalled is not None and recalled.id == result.user.id
    assert db_guard.user_from_session(identifier).id == result.user.id


def test_logout_rotates_remember_token(db_guard):
    result = db_guard.attempt("bob", "builder", remember=True)
    db_guard.logout(result.user)
    assert db_guard.user_from_recaller("bob", result.remember_token) is None


def test_user_from_session(guard):
    assert guard.user_from_session("alice").dn.startswith("uid=alice")
    assert guard.user_from_session("") is None
    assert guard.user_from_session(None) is None
