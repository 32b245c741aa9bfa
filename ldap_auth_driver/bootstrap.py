"""Wiring of the provider's collaborators.

Everything is constructed explicitly from one `LdapSettings` instance and
passed in; nothing is looked up globally.
"""

from __future__ import annotations

from sqlalchemy.engine import Engine

from .db import Base, make_engine
from .directory import DirectoryClient
from .resolver import CredentialResolver
from .settings import LdapSettings
from .store import UserStore

from . import models  # noqa: F401  (registers tables on Base.metadata)


def ensure_schema(engine: Engine) -> None:
    """Create the package's own tables (users, login_audit) when missing."""
    Base.metadata.create_all(bind=engine)


def build_store(settings: LdapSettings) -> UserStore:
    engine = make_engine(settings.database_url)
    ensure_schema(engine)
    return UserStore(engine)


def build_resolver(settings: LdapSettings, store: UserStore | None = None) -> CredentialResolver:
    """Open the directory connection and return a ready resolver.

    Raises DirectoryConnectionError / DirectoryBindError when the directory
    is unusable, ConfigurationError when the settings are.
    """
    if store is None and settings.uses_local_store:
        store = build_store(settings)
    return CredentialResolver(settings, DirectoryClient(settings), store=store)
