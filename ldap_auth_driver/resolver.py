"""Credential resolution against the directory.

`CredentialResolver` is the user provider behind the session guard: it turns
identifiers and credentials into application users and checks passwords by
binding to the directory as the user's entry.

Not-found is always ``None`` and a failed password check is always ``False``;
neither ever raises. Only construction can fail, when the directory cannot be
reached or the configuration is unusable.
"""

from __future__ import annotations

import hmac
import logging
from typing import Any, Mapping, Optional, Union

from sqlalchemy.exc import IntegrityError

from .directory import DirectoryClient, DirectoryEntry, parse_filter, with_identifier
from .exceptions import ConfigurationError
from .models import User
from .settings import LdapSettings
from .store import UserStore
from .users import ApplicationUser, Credentials, LinkedUser, TransientUser

log = logging.getLogger(__name__)

CredentialsLike = Union[Credentials, Mapping[str, Any]]


def _identifier_of(credentials: CredentialsLike) -> str:
    if isinstance(credentials, Credentials):
        return credentials.identifier
    return str(credentials.get("username") or credentials.get("identifier") or "")


def _password_of(credentials: CredentialsLike) -> str:
    if isinstance(credentials, Credentials):
        return credentials.password
    return str(credentials.get("password") or "")


class CredentialResolver:
    def __init__(
        self,
        settings: LdapSettings,
        directory: DirectoryClient,
        store: Optional[UserStore] = None,
        model: type = User,
    ) -> None:
        self.settings = settings
        self.directory = directory
        self.store = store
        self.model = model
        self.base_filter = parse_filter(settings.filter)
        self.last_resolved: Optional[ApplicationUser] = None
        self._remember_enabled = False

        if settings.uses_local_store:
            self._check_store()

        directory.open()

    def _check_store(self) -> None:
        s = self.settings
        if self.store is None:
            raise ConfigurationError("use_db/eloquent is enabled but no user store was provided")
        if s.eloquent and s.db_table != self.model.__tablename__:
            raise ConfigurationError(
                f"eloquent mode uses table {self.model.__tablename__!r}, but db_table is {s.db_table!r}"
            )
        self.store.primary_key_of(s.db_table)
        if not self.store.has_column(s.db_table, s.db_field):
            raise ConfigurationError(f"user table {s.db_table!r} has no column {s.db_field!r}")
        self._remember_enabled = self.store.has_column(s.db_table, s.remember_token_column)
        if not self._remember_enabled:
            log.warning(
                "User table %s has no %s column, remember-me tokens are disabled",
                s.db_table, s.remember_token_column,
            )

    @property
    def supports_remember(self) -> bool:
        return self._remember_enabled

    def auth_identifier(self, user: ApplicationUser) -> Any:
        """The value `resolve_by_id` / `resolve_by_token` expect for `user`.

        The local primary key in ORM model mode, the directory id otherwise.
        """
        if isinstance(user, TransientUser):
            return user.id
        if isinstance(user, LinkedUser):
            return user.primary_key if self.settings.eloquent else user.directory_id
        raise TypeError(f"unsupported user type: {type(user).__name__}")

    # -- directory search --------------------------------------------------

    def build_search_filter(self, attribute: str, identifier: str) -> str:
        return with_identifier(self.base_filter, attribute, identifier).render()

    def _requested_attributes(self) -> list[str]:
        s = self.settings
        attrs = [s.user_id_attribute, s.login_attribute, s.linking_attribute, *s.user_attributes.keys()]
        seen: dict[str, str] = {}
        for a in attrs:
            if a and a.lower() != "dn":
                seen.setdefault(a.lower(), a)
        return list(seen.values())

    def search_ldap(
        self,
        identifier: Any,
        attribute: Optional[str] = None,
        *,
        deref_always: bool = False,
    ) -> Optional[DirectoryEntry]:
        """Return the single entry matching `attribute=identifier`, else None."""
        value = str(identifier if identifier is not None else "")
        if not value:
            return None
        attribute = attribute or self.settings.user_id_attribute
        flt = self.build_search_filter(attribute, value)

        # Two results are enough to tell "exactly one" from "ambiguous".
        entries = self.directory.search(
            flt,
            self._requested_attributes(),
            size_limit=2,
            deref_always=deref_always,
        )
        if not entries:
            log.debug("No directory entry for %s", flt)
            return None
        if len(entries) > 1:
            log.warning("Ambiguous directory match for %s, denying", flt)
            return None
        return entries[0]

    # -- user construction -------------------------------------------------

    def _transient_user(self, entry: DirectoryEntry) -> TransientUser:
        params: dict[str, Any] = {
            "id": entry.first(self.settings.user_id_attribute),
            "dn": entry.dn,
        }
        for attr, field in self.settings.user_attributes.items():
            params[field] = entry.first(attr)
        return TransientUser(params)

    def _linked_user(self, row: dict, entry: DirectoryEntry) -> LinkedUser:
        table = self.settings.db_table
        pk = row[self.store.primary_key_of(table)]
        model = self.store.get_model(self.model, pk) if self.settings.eloquent else None
        return LinkedUser(
            table=table,
            primary_key=pk,
            attributes=dict(row),
            dn=entry.dn or str(row.get("ldapdn") or ""),
            directory_id=entry.first(self.settings.user_id_attribute),
            model=model,
        )

    def _linking_value(self, entry: DirectoryEntry) -> Optional[str]:
        value = entry.first(self.settings.linking_attribute)
        if not value:
            log.warning("Directory entry %s has no %s value to link on", entry.dn, self.settings.linking_attribute)
            return None
        return value

    def _find_linked_row(self, entry: DirectoryEntry) -> Optional[dict]:
        value = self._linking_value(entry)
        if value is None:
            return None
        return self.store.find_where(self.settings.db_table, self.settings.db_field, value)

    def _link_or_create(self, entry: DirectoryEntry) -> Optional[LinkedUser]:
        s = self.settings
        value = self._linking_value(entry)
        if value is None:
            return None

        row = self.store.find_where(s.db_table, s.db_field, value)
        if row is None:
            fields: dict[str, Any] = {s.db_field: value}
            for attr, field in s.user_attributes.items():
                v = entry.first(attr)
                if v is not None:
                    fields[field] = v
            if self.store.has_column(s.db_table, "ldapdn"):
                fields["ldapdn"] = entry.dn
            try:
                row = self.store.insert(s.db_table, fields)
            except IntegrityError:
                # Created concurrently by another request.
                log.info("Local user %s=%s already exists, reloading", s.db_field, value)
                row = self.store.find_where(s.db_table, s.db_field, value)
                if row is None:
                    return None
        elif self.store.has_column(s.db_table, "ldapdn") and row.get("ldapdn") != entry.dn:
            pk = row[self.store.primary_key_of(s.db_table)]
            self.store.save(s.db_table, pk, {"ldapdn": entry.dn})
            row["ldapdn"] = entry.dn

        return self._linked_user(row, entry)

    # -- provider operations -----------------------------------------------

    def resolve_by_id(self, identifier: Any) -> Optional[ApplicationUser]:
        s = self.settings
        attribute = s.user_id_attribute
        if s.eloquent:
            row = self.store.find_by_id(s.db_table, identifier)
            if row is None:
                return None
            identifier = row.get(s.db_field)
            attribute = s.linking_attribute

        entry = self.search_ldap(identifier, attribute)
        if entry is None:
            return None

        if s.uses_local_store:
            row = self._find_linked_row(entry)
            if row is None:
                return None
            return self._linked_user(row, entry)
        return self._transient_user(entry)

    def resolve_by_credentials(self, credentials: CredentialsLike) -> Optional[ApplicationUser]:
        self.last_resolved = None
        entry = self.search_ldap(_identifier_of(credentials), self.settings.login_attribute, deref_always=True)
        if entry is None:
            return None

        if self.settings.uses_local_store:
            user: Optional[ApplicationUser] = self._link_or_create(entry)
        else:
            user = self._transient_user(entry)
        self.last_resolved = user
        return user

    def validate_credentials(self, user: ApplicationUser, credentials: CredentialsLike) -> bool:
        if not isinstance(user, (TransientUser, LinkedUser)):
            raise TypeError(f"unsupported user type: {type(user).__name__}")
        password = _password_of(credentials)
        # An empty password would be an unauthenticated bind, which LDAP servers accept.
        if not password or not user.dn:
            return False
        return self.directory.bind(user.dn, password)

    def resolve_by_token(self, identifier: Any, token: str) -> Optional[ApplicationUser]:
        if not token:
            return None
        user = self.resolve_by_id(identifier)
        if not isinstance(user, LinkedUser):
            return None
        stored = user.get(self.settings.remember_token_column)
        if not stored or not hmac.compare_digest(str(stored), str(token)):
            return None
        return user

    def update_remember_token(self, user: ApplicationUser, token: str) -> None:
        if isinstance(user, TransientUser):
            return
        if not isinstance(user, LinkedUser):
            raise TypeError(f"unsupported user type: {type(user).__name__}")
        if not self._remember_enabled:
            return

        column = self.settings.remember_token_column
        touched = self.store.save(user.table, user.primary_key, {column: token})
        if touched != 1:
            log.warning("Remember token update for %s id=%s touched %d rows", user.table, user.primary_key, touched)
        user.attributes[column] = token
        if user.model is not None and hasattr(user.model, column):
            setattr(user.model, column, token)

    def close(self) -> None:
        self.directory.close()

    def __enter__(self) -> "CredentialResolver":
        return self

    def __exit__(self, *exc) -> None:
        self.close()
