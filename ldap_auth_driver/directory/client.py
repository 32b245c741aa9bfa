from __future__ import annotations

import logging
import threading
from typing import Optional, Sequence

from ldap3 import Server, Connection, SUBTREE, DEREF_ALWAYS, DEREF_NEVER
from ldap3.core.exceptions import LDAPException

from ..exceptions import DirectoryBindError, DirectoryConnectionError
from ..settings import LdapSettings
from .models import DirectoryEntry
from .utils import build_server_uri, service_bind_dn

log = logging.getLogger(__name__)


class DirectoryClient:
    """Thin wrapper over ldap3 holding one shared service connection.

    The shared connection is opened by `open()` and serialized with a lock,
    so one client can serve concurrent requests. Password checks bind on
    their own short-lived connection and never change the identity of the
    shared one.
    """

    def __init__(self, settings: LdapSettings) -> None:
        self.settings = settings
        self.uri = build_server_uri(settings.host)
        self.server = Server(self.uri, connect_timeout=settings.connect_timeout)
        self._conn: Connection | None = None
        self._lock = threading.Lock()

    def _connection(self, user: Optional[str] = None, password: Optional[str] = None) -> Connection:
        return Connection(
            self.server,
            user=user,
            password=password,
            version=self.settings.version,
            auto_bind=False,
            auto_referrals=False,
            receive_timeout=self.settings.timeout,
        )

    @property
    def is_open(self) -> bool:
        return self._conn is not None

    def open(self) -> None:
        """Connect and bind with the service account (anonymous when not configured)."""
        if self._conn is not None:
            return
        s = self.settings
        bind_dn = service_bind_dn(s.username, s.rdn)
        if bind_dn and s.password:
            conn = self._connection(bind_dn, s.password)
        else:
            bind_dn = ""
            conn = self._connection()

        try:
            conn.open()
        except LDAPException as e:
            raise DirectoryConnectionError(f"Could not connect to LDAP host {self.uri}: {e}") from e

        try:
            ok = bool(conn.bind())
        except LDAPException as e:
            self._safe_unbind(conn)
            raise DirectoryBindError(f"Could not bind to directory: {e}") from e
        if not ok:
            desc = (conn.result or {}).get("description", "") if isinstance(conn.result, dict) else ""
            self._safe_unbind(conn)
            raise DirectoryBindError(f"Could not bind to directory: {desc or 'bind rejected'}")

        log.info("Connected to %s (%s bind)", self.uri, "service" if bind_dn else "anonymous")
        self._conn = conn

    def close(self) -> None:
        with self._lock:
            conn, self._conn = self._conn, None
        if conn is not None:
            self._safe_unbind(conn)

    def search(
        self,
        search_filter: str,
        attributes: Optional[Sequence[str]] = None,
        *,
        base: str = "",
        size_limit: int = 0,
        deref_always: bool = True,
    ) -> list[DirectoryEntry]:
        """Subtree search under `base` (default: configured basedn).

        Request-time failures are logged and reported as an empty result.
        """
        base = base or self.settings.basedn
        attrs = list(attributes) if attributes else ["*"]
        with self._lock:
            conn = self._conn
            if conn is None:
                log.warning("Directory search attempted on a closed client")
                return []
            try:
                conn.search(
                    search_base=base,
                    search_filter=search_filter,
                    search_scope=SUBTREE,
                    dereference_aliases=DEREF_ALWAYS if deref_always else DEREF_NEVER,
                    attributes=attrs,
                    size_limit=size_limit,
                    time_limit=int(self.settings.timeout),
                )
            except LDAPException:
                log.warning("Directory search failed: base=%s filter=%s", base, search_filter, exc_info=True)
                return []
            return [
                DirectoryEntry.from_raw(e.entry_dn, e.entry_attributes_as_dict)
                for e in conn.entries
            ]

    def bind(self, dn: str, password: str) -> bool:
        """True iff the directory accepts `password` for `dn`."""
        conn: Connection | None = None
        try:
            conn = self._connection(dn, password)
            conn.open()
            return bool(conn.bind())
        except LDAPException as e:
            log.info("Bind failed for %s: %s", dn, e)
            return False
        finally:
            if conn is not None:
                self._safe_unbind(conn)

    @staticmethod
    def _safe_unbind(conn: Connection) -> None:
        try:
            conn.unbind()
        except LDAPException:
            log.debug("unbind failed", exc_info=True)

    def __enter__(self) -> "DirectoryClient":
        self.open()
        return self

    def __exit__(self, *exc) -> None:
        self.close()
