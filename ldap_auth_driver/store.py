from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from typing import Any, Iterator

from sqlalchemy import MetaData, Table, insert, select, update
from sqlalchemy.engine import Engine
from sqlalchemy.exc import NoSuchTableError
from sqlalchemy.orm import Session

from .db import Base, make_session_factory
from .exceptions import ConfigurationError

log = logging.getLogger(__name__)


class UserStore:
    """Row-level access to the table that local users are linked through.

    Works on any table: declared models are used as-is, anything else is
    reflected from the database on first use. Rows come back as plain dicts.
    """

    def __init__(self, engine: Engine) -> None:
        self.engine = engine
        self.session_factory = make_session_factory(engine)
        self._tables: dict[str, Table] = {}
        self._lock = threading.Lock()

    @contextmanager
    def session(self) -> Iterator[Session]:
        db = self.session_factory()
        try:
            yield db
        finally:
            db.close()

    def table(self, name: str) -> Table:
        with self._lock:
            t = self._tables.get(name)
            if t is not None:
                return t
            t = Base.metadata.tables.get(name)
            if t is None:
                try:
                    t = Table(name, MetaData(), autoload_with=self.engine)
                except NoSuchTableError:
                    raise ConfigurationError(f"user table {name!r} does not exist") from None
            self._tables[name] = t
            return t

    def primary_key_of(self, table: str) -> str:
        cols = list(self.table(table).primary_key.columns)
        if len(cols) != 1:
            raise ConfigurationError(f"user table {table!r} needs a single-column primary key")
        return cols[0].name

    def has_column(self, table: str, column: str) -> bool:
        return column in self.table(table).c

    def _column(self, table: str, column: str):
        t = self.table(table)
        if column not in t.c:
            raise ConfigurationError(f"user table {table!r} has no column {column!r}")
        return t.c[column]

    def _coerce_pk(self, table: str, value: Any) -> Any:
        col = self._column(table, self.primary_key_of(table))
        try:
            py_type = col.type.python_type
        except NotImplementedError:
            return value
        if py_type is int and not isinstance(value, int):
            try:
                return int(str(value).strip())
            except ValueError:
                return None
        return value

    def find_by_id(self, table: str, id: Any) -> dict | None:
        pk = self.primary_key_of(table)
        value = self._coerce_pk(table, id)
        if value is None:
            return None
        return self.find_where(table, pk, value)

    def find_where(self, table: str, column: str, value: Any) -> dict | None:
        col = self._column(table, column)
        stmt = select(self.table(table)).where(col == value).limit(1)
        with self.session() as db:
            row = db.execute(stmt).mappings().first()
            return dict(row) if row is not None else None

    def insert(self, table: str, fields: dict[str, Any]) -> dict:
        t = self.table(table)
        values = self._known_columns(table, fields)
        with self.session() as db:
            result = db.execute(insert(t).values(**values))
            db.commit()
            pk_value = result.inserted_primary_key[0]
        log.info("Created local user row in %s (id=%s)", table, pk_value)
        row = self.find_by_id(table, pk_value)
        if row is None:
            raise LookupError(f"inserted row {pk_value!r} not found in {table!r}")
        return row

    def save(self, table: str, id: Any, fields: dict[str, Any]) -> int:
        """Update one row by primary key; returns the number of rows touched."""
        t = self.table(table)
        pk = self.primary_key_of(table)
        values = self._known_columns(table, fields)
        if not values:
            return 0
        with self.session() as db:
            result = db.execute(update(t).where(t.c[pk] == self._coerce_pk(table, id)).values(**values))
            db.commit()
            return int(result.rowcount or 0)

    def get_model(self, model: type, id: Any) -> Any:
        with self.session() as db:
            return db.get(model, self._coerce_pk(model.__tablename__, id))

    def _known_columns(self, table: str, fields: dict[str, Any]) -> dict[str, Any]:
        t = self.table(table)
        values: dict[str, Any] = {}
        for k, v in fields.items():
            if k in t.c:
                values[k] = v
            else:
                log.debug("Ignoring unknown column %s for table %s", k, table)
        return values
