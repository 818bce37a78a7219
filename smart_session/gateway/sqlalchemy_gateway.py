"""SQLAlchemy-backed database gateway.

Statements arrive as SQL text with `:name` placeholders and are run through
`sqlalchemy.text()` on a caller-owned Connection, so the gateway works with
any dialect SQLAlchemy supports (PostgreSQL and SQLite are exercised).
"""

from __future__ import annotations

import datetime as dt
from typing import Any, List, Mapping, Optional, Sequence

from sqlalchemy import DateTime, bindparam, literal, text
from sqlalchemy.engine import Connection

from smart_session.gateway.base import DatabaseGateway
from smart_session.utils.logging_utils import get_tagged_logger

logger = get_tagged_logger(__name__, tag="gateway/sqlalchemy")


class SqlAlchemyGateway(DatabaseGateway):
    """Run session statements on a SQLAlchemy Connection."""

    def __init__(
        self,
        connection: Connection,
        *,
        table_name: str = "sessions",
        locking_enabled: bool = False,
    ) -> None:
        """Bind to an open connection; transactions stay with the caller."""
        self.connection = connection
        self._table_name = table_name
        self._locking_enabled = locking_enabled
        self._last_row_id: Any = None

    @property
    def table_name(self) -> str:
        return self._table_name

    @property
    def locking_enabled(self) -> bool:
        return self._locking_enabled

    @property
    def dialect_name(self) -> str:
        return self.connection.dialect.name

    @staticmethod
    def _compile(statement: str, params: Mapping[str, Any]):
        """Wrap SQL text, typing datetime parameters so every driver gets a native timestamp."""
        clause = text(statement)
        typed = [
            bindparam(key, type_=DateTime(timezone=True))
            for key, value in params.items()
            if isinstance(value, dt.datetime)
        ]
        if typed:
            clause = clause.bindparams(*typed)
        return clause

    def quote(self, value: Any) -> str:
        """Render `value` as a literal in the connection's dialect."""
        compiled = literal(value).compile(
            dialect=self.connection.dialect,
            compile_kwargs={"literal_binds": True},
        )
        return str(compiled)

    def execute(self, statement: str, params: Optional[Mapping[str, Any]] = None) -> int:
        """Run a write statement and return how many rows it touched."""
        params = dict(params or {})
        logger.debug(f"Executing statement: {statement}")
        result = self.connection.execute(self._compile(statement, params), params)
        if statement.lstrip().upper().startswith("INSERT"):
            self._last_row_id = result.lastrowid
        return result.rowcount

    def query(self, statement: str, params: Optional[Mapping[str, Any]] = None) -> List[Sequence[Any]]:
        """Run a SELECT and return its rows as tuples."""
        params = dict(params or {})
        logger.debug(f"Executing query: {statement}")
        result = self.connection.execute(self._compile(statement, params), params)
        return [tuple(row) for row in result.all()]

    def last_generated_key(self) -> Any:
        """Return the id assigned by the last INSERT on this connection."""
        if self.dialect_name == "postgresql":
            return self.connection.execute(text("SELECT lastval()")).scalar_one()
        return self._last_row_id

    def row_lock_clause(self) -> str:
        # SQLite has no row locks; writers serialize on the database file
        if self.dialect_name == "sqlite":
            return ""
        return " FOR UPDATE"
