"""Interface between SessionRecord and the database connection it runs on."""

from __future__ import annotations

from typing import Any, List, Mapping, Optional, Protocol, Sequence


class DatabaseGateway(Protocol):
    """Everything SessionRecord needs from a database connection.

    Implementations never start, commit or roll back transactions; callers
    wrap record operations in whatever transaction they need.
    """

    @property
    def table_name(self) -> str:
        """Name of the session table, interpolated into every statement."""
        ...

    @property
    def locking_enabled(self) -> bool:
        """Whether the table carries a `lock_version` column."""
        ...

    def quote(self, value: Any) -> str:
        """Return `value` as a SQL literal for hand-written conditions."""
        ...

    def execute(self, statement: str, params: Optional[Mapping[str, Any]] = None) -> int:
        """Run INSERT/UPDATE/DELETE and return the affected row count."""
        ...

    def query(self, statement: str, params: Optional[Mapping[str, Any]] = None) -> List[Sequence[Any]]:
        """Run a SELECT and return positional rows."""
        ...

    def last_generated_key(self) -> Any:
        """Surrogate key produced by the most recent INSERT on this connection."""
        ...

    def row_lock_clause(self) -> str:
        """Suffix that turns a SELECT into a row-locking read ('' if unsupported)."""
        ...
