"""SQL session record, compatible with the table layout of ORM-backed session stores.

The table is expected to have the columns `id`, `session_id`, `data`,
`created_at` and `updated_at`, plus `lock_version` when optimistic locking is
enabled. Rows written here can be read by the ORM store and vice versa.

Two write paths exist on purpose:

- `save` updates unconditionally and assumes the caller already holds the row
  (a `lock=True` lookup inside a transaction).
- `save_optimistically` compares `lock_version` and reports a lost race as
  `False` instead of overwriting.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Mapping, NamedTuple, Optional, Sequence

from smart_session.gateway.base import DatabaseGateway
from smart_session.utils.logging_utils import get_tagged_logger

logger = get_tagged_logger(__name__, tag="session_record")


class UnsavedSessionError(RuntimeError):
    """Raised when an operation needs a persisted record but got a new one."""


class SessionRow(NamedTuple):
    """One decoded row of `SELECT session_id, data, id[, lock_version]`."""
    session_id: str
    data: Any
    id: Any
    lock_version: int = 0

    @classmethod
    def decode(cls, row: Sequence[Any], locking_enabled: bool) -> Optional["SessionRow"]:
        """Decode a result row, or return None when its width doesn't match the configuration."""
        expected = 4 if locking_enabled else 3
        if row is None or len(row) != expected:
            return None
        if locking_enabled:
            session_id, data, pk, lock_version = row
            return cls(session_id, data, pk, int(lock_version or 0))
        session_id, data, pk = row
        return cls(session_id, data, pk)


def _now() -> datetime:
    return datetime.now(timezone.utc)


class SessionRecord:
    """In-memory view of one row of the session table."""

    def __init__(self, gateway: DatabaseGateway, session_id: str, data: Any) -> None:
        """Build an unsaved record; nothing touches the database until `save`."""
        self.gateway = gateway
        self._session_id = session_id
        self.data = data
        self._id = None
        self.lock_version = 0

    def __repr__(self) -> str:
        return (
            f"SessionRecord(id={self._id!r}, session_id={self._session_id!r}, lock_version={self.lock_version})"
        )

    @property
    def session_id(self) -> str:
        return self._session_id

    @property
    def id(self) -> Any:
        """Surrogate key, None until the first INSERT."""
        return self._id

    @property
    def persisted(self) -> bool:
        return self._id is not None

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    @classmethod
    def find(
        cls,
        gateway: DatabaseGateway,
        condition: str,
        params: Optional[Mapping[str, Any]] = None,
        *,
        lock: bool = False,
    ) -> Optional["SessionRecord"]:
        """Return a record built from the first row matching `condition`, or None.

        `created_at` and `updated_at` are not selected; nothing outside this
        module reads them.
        """
        columns = "session_id, data, id, lock_version" if gateway.locking_enabled else "session_id, data, id"
        statement = f"SELECT {columns} FROM {gateway.table_name} WHERE {condition}"
        if lock:
            statement += gateway.row_lock_clause()
        rows = gateway.query(statement, params)
        if not rows:
            return None
        decoded = SessionRow.decode(rows[0], gateway.locking_enabled)
        if decoded is None:
            logger.debug(
                f"Ignoring session row with {len(rows[0])} columns from '{gateway.table_name}'"
                f" (locking {'on' if gateway.locking_enabled else 'off'})"
            )
            return None
        record = cls(gateway, decoded.session_id, decoded.data)
        record._id = decoded.id
        record.lock_version = decoded.lock_version
        return record

    @classmethod
    def find_by_session_id(
        cls, gateway: DatabaseGateway, session_id: str, lock: bool = False
    ) -> Optional["SessionRecord"]:
        """Find the session stored under an external session id."""
        return cls.find(gateway, "session_id = :session_id LIMIT 1", {"session_id": session_id}, lock=lock)

    @classmethod
    def find_by_id(cls, gateway: DatabaseGateway, id: Any, lock: bool = False) -> Optional["SessionRecord"]:
        """Find a session by surrogate key; a missing or empty key returns None without a query."""
        if id is None or id == "":
            return None
        return cls.find(gateway, "id = :id", {"id": id}, lock=lock)

    @classmethod
    def create_session(cls, gateway: DatabaseGateway, session_id: str, data: Any) -> "SessionRecord":
        """Build a new, not yet persisted session; call `save` to insert it."""
        return cls(gateway, session_id, data)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def save(self, data: Any) -> None:
        """Insert the record, or overwrite its row unconditionally.

        The update path does not look at `lock_version`: with locking off the
        last writer wins, with locking on the caller is expected to hold the
        row lock from `find_by_session_id(..., lock=True)`.
        """
        gateway = self.gateway
        now = _now()
        if self._id is None:
            gateway.execute(
                f"INSERT INTO {gateway.table_name} (created_at, updated_at, session_id, data)"
                " VALUES (:created_at, :updated_at, :session_id, :data)",
                {"created_at": now, "updated_at": now, "session_id": self._session_id, "data": data},
            )
            self._id = gateway.last_generated_key()
            self.lock_version = 0
            logger.debug(f"Inserted session '{self._session_id}' as id {self._id}")
        elif gateway.locking_enabled:
            gateway.execute(
                f"UPDATE {gateway.table_name} SET updated_at = :updated_at, data = :data,"
                " lock_version = lock_version + 1 WHERE id = :id",
                {"updated_at": now, "data": data, "id": self._id},
            )
            # the row lock guarantees nobody else moved the version
            self.lock_version += 1
        else:
            gateway.execute(
                f"UPDATE {gateway.table_name} SET updated_at = :updated_at, data = :data WHERE id = :id",
                {"updated_at": now, "data": data, "id": self._id},
            )
        self.data = data

    def save_optimistically(self, data: Any) -> bool:
        """Update only if the stored `lock_version` still matches ours.

        Returns False, leaving the record untouched, when another writer got
        there first; re-fetch and retry or give up.
        """
        if self._id is None:
            raise UnsavedSessionError("cannot update unsaved session record optimistically")
        gateway = self.gateway
        affected = gateway.execute(
            f"UPDATE {gateway.table_name} SET updated_at = :updated_at, data = :data,"
            " lock_version = lock_version + 1 WHERE id = :id AND lock_version = :lock_version",
            {"updated_at": _now(), "data": data, "id": self._id, "lock_version": self.lock_version},
        )
        if affected != 1:
            logger.debug(
                f"Optimistic update of session '{self._session_id}' lost at lock_version {self.lock_version}"
            )
            return False
        self.lock_version += 1
        self.data = data
        return True

    # ------------------------------------------------------------------
    # Deletes
    # ------------------------------------------------------------------

    def destroy(self) -> int:
        """Delete every row stored under this record's session id."""
        return self.delete_all(self.gateway, "session_id = :session_id", {"session_id": self._session_id})

    @classmethod
    def delete_all(
        cls,
        gateway: DatabaseGateway,
        condition: Optional[str] = None,
        params: Optional[Mapping[str, Any]] = None,
    ) -> int:
        """Delete rows matching `condition` (every row when omitted).

        The condition is SQL supplied by the caller; bind values through
        `params` or `gateway.quote`.
        """
        statement = f"DELETE FROM {gateway.table_name}"
        if condition:
            statement += f" WHERE {condition}"
        return gateway.execute(statement, params)
