import os
import tempfile
import unittest

from sqlalchemy import create_engine, text
from sqlalchemy.exc import OperationalError

from smart_session.gateway.sqlalchemy_gateway import SqlAlchemyGateway
from smart_session.session_record import SessionRecord, UnsavedSessionError


def create_sessions_table(conn, with_lock_version):
    lock_column = ", lock_version INTEGER NOT NULL DEFAULT 0" if with_lock_version else ""
    conn.execute(
        text(
            "CREATE TABLE sessions ("
            " id INTEGER PRIMARY KEY AUTOINCREMENT,"
            " session_id VARCHAR(255) NOT NULL,"
            " data TEXT,"
            " created_at DATETIME,"
            " updated_at DATETIME"
            f"{lock_column})"
        )
    )


class _SqliteCase(unittest.TestCase):
    locking_enabled = False

    def setUp(self):
        self.engine = create_engine("sqlite://", future=True)
        self.conn = self.engine.connect()
        create_sessions_table(self.conn, with_lock_version=self.locking_enabled)
        self.gateway = SqlAlchemyGateway(self.conn, table_name="sessions", locking_enabled=self.locking_enabled)

    def tearDown(self):
        self.conn.close()
        self.engine.dispose()

    def stored_data(self, session_id):
        return self.conn.execute(
            text("SELECT data FROM sessions WHERE session_id = :sid"), {"sid": session_id}
        ).scalar_one()


class TestSqliteWithoutLocking(_SqliteCase):
    def test_save_then_lookup(self):
        record = SessionRecord.create_session(self.gateway, "abc", "x")
        record.save("x")
        self.assertEqual(record.id, 1)

        fetched = SessionRecord.find_by_session_id(self.gateway, "abc")
        self.assertEqual(fetched.id, 1)
        self.assertEqual(fetched.data, "x")
        self.assertEqual(fetched.lock_version, 0)

    def test_timestamps_are_written(self):
        SessionRecord(self.gateway, "abc", "x").save("x")
        created, updated = self.conn.execute(text("SELECT created_at, updated_at FROM sessions")).one()
        self.assertIsNotNone(created)
        self.assertEqual(created, updated)

    def test_last_write_wins(self):
        SessionRecord(self.gateway, "abc", "x").save("x")
        first = SessionRecord.find_by_session_id(self.gateway, "abc")
        second = SessionRecord.find_by_session_id(self.gateway, "abc")
        first.save("one")
        second.save("two")
        self.assertEqual(self.stored_data("abc"), "two")
        self.assertEqual(SessionRecord.find_by_id(self.gateway, first.id).data, "two")

    def test_locked_lookup_runs_on_sqlite(self):
        SessionRecord(self.gateway, "abc", "x").save("x")
        record = SessionRecord.find_by_session_id(self.gateway, "abc", lock=True)
        self.assertEqual(record.data, "x")
        self.assertEqual(SessionRecord.find_by_id(self.gateway, record.id, lock=True).session_id, "abc")

    def test_binary_payload_passes_through(self):
        payload = b"\x80\x04\x95marshalled"
        SessionRecord(self.gateway, "bin", payload).save(payload)
        self.assertEqual(SessionRecord.find_by_session_id(self.gateway, "bin").data, payload)

    def test_destroy_and_delete_all(self):
        for sid in ("a", "b", "c"):
            SessionRecord(self.gateway, sid, sid).save(sid)

        self.assertEqual(SessionRecord.find_by_session_id(self.gateway, "a").destroy(), 1)
        self.assertIsNone(SessionRecord.find_by_session_id(self.gateway, "a"))
        self.assertIsNotNone(SessionRecord.find_by_session_id(self.gateway, "b"))

        removed = SessionRecord.delete_all(self.gateway, f"session_id = {self.gateway.quote('b')}")
        self.assertEqual(removed, 1)

        self.assertEqual(SessionRecord.delete_all(self.gateway), 1)
        for sid in ("a", "b", "c"):
            self.assertIsNone(SessionRecord.find_by_session_id(self.gateway, sid))

    def test_locking_enabled_without_lock_version_column_raises(self):
        SessionRecord(self.gateway, "abc", "x").save("x")
        locking_gateway = SqlAlchemyGateway(self.conn, table_name="sessions", locking_enabled=True)
        with self.assertRaises(OperationalError):
            SessionRecord.find_by_session_id(locking_gateway, "abc")


class TestSqliteWithLocking(_SqliteCase):
    locking_enabled = True

    def test_optimistic_conflict_scenario(self):
        record = SessionRecord(self.gateway, "abc", "x")
        record.save("x")
        self.assertEqual((record.id, record.lock_version), (1, 0))
        stale = SessionRecord.find_by_session_id(self.gateway, "abc")

        self.assertTrue(record.save_optimistically("y"))
        self.assertEqual(record.lock_version, 1)
        self.assertEqual(self.stored_data("abc"), "y")

        self.assertFalse(stale.save_optimistically("z"))
        self.assertEqual(stale.lock_version, 0)
        self.assertEqual(self.stored_data("abc"), "y")

    def test_unsaved_record_cannot_save_optimistically(self):
        with self.assertRaises(UnsavedSessionError):
            SessionRecord(self.gateway, "abc", "x").save_optimistically("y")
        self.assertIsNone(SessionRecord.find_by_session_id(self.gateway, "abc"))

    def test_unconditional_save_advances_stored_version(self):
        record = SessionRecord(self.gateway, "abc", "x")
        record.save("x")
        record.save("y")
        fetched = SessionRecord.find_by_session_id(self.gateway, "abc", lock=True)
        self.assertEqual(fetched.lock_version, 1)
        self.assertEqual(record.lock_version, 1)
        self.assertTrue(fetched.save_optimistically("z"))
        self.assertFalse(record.save_optimistically("stale"))
        self.assertEqual(self.stored_data("abc"), "z")


class TestSqliteAcrossConnections(unittest.TestCase):
    def setUp(self):
        self.tmpdir = tempfile.TemporaryDirectory()
        self.engine = create_engine(f"sqlite:///{os.path.join(self.tmpdir.name, 'sessions.db')}", future=True)
        with self.engine.begin() as conn:
            create_sessions_table(conn, with_lock_version=True)

    def tearDown(self):
        self.engine.dispose()
        self.tmpdir.cleanup()

    def test_second_connection_loses_race(self):
        with self.engine.connect() as conn_a, self.engine.connect() as conn_b:
            gw_a = SqlAlchemyGateway(conn_a, locking_enabled=True)
            gw_b = SqlAlchemyGateway(conn_b, locking_enabled=True)

            writer_a = SessionRecord(gw_a, "shared", "v0")
            writer_a.save("v0")
            conn_a.commit()

            writer_b = SessionRecord.find_by_session_id(gw_b, "shared")
            conn_b.commit()

            self.assertTrue(writer_a.save_optimistically("from-a"))
            conn_a.commit()

            self.assertFalse(writer_b.save_optimistically("from-b"))
            conn_b.commit()

            reloaded = SessionRecord.find_by_session_id(gw_b, "shared")
            self.assertEqual(reloaded.data, "from-a")
            self.assertEqual(reloaded.lock_version, 1)


if __name__ == "__main__":
    unittest.main()
