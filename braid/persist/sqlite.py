from __future__ import annotations

import logging
import queue
import sqlite3
import threading
import time
from collections.abc import Callable

from braid.ledger.transactions import LedgerTransaction
from braid.persist.base import Persistence

logger = logging.getLogger(__name__)


class SqlitePersistence(Persistence):
    def __init__(self, db_path: str) -> None:
        self.db_path = db_path
        self._pragmas = (
            "PRAGMA journal_mode=WAL",
            "PRAGMA synchronous=NORMAL",
            "PRAGMA busy_timeout=5000",
        )
        self._local = threading.local()
        self._init_db()
        self._write_queue: queue.Queue[
            tuple[Callable[[sqlite3.Connection], object], threading.Event, dict[str, object]] | None
        ] = queue.Queue()
        self._writer_stop = threading.Event()
        self._writer_thread = threading.Thread(
            target=self._writer_loop, name="braid-outbox-writer", daemon=True
        )
        self._writer_thread.start()

    def _writer_loop(self) -> None:
        conn = sqlite3.connect(self.db_path)
        self._apply_pragmas(conn)
        while True:
            task = self._write_queue.get()
            if task is None:
                self._write_queue.task_done()
                break
            fn, event, holder = task
            try:
                holder["result"] = fn(conn)
                conn.commit()
            except Exception as exc:
                conn.rollback()
                holder["error"] = exc
                logger.exception("Outbox write failed")
            finally:
                event.set()
                self._write_queue.task_done()
        conn.close()

    def _run_write(self, fn: Callable[[sqlite3.Connection], object], wait: bool = True):
        if self._writer_stop.is_set():
            raise RuntimeError("Outbox writer is closed")
        event = threading.Event()
        holder: dict[str, object] = {"result": None, "error": None}
        self._write_queue.put((fn, event, holder))
        if not wait:
            return None
        event.wait()
        if holder["error"] is not None:
            raise holder["error"]
        return holder["result"]

    def flush(self) -> None:
        self._write_queue.join()

    def _init_db(self) -> None:
        conn = self._get_conn()
        conn.execute("""
                CREATE TABLE IF NOT EXISTS ledger_outbox (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    kind TEXT NOT NULL,
                    sender TEXT NOT NULL,
                    receiver TEXT NOT NULL,
                    amount REAL NOT NULL,
                    data BLOB NOT NULL,
                    payload BLOB NOT NULL,
                    created_at INTEGER NOT NULL
                )
                """)
        conn.execute("""
                CREATE TABLE IF NOT EXISTS turn_log (
                    turn INTEGER PRIMARY KEY,
                    player_id INTEGER NOT NULL,
                    treasure REAL NOT NULL,
                    commitment TEXT NOT NULL,
                    created_at INTEGER NOT NULL
                )
                """)
        conn.execute("CREATE INDEX IF NOT EXISTS idx_outbox_sender ON ledger_outbox(sender, id)")
        conn.commit()

    def _apply_pragmas(self, conn: sqlite3.Connection) -> None:
        for pragma in self._pragmas:
            conn.execute(pragma)

    def _get_conn(self) -> sqlite3.Connection:
        conn = getattr(self._local, "conn", None)
        if conn is None:
            conn = sqlite3.connect(self.db_path)
            self._apply_pragmas(conn)
            self._local.conn = conn
        return conn

    def close(self) -> None:
        self.flush()
        self._writer_stop.set()
        self._write_queue.put(None)
        self._writer_thread.join(timeout=2)
        conn = getattr(self._local, "conn", None)
        if conn is not None:
            conn.close()
            self._local.conn = None

    def record_transaction(self, tx: LedgerTransaction) -> None:
        row = (
            tx.kind.value,
            tx.sender,
            tx.receiver,
            tx.amount,
            tx.data,
            tx.serialize(),
            int(time.time()),
        )

        def _task(conn: sqlite3.Connection) -> None:
            conn.execute(
                "INSERT INTO ledger_outbox(kind, sender, receiver, amount, data, payload, created_at) "
                "VALUES (?, ?, ?, ?, ?, ?, ?)",
                row,
            )

        self._run_write(_task, wait=False)

    def list_transactions(self, limit: int = 100) -> list[dict]:
        conn = self._get_conn()
        rows = conn.execute(
            "SELECT id, kind, sender, receiver, amount, data, created_at "
            "FROM ledger_outbox ORDER BY id ASC LIMIT ?",
            (limit,),
        ).fetchall()
        return [
            {
                "id": row[0],
                "kind": row[1],
                "sender": row[2],
                "receiver": row[3],
                "amount": row[4],
                "data": bytes(row[5]).hex(),
                "created_at": row[6],
            }
            for row in rows
        ]

    def load_transaction(self, tx_id: int) -> LedgerTransaction | None:
        conn = self._get_conn()
        row = conn.execute("SELECT payload FROM ledger_outbox WHERE id = ?", (tx_id,)).fetchone()
        if not row:
            return None
        return LedgerTransaction.deserialize(bytes(row[0]))

    def record_turn(self, turn: int, player_id: int, treasure: float, commitment: bytes) -> None:
        created_at = int(time.time())

        def _task(conn: sqlite3.Connection) -> None:
            conn.execute(
                "INSERT OR IGNORE INTO turn_log(turn, player_id, treasure, commitment, created_at) "
                "VALUES (?, ?, ?, ?, ?)",
                (turn, player_id, treasure, commitment.hex(), created_at),
            )

        self._run_write(_task, wait=False)

    def get_turns(self, start_turn: int = 0, limit: int = 100) -> list[dict]:
        conn = self._get_conn()
        rows = conn.execute(
            "SELECT turn, player_id, treasure, commitment FROM turn_log WHERE turn >= ? "
            "ORDER BY turn ASC LIMIT ?",
            (start_turn, limit),
        ).fetchall()
        return [
            {"turn": row[0], "player_id": row[1], "treasure": row[2], "commitment": row[3]}
            for row in rows
        ]
