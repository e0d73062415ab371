"""SQLite persistence for structures and like tallies."""

from __future__ import annotations

import logging
import random
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

from app.adapters.storage.base import (
    AbstractStructureRepository,
    InsertOutcome,
    SampleQuery,
    Structure,
    StructureDraft,
    UserStats,
)
from app.core.errors import InvalidInputError, NotFoundError, StorageUnavailableError

logger = logging.getLogger(__name__)

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS structures (
    id         INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id    INTEGER NOT NULL,
    username   TEXT,
    map_id     INTEGER NOT NULL DEFAULT 0,
    scene      TEXT    NOT NULL,
    segment    INTEGER NOT NULL DEFAULT 0,
    prefab     TEXT    NOT NULL,
    payload    BLOB    NOT NULL,
    created_at INTEGER NOT NULL,
    likes      INTEGER NOT NULL DEFAULT 0
);
CREATE INDEX IF NOT EXISTS idx_structures_bucket
    ON structures (scene, user_id, created_at, id);
CREATE INDEX IF NOT EXISTS idx_structures_scene
    ON structures (scene, map_id);
CREATE TABLE IF NOT EXISTS users (
    user_id        INTEGER PRIMARY KEY,
    likes_sent     INTEGER NOT NULL DEFAULT 0,
    likes_received INTEGER NOT NULL DEFAULT 0
);
"""

# Columns added after the first release; applied to databases created before them.
COLUMN_MIGRATIONS: tuple[tuple[str, str, str], ...] = (
    ("structures", "likes", "INTEGER NOT NULL DEFAULT 0"),
    ("structures", "username", "TEXT"),
    ("structures", "payload", "BLOB NOT NULL DEFAULT x''"),
)

_STRUCTURE_COLUMNS = (
    "id, user_id, username, map_id, scene, segment, prefab, payload, created_at, likes"
)


def _row_to_structure(row: sqlite3.Row) -> Structure:
    return Structure(
        id=row["id"],
        owner=row["user_id"],
        scene=row["scene"],
        prefab=row["prefab"],
        payload=bytes(row["payload"]),
        created_at=row["created_at"],
        likes=row["likes"],
        map_id=row["map_id"],
        segment=row["segment"],
        username=row["username"],
    )


class SqliteStructureRepository(AbstractStructureRepository):
    """Structure repository backed by a SQLite file.

    Every unit of work opens its own connection. Writes run inside
    ``BEGIN IMMEDIATE`` so SQLite serializes writers; reads run inside a
    deferred transaction so multi-statement reads see one snapshot.
    """

    def __init__(self, db_path: Path | str, *, busy_timeout_seconds: float = 5.0) -> None:
        self._db_path = Path(db_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._busy_timeout = busy_timeout_seconds

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        try:
            conn = sqlite3.connect(
                self._db_path,
                timeout=self._busy_timeout,
                isolation_level=None,
                check_same_thread=False,
            )
        except sqlite3.Error as exc:
            logger.error("storage.connect_failed", extra={"error_type": type(exc).__name__})
            raise StorageUnavailableError() from exc

        conn.row_factory = sqlite3.Row
        try:
            yield conn
        except sqlite3.Error as exc:
            logger.error(
                "storage.query_failed",
                extra={"error_type": type(exc).__name__, "error_msg": str(exc)},
            )
            raise StorageUnavailableError() from exc
        except OverflowError as exc:
            # sqlite3 refuses Python ints outside the signed 64-bit range
            raise InvalidInputError("Integer value is out of range") from exc
        finally:
            conn.close()

    @contextmanager
    def _transaction(self, *, write: bool) -> Iterator[sqlite3.Connection]:
        with self._connect() as conn:
            conn.execute("BEGIN IMMEDIATE" if write else "BEGIN")
            try:
                yield conn
            except BaseException:
                if conn.in_transaction:
                    conn.execute("ROLLBACK")
                raise
            conn.execute("COMMIT")

    def apply_schema(self) -> None:
        """Create tables and indexes, then add any missing columns."""
        with self._connect() as conn:
            conn.executescript(SCHEMA_SQL)
        with self._transaction(write=True) as conn:
            self._apply_column_migrations(conn)

    @staticmethod
    def _apply_column_migrations(conn: sqlite3.Connection) -> None:
        for table, column, ddl in COLUMN_MIGRATIONS:
            existing = {row["name"] for row in conn.execute(f"PRAGMA table_info({table})")}
            if column in existing:
                continue
            conn.execute(f"ALTER TABLE {table} ADD COLUMN {column} {ddl}")
            logger.info("storage.migrated", extra={"table": table, "column": column})

    def insert_and_prune(
        self,
        owner: int,
        draft: StructureDraft,
        *,
        created_at: int,
        max_per_bucket: int,
    ) -> InsertOutcome:
        if max_per_bucket < 1:
            raise ValueError("max_per_bucket must be >= 1")

        with self._transaction(write=True) as conn:
            cursor = conn.execute(
                """
                INSERT INTO structures (
                    user_id, username, map_id, scene, segment, prefab, payload, created_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    owner,
                    draft.username,
                    draft.map_id,
                    draft.scene,
                    draft.segment,
                    draft.prefab,
                    sqlite3.Binary(draft.payload),
                    created_at,
                ),
            )
            new_id = cursor.lastrowid

            (count,) = conn.execute(
                "SELECT COUNT(*) FROM structures WHERE scene = ? AND user_id = ?",
                (draft.scene, owner),
            ).fetchone()

            evicted: tuple[int, ...] = ()
            overflow = count - max_per_bucket
            if overflow > 0:
                evicted = tuple(
                    row["id"]
                    for row in conn.execute(
                        """
                        SELECT id FROM structures
                        WHERE scene = ? AND user_id = ?
                        ORDER BY created_at ASC, id ASC
                        LIMIT ?
                        """,
                        (draft.scene, owner, overflow),
                    )
                )
                conn.executemany("DELETE FROM structures WHERE id = ?", [(sid,) for sid in evicted])

        structure = Structure(
            id=new_id,
            owner=owner,
            scene=draft.scene,
            prefab=draft.prefab,
            payload=draft.payload,
            created_at=created_at,
            map_id=draft.map_id,
            segment=draft.segment,
            username=draft.username,
        )
        return InsertOutcome(structure=structure, evicted_ids=evicted)

    def get(self, structure_id: int) -> Structure | None:
        with self._transaction(write=False) as conn:
            row = conn.execute(
                f"SELECT {_STRUCTURE_COLUMNS} FROM structures WHERE id = ?",
                (structure_id,),
            ).fetchone()
        return _row_to_structure(row) if row is not None else None

    def bucket(self, scene: str, owner: int) -> list[Structure]:
        with self._transaction(write=False) as conn:
            rows = conn.execute(
                f"""
                SELECT {_STRUCTURE_COLUMNS} FROM structures
                WHERE scene = ? AND user_id = ?
                ORDER BY created_at ASC, id ASC
                """,
                (scene, owner),
            ).fetchall()
        return [_row_to_structure(row) for row in rows]

    def sample(self, query: SampleQuery, rng: random.Random) -> list[Structure]:
        if query.limit < 1:
            return []

        clauses = ["scene = ?"]
        params: list[object] = [query.scene]
        if query.map_id is not None:
            clauses.append("map_id = ?")
            params.append(query.map_id)
        if query.exclude_prefabs:
            excluded = sorted(query.exclude_prefabs)
            clauses.append(f"prefab NOT IN ({', '.join('?' for _ in excluded)})")
            params.extend(excluded)

        with self._transaction(write=False) as conn:
            ids = [
                row["id"]
                for row in conn.execute(
                    f"SELECT id FROM structures WHERE {' AND '.join(clauses)}",
                    params,
                )
            ]
            picked = rng.sample(ids, min(query.limit, len(ids)))
            if not picked:
                return []
            rows = conn.execute(
                f"SELECT {_STRUCTURE_COLUMNS} FROM structures "
                f"WHERE id IN ({', '.join('?' for _ in picked)})",
                picked,
            ).fetchall()

        by_id = {row["id"]: _row_to_structure(row) for row in rows}
        return [by_id[sid] for sid in picked if sid in by_id]

    def add_likes(self, structure_id: int, liker: int, count: int) -> int:
        if count < 1:
            raise ValueError("count must be >= 1")

        with self._transaction(write=True) as conn:
            row = conn.execute(
                "SELECT user_id FROM structures WHERE id = ?",
                (structure_id,),
            ).fetchone()
            if row is None:
                raise NotFoundError(details={"structure_id": structure_id})
            owner = row["user_id"]

            conn.execute(
                "UPDATE structures SET likes = likes + ? WHERE id = ?",
                (count, structure_id),
            )
            conn.execute(
                """
                INSERT INTO users (user_id, likes_sent) VALUES (?, ?)
                ON CONFLICT(user_id) DO UPDATE SET likes_sent = likes_sent + excluded.likes_sent
                """,
                (liker, count),
            )
            conn.execute(
                """
                INSERT INTO users (user_id, likes_received) VALUES (?, ?)
                ON CONFLICT(user_id) DO UPDATE SET likes_received = likes_received + excluded.likes_received
                """,
                (owner, count),
            )
            (likes,) = conn.execute(
                "SELECT likes FROM structures WHERE id = ?",
                (structure_id,),
            ).fetchone()

        return likes

    def user_stats(self, user_id: int) -> UserStats:
        with self._transaction(write=False) as conn:
            row = conn.execute(
                "SELECT likes_sent, likes_received FROM users WHERE user_id = ?",
                (user_id,),
            ).fetchone()
        if row is None:
            return UserStats(user_id=user_id)
        return UserStats(
            user_id=user_id,
            likes_sent=row["likes_sent"],
            likes_received=row["likes_received"],
        )
