import sqlite3
from pathlib import Path
from typing import Any, Dict, List, Optional, Protocol, Tuple, Union

from fastapi.concurrency import run_in_threadpool

SCHEMA = """
CREATE TABLE IF NOT EXISTS properties (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT NOT NULL,
    street TEXT,
    city TEXT,
    state TEXT,
    zip TEXT,
    lat REAL,
    lng REAL
)
"""


class PropertyRepository(Protocol):
    """Datastore contract consumed by the search pipeline.

    `search_text`, when given, matches rows whose name, city or state contains
    it. Rows come back as plain dicts in a stable scan order.
    """

    async def count(self, search_text: Optional[str]) -> int: ...

    async def find_many(self, search_text: Optional[str], skip: int, take: int) -> List[Dict[str, Any]]: ...


def _like_param(q: str) -> str:
    # Substring match with `\`, `%` and `_` taken literally; pair with ESCAPE '\'.
    escaped = q.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


def _where(search_text: Optional[str]) -> Tuple[str, tuple]:
    if not search_text:
        return "", ()
    like = _like_param(search_text)
    # SQLite LIKE folds ASCII case only, on both sides alike
    clause = "WHERE name LIKE ? ESCAPE '\\' OR city LIKE ? ESCAPE '\\' OR state LIKE ? ESCAPE '\\'"
    return clause, (like, like, like)


class SQLitePropertyRepository:
    """`PropertyRepository` backed by a SQLite file.

    Each call opens its own connection and runs in the threadpool, so the
    event loop is never blocked on disk I/O.
    """

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(str(self.path))
        conn.row_factory = sqlite3.Row
        return conn

    def ensure_schema(self) -> None:
        conn = self._connect()
        try:
            conn.execute(SCHEMA)
            conn.commit()
        finally:
            conn.close()

    def _count(self, search_text: Optional[str]) -> int:
        clause, params = _where(search_text)
        conn = self._connect()
        try:
            row = conn.execute(f"SELECT COUNT(*) FROM properties {clause}", params).fetchone()
        finally:
            conn.close()
        return int(row[0])

    def _find_many(self, search_text: Optional[str], skip: int, take: int) -> List[Dict[str, Any]]:
        clause, params = _where(search_text)
        sql = f"SELECT * FROM properties {clause} ORDER BY id LIMIT ? OFFSET ?"
        conn = self._connect()
        try:
            rows = conn.execute(sql, params + (take, skip)).fetchall()
        finally:
            conn.close()
        return [dict(r) for r in rows]

    async def count(self, search_text: Optional[str]) -> int:
        return await run_in_threadpool(self._count, search_text)

    async def find_many(self, search_text: Optional[str], skip: int, take: int) -> List[Dict[str, Any]]:
        return await run_in_threadpool(self._find_many, search_text, skip, take)
