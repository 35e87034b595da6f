"""aiosqlite log of solve sessions."""
import aiosqlite

from gt4solver.config import settings

_db: aiosqlite.Connection | None = None


async def get_db() -> aiosqlite.Connection:
    global _db
    if _db is None:
        _db = await aiosqlite.connect(settings.database_url)
        _db.row_factory = aiosqlite.Row
        await _create_tables(_db)
    return _db


async def close_db() -> None:
    global _db
    if _db is not None:
        await _db.close()
        _db = None


async def _create_tables(db: aiosqlite.Connection) -> None:
    await db.execute("""
        CREATE TABLE IF NOT EXISTS solve_sessions (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            captcha_id TEXT NOT NULL,
            risk_type TEXT NOT NULL,
            lot_number TEXT,
            attempts INTEGER NOT NULL DEFAULT 0,
            passed INTEGER NOT NULL DEFAULT 0,
            reason TEXT,
            timestamp REAL NOT NULL
        )
    """)
    await db.execute("""
        CREATE INDEX IF NOT EXISTS idx_solve_sessions_captcha_id
        ON solve_sessions(captcha_id)
    """)
    await db.commit()


async def insert_solve_session(
    captcha_id: str,
    risk_type: str,
    lot_number: str | None,
    attempts: int,
    passed: bool,
    timestamp: float,
    reason: str | None = None,
) -> int:
    db = await get_db()
    cursor = await db.execute(
        """INSERT INTO solve_sessions
           (captcha_id, risk_type, lot_number, attempts, passed, reason, timestamp)
           VALUES (?, ?, ?, ?, ?, ?, ?)""",
        (captcha_id, risk_type, lot_number, attempts, int(passed), reason, timestamp),
    )
    await db.commit()
    return cursor.lastrowid


async def fetch_solve_sessions(captcha_id: str) -> list[dict]:
    db = await get_db()
    cursor = await db.execute(
        "SELECT * FROM solve_sessions WHERE captcha_id = ? ORDER BY timestamp ASC",
        (captcha_id,),
    )
    rows = await cursor.fetchall()
    return [dict(r) for r in rows]
