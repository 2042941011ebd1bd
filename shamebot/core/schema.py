"""SQLite schema management (code-first approach)."""

import logging

from shamebot.core import db_client


logger = logging.getLogger(__name__)


# Central list of all collections in the schema, in creation order
COLLECTIONS = [
    "guilds",
    "tasks",
    "proofs",
    "accountability_requests",
    "jobs",
    "job_generations",
]


_TABLES: dict[str, str] = {
    "guilds": """
        CREATE TABLE IF NOT EXISTS guilds (
            id INTEGER PRIMARY KEY,
            name TEXT NOT NULL,
            send_to TEXT
        )
    """,
    "tasks": """
        CREATE TABLE IF NOT EXISTS tasks (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            list_id TEXT,
            user_id TEXT NOT NULL,
            guild_id TEXT,
            title VARCHAR(80) NOT NULL,
            content TEXT,
            checked INTEGER NOT NULL DEFAULT 0,
            overdue INTEGER NOT NULL DEFAULT 0,
            reminded INTEGER NOT NULL DEFAULT 0,
            pester INTEGER NOT NULL DEFAULT 0,
            pester_interval INTEGER,
            pester_limit INTEGER,
            due_at INTEGER NOT NULL DEFAULT 0,
            proof_id INTEGER,
            pester_job INTEGER,
            overdue_job INTEGER,
            reminder_job INTEGER
        )
    """,
    "proofs": """
        CREATE TABLE IF NOT EXISTS proofs (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            task_id INTEGER NOT NULL,
            content TEXT,
            image TEXT,
            approved INTEGER NOT NULL DEFAULT 0
        )
    """,
    "accountability_requests": """
        CREATE TABLE IF NOT EXISTS accountability_requests (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            requesting_user TEXT NOT NULL,
            requested_user TEXT NOT NULL,
            task_id INTEGER NOT NULL,
            status TEXT NOT NULL DEFAULT 'pending'
                CHECK (status IN ('pending', 'accepted', 'rejected'))
        )
    """,
    "jobs": """
        CREATE TABLE IF NOT EXISTS jobs (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            task_id INTEGER NOT NULL,
            kind TEXT NOT NULL CHECK (kind IN ('pester', 'reminder', 'overdue')),
            fire_at INTEGER NOT NULL,
            generation INTEGER NOT NULL,
            status TEXT NOT NULL DEFAULT 'scheduled'
                CHECK (status IN ('scheduled', 'running', 'delivered', 'failed', 'cancelled', 'stale')),
            attempts INTEGER NOT NULL DEFAULT 0,
            last_error TEXT
        )
    """,
    "job_generations": """
        CREATE TABLE IF NOT EXISTS job_generations (
            task_id INTEGER NOT NULL,
            kind TEXT NOT NULL,
            generation INTEGER NOT NULL DEFAULT 0,
            PRIMARY KEY (task_id, kind)
        )
    """,
}


_INDEXES: dict[str, list[str]] = {
    "tasks": [
        "CREATE INDEX IF NOT EXISTS idx_tasks_user ON tasks (user_id)",
        "CREATE INDEX IF NOT EXISTS idx_tasks_checked ON tasks (checked)",
    ],
    "proofs": ["CREATE INDEX IF NOT EXISTS idx_proofs_task ON proofs (task_id)"],
    "accountability_requests": [
        "CREATE UNIQUE INDEX IF NOT EXISTS idx_requests_pair ON accountability_requests (requested_user, task_id)",
        "CREATE INDEX IF NOT EXISTS idx_requests_task ON accountability_requests (task_id)",
    ],
    "jobs": [
        "CREATE INDEX IF NOT EXISTS idx_jobs_due ON jobs (status, fire_at)",
        "CREATE INDEX IF NOT EXISTS idx_jobs_task ON jobs (task_id, kind)",
    ],
}


async def init_db(*, db_path: str | None = None) -> None:
    """Create every table and index that does not exist yet."""
    conn = await db_client.get_connection(db_path=db_path)

    for collection in COLLECTIONS:
        await conn.execute(_TABLES[collection])
        for index in _INDEXES.get(collection, []):
            await conn.execute(index)

    await conn.commit()
    logger.info("Database schema initialized", extra={"collections": len(COLLECTIONS)})
