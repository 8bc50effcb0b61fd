from __future__ import annotations

import logging
import os
import sqlite3
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Optional, Sequence

from parley.errors import PersistenceError
from parley.types import Message

LOGGER = logging.getLogger(__name__)

_SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS conversations (
        id INTEGER PRIMARY KEY,
        created_at TEXT NOT NULL,
        prompt TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS messages (
        id INTEGER PRIMARY KEY,
        position INTEGER,
        sender TEXT NOT NULL,
        content TEXT NOT NULL,
        created_at TEXT NOT NULL,
        conversation INTEGER NOT NULL,
        FOREIGN KEY(conversation) REFERENCES conversations(id)
    )
    """,
)


class ConversationStore:
    """Conversation history held in an in-memory SQLite copy of `path`.

    Nothing touches the file until `save()` backs the working copy up to it.
    """

    def __init__(self, path: Path, conn: sqlite3.Connection) -> None:
        self.path = path
        self._conn = conn

    def commit(self, prompt: str, conversation: Sequence[Message]) -> None:
        if not conversation:
            LOGGER.debug("no messages to commit, skipping")
            return

        try:
            with self._conn:
                cursor = self._conn.execute(
                    "INSERT INTO conversations (created_at, prompt) VALUES (?, ?)",
                    (conversation[0].timestamp.isoformat(), prompt),
                )
                conversation_id = cursor.lastrowid
                self._conn.executemany(
                    """
                    INSERT INTO messages (position, sender, content, created_at, conversation)
                    VALUES (?, ?, ?, ?, ?)
                    """,
                    [
                        (m.id, m.sender, m.content, m.timestamp.isoformat(), conversation_id)
                        for m in conversation
                    ],
                )
        except sqlite3.Error as exc:
            raise PersistenceError(f"Unable to record conversation: {exc}") from exc

        LOGGER.info("committed conversation id=%s with %d messages", conversation_id, len(conversation))

    def save(self) -> None:
        # Written beside the file and swapped in, so an unreadable file is replaced whole.
        staging = self.path.with_name(f"{self.path.name}.tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            staging.unlink(missing_ok=True)
            target = sqlite3.connect(staging)
            try:
                self._conn.backup(target)
            finally:
                target.close()
            os.replace(staging, self.path)
        except (OSError, sqlite3.Error) as exc:
            raise PersistenceError(f"Unable to save conversations to {self.path}: {exc}") from exc

        LOGGER.info("saved conversations to %s", self.path)

    def close(self) -> None:
        self._conn.close()


@dataclass
class LoadResult:
    store: ConversationStore
    conversation: list[Message] = field(default_factory=list)
    error: Optional[PersistenceError] = None


def load_conversation(path: str | Path, resume: bool) -> LoadResult:
    """Open the store at `path` and, when resuming, return its latest conversation.

    An unreadable file never stops a session: the result carries a fresh,
    empty store and the error that caused the fallback.
    """
    db_path = Path(path)
    conn = _open_working_copy()

    if not db_path.exists():
        LOGGER.info("no database at %s, starting a new one", db_path)
        return LoadResult(store=ConversationStore(db_path, conn))

    try:
        _restore_from_file(db_path, conn)
        _ensure_schema(conn)
        conversation = _latest_conversation(conn) if resume else []
    except (sqlite3.Error, ValueError) as exc:
        LOGGER.warning("failed to load %s, starting with an empty conversation: %s", db_path, exc)
        conn.close()
        return LoadResult(
            store=ConversationStore(db_path, _open_working_copy()),
            error=PersistenceError(f"Unable to load conversation history from {db_path}: {exc}"),
        )

    LOGGER.info("loaded %d messages from %s (resume=%s)", len(conversation), db_path, resume)
    return LoadResult(store=ConversationStore(db_path, conn), conversation=conversation)


def _open_working_copy() -> sqlite3.Connection:
    conn = sqlite3.connect(":memory:")
    _ensure_schema(conn)
    return conn


def _restore_from_file(path: Path, conn: sqlite3.Connection) -> None:
    source = sqlite3.connect(path)
    try:
        source.backup(conn)
    finally:
        source.close()


def _ensure_schema(conn: sqlite3.Connection) -> None:
    for statement in _SCHEMA:
        conn.execute(statement)
    columns = {row[1] for row in conn.execute("PRAGMA table_info(messages)")}
    if "position" not in columns:
        conn.execute("ALTER TABLE messages ADD COLUMN position INTEGER")
    conn.commit()


def _latest_conversation(conn: sqlite3.Connection) -> list[Message]:
    row = conn.execute("SELECT id FROM conversations ORDER BY id DESC LIMIT 1").fetchone()
    if row is None:
        return []

    rows = conn.execute(
        """
        SELECT sender, content, created_at
        FROM messages
        WHERE conversation = ?
        ORDER BY COALESCE(position, id), id
        """,
        (row[0],),
    ).fetchall()
    return [
        Message(id=index, sender=sender, content=content, timestamp=datetime.fromisoformat(created_at))
        for index, (sender, content, created_at) in enumerate(rows)
    ]
