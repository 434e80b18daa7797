"""Chat history stored in a local sqlite database.

Every public operation runs through :func:`~chat_cli.core.retry.retry_call`
so that a briefly locked database does not cost the user a message.
"""

from __future__ import annotations

import logging
import sqlite3
from datetime import datetime
from pathlib import Path
from typing import Callable, List, Optional, TypeVar, Union

from .errors import Severity, database_error, validation_error
from .models import Persona, Turn
from .retry import DEFAULT_BASE_DELAY, DEFAULT_MAX_ATTEMPTS, RetryExhausted, retry_call

logger = logging.getLogger(__name__)

T = TypeVar("T")

RECENT_CHATS_LIMIT = 10

SCHEMA = """
CREATE TABLE IF NOT EXISTS chats (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    chat_id TEXT NOT NULL,
    persona TEXT NOT NULL,
    message TEXT NOT NULL,
    created_at DATETIME DEFAULT CURRENT_TIMESTAMP,
    updated_at DATETIME DEFAULT CURRENT_TIMESTAMP
);

CREATE TRIGGER IF NOT EXISTS chats_updated_at
AFTER UPDATE ON chats
BEGIN
    UPDATE chats SET updated_at = CURRENT_TIMESTAMP WHERE id = NEW.id;
END;

CREATE INDEX IF NOT EXISTS idx_chats_chat_id ON chats(chat_id, id);
"""

# Lower-cased fragments of sqlite error messages that usually go away on
# their own.
TRANSIENT_PATTERNS = (
    "database is locked",
    "database is busy",
    "database table is locked",
    "disk i/o error",
    "timeout",
    "temporary failure",
)


def is_transient_db_error(exc: BaseException) -> bool:
    if not isinstance(exc, sqlite3.Error):
        return False
    text = str(exc).lower()
    return any(pattern in text for pattern in TRANSIENT_PATTERNS)


def _parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        return datetime.fromisoformat(str(value))
    except ValueError:
        return None


class HistoryStore:
    """Append/list/query access to the ``chats`` table.

    The store owns one connection for its whole life; do not share an
    instance between sessions.
    """

    COMPONENT = "history-store"

    def __init__(
        self,
        conn: sqlite3.Connection,
        *,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        base_delay: float = DEFAULT_BASE_DELAY,
        sleep: Optional[Callable[[float], None]] = None,
    ) -> None:
        self.conn = conn
        self.conn.row_factory = sqlite3.Row
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self._sleep = sleep

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @classmethod
    def open(cls, path: Union[str, Path], **kwargs) -> "HistoryStore":
        """Connect to (and migrate) the database at *path*."""
        try:
            if str(path) != ":memory:":
                Path(path).parent.mkdir(parents=True, exist_ok=True)
            conn = sqlite3.connect(str(path))
        except (OSError, sqlite3.Error) as exc:
            raise database_error(
                "connection_failed",
                f"Could not open history database at {path}",
                exc,
                operation="Open",
                component=cls.COMPONENT,
                metadata={"path": str(path)},
            ) from exc

        store = cls(conn, **kwargs)
        store.migrate()
        return store

    def migrate(self) -> None:
        try:
            self.conn.executescript(SCHEMA)
            self.conn.commit()
        except sqlite3.Error as exc:
            raise database_error(
                "migration_failed",
                "Failed to create the chats table",
                exc,
                operation="Migrate",
                component=self.COMPONENT,
            ) from exc

    def close(self) -> None:
        self.conn.close()

    def __enter__(self) -> "HistoryStore":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def append(self, turn: Turn) -> int:
        """Insert *turn* and return the id sqlite assigned to it."""

        def insert() -> int:
            cur = self.conn.execute(
                "INSERT INTO chats (chat_id, persona, message) VALUES (?, ?, ?)",
                (turn.chat_id, turn.persona.value, turn.text),
            )
            self.conn.commit()
            return int(cur.lastrowid)

        return self._execute("Append", insert, chat_id=turn.chat_id, persona=turn.persona.value)

    def list(self, limit: int = RECENT_CHATS_LIMIT) -> List[Turn]:
        """Latest row of each of the *limit* most recently active conversations."""

        def query() -> List[Turn]:
            rows = self.conn.execute(
                """
                SELECT MAX(id) AS id, chat_id, persona, message, created_at
                FROM chats
                GROUP BY chat_id
                ORDER BY id DESC
                LIMIT ?
                """,
                (limit,),
            ).fetchall()
            return [self._to_turn(row) for row in rows]

        return self._execute("List", query)

    def get_turns(self, chat_id: str) -> List[Turn]:
        """All turns of *chat_id*, oldest first."""
        if not chat_id:
            raise validation_error(
                "chat_id_empty",
                "Chat ID cannot be empty",
                operation="GetTurns",
                component=self.COMPONENT,
            )

        def query() -> List[Turn]:
            rows = self.conn.execute(
                """
                SELECT id, chat_id, persona, message, created_at
                FROM chats
                WHERE chat_id = ?
                ORDER BY id ASC
                """,
                (chat_id,),
            ).fetchall()
            return [self._to_turn(row) for row in rows]

        return self._execute("GetTurns", query, chat_id=chat_id)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _execute(self, operation: str, action: Callable[[], T], *, chat_id: str = "", **metadata) -> T:
        kwargs = {}
        if self._sleep is not None:
            kwargs["sleep"] = self._sleep
        try:
            return retry_call(
                action,
                is_transient_db_error,
                max_attempts=self.max_attempts,
                base_delay=self.base_delay,
                # a failed commit leaves its INSERT pending; drop it before the next attempt
                on_retry=lambda attempt, exc, delay: self._rollback(),
                **kwargs,
            )
        except RetryExhausted as exc:
            self._rollback()
            raise database_error(
                "max_retries_exceeded",
                f"{operation} failed after multiple attempts",
                exc.last_error,
                operation=operation,
                component=self.COMPONENT,
                chat_id=chat_id,
                metadata=metadata,
                severity=Severity.MEDIUM,
            ).with_metadata("retry_attempts", exc.attempts) from exc
        except sqlite3.Error as exc:
            self._rollback()
            code = "save_failed" if operation == "Append" else "query_failed"
            raise database_error(
                code,
                f"{operation} failed",
                exc,
                operation=operation,
                component=self.COMPONENT,
                chat_id=chat_id,
                metadata=metadata,
            ) from exc

    def _rollback(self) -> None:
        try:
            self.conn.rollback()
        except sqlite3.Error:
            logger.debug("rollback after failed operation also failed", exc_info=True)

    @staticmethod
    def _to_turn(row: sqlite3.Row) -> Turn:
        return Turn(
            persona=Persona(row["persona"]),
            text=row["message"],
            chat_id=row["chat_id"],
            surrogate_id=int(row["id"]),
            created_at=_parse_timestamp(row["created_at"]),
        )


__all__ = ["HistoryStore", "is_transient_db_error", "RECENT_CHATS_LIMIT"]
