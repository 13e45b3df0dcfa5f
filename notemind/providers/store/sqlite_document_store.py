"""SQLite-backed document store.

Implements :class:`IDocumentStore` on a single SQLite database using
``aiosqlite``.  Each entity is stored as a JSON payload (pydantic
``model_dump_json``) next to the key columns it is looked up by, so a
partial update is "load, patch, validate, write back".

Lock acquisition runs inside ``BEGIN IMMEDIATE``: SQLite grants the write
reservation to one connection at a time, so the status read and the
``processing`` write of two racing callers can never interleave.  The
loser blocks until the winner commits (bounded by ``busy_timeout``) and
then reads ``processing``.
"""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import aiosqlite
import structlog

from notemind.interfaces.document_store import IDocumentStore, apply_patch
from notemind.models.artifacts import AIArtifact
from notemind.models.chat import Chat, ChatMessage
from notemind.models.document import Document, ProcessingLock, ProcessingStatus
from notemind.models.user import UserProfile
from notemind.utils.errors import StorageError

logger = structlog.get_logger(logger_name=__name__)

_DEFAULT_DB_PATH = Path("data/notemind.db")

# ── Schema DDL ────────────────────────────────────────────────────────

_CREATE_TABLES = [
    """\
CREATE TABLE IF NOT EXISTS documents (
    user_id      TEXT NOT NULL,
    document_id  TEXT NOT NULL,
    payload      TEXT NOT NULL,
    PRIMARY KEY (user_id, document_id)
);
""",
    """\
CREATE TABLE IF NOT EXISTS chats (
    user_id   TEXT NOT NULL,
    chat_id   TEXT NOT NULL,
    payload   TEXT NOT NULL,
    PRIMARY KEY (user_id, chat_id)
);
""",
    """\
CREATE TABLE IF NOT EXISTS messages (
    seq         INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id     TEXT NOT NULL,
    chat_id     TEXT NOT NULL,
    message_id  TEXT NOT NULL,
    payload     TEXT NOT NULL,
    UNIQUE (user_id, chat_id, message_id)
);
""",
    """\
CREATE TABLE IF NOT EXISTS artifacts (
    user_id      TEXT NOT NULL,
    document_id  TEXT NOT NULL,
    kind         TEXT NOT NULL,
    payload      TEXT NOT NULL,
    PRIMARY KEY (user_id, document_id, kind)
);
""",
    """\
CREATE TABLE IF NOT EXISTS users (
    user_id  TEXT PRIMARY KEY,
    email    TEXT NOT NULL,
    payload  TEXT NOT NULL
);
""",
]

_CREATE_INDICES = [
    "CREATE INDEX IF NOT EXISTS idx_messages_chat ON messages(user_id, chat_id, seq);",
    "CREATE INDEX IF NOT EXISTS idx_users_email ON users(email);",
]

# ── DML ───────────────────────────────────────────────────────────────

_SELECT_DOCUMENT = "SELECT payload FROM documents WHERE user_id = ? AND document_id = ?;"
_UPSERT_DOCUMENT = """\
INSERT INTO documents (user_id, document_id, payload) VALUES (?, ?, ?)
ON CONFLICT(user_id, document_id) DO UPDATE SET payload = excluded.payload;
"""

_SELECT_CHAT = "SELECT payload FROM chats WHERE user_id = ? AND chat_id = ?;"
_UPSERT_CHAT = """\
INSERT INTO chats (user_id, chat_id, payload) VALUES (?, ?, ?)
ON CONFLICT(user_id, chat_id) DO UPDATE SET payload = excluded.payload;
"""

_INSERT_MESSAGE = "INSERT INTO messages (user_id, chat_id, message_id, payload) VALUES (?, ?, ?, ?);"
_SELECT_MESSAGE = "SELECT payload FROM messages WHERE user_id = ? AND chat_id = ? AND message_id = ?;"
_UPDATE_MESSAGE = "UPDATE messages SET payload = ? WHERE user_id = ? AND chat_id = ? AND message_id = ?;"
_SELECT_RECENT_MESSAGES = """\
SELECT payload FROM messages WHERE user_id = ? AND chat_id = ?
ORDER BY seq DESC LIMIT ?;
"""

_SELECT_ARTIFACT = "SELECT payload FROM artifacts WHERE user_id = ? AND document_id = ? AND kind = ?;"
_UPSERT_ARTIFACT = """\
INSERT INTO artifacts (user_id, document_id, kind, payload) VALUES (?, ?, ?, ?)
ON CONFLICT(user_id, document_id, kind) DO UPDATE SET payload = excluded.payload;
"""

_UPSERT_USER = """\
INSERT INTO users (user_id, email, payload) VALUES (?, ?, ?)
ON CONFLICT(user_id) DO UPDATE SET email = excluded.email, payload = excluded.payload;
"""
_SELECT_USER_BY_EMAIL = "SELECT payload FROM users WHERE email = ? LIMIT 1;"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SQLiteDocumentStore(IDocumentStore):
    """Document, chat, artifact and user persistence in one SQLite file.

    Parameters
    ----------
    db_path:
        Path to the SQLite database file.
    busy_timeout:
        Seconds a connection waits for another writer before failing.
    """

    def __init__(self, db_path: str | Path = _DEFAULT_DB_PATH, busy_timeout: float = 10.0) -> None:
        self._db_path = Path(db_path)
        self._busy_timeout = busy_timeout

    async def initialize(self) -> None:
        """Create all tables and indices if they don't exist."""
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        async with self._connect() as db:
            await db.execute("PRAGMA journal_mode=WAL;")
            for ddl in _CREATE_TABLES:
                await db.execute(ddl)
            for idx_sql in _CREATE_INDICES:
                await db.execute(idx_sql)
        logger.info("document_store_initialized", path=str(self._db_path))

    def get_provider_name(self) -> str:
        return "sqlite"

    # ── Documents ──────────────────────────────────────────────────────

    async def get_document(self, user_id: str, document_id: str) -> Document | None:
        async with self._connect() as db:
            row = await self._fetchone(db, _SELECT_DOCUMENT, (user_id, document_id))
        return Document.model_validate_json(row[0]) if row else None

    async def put_document(self, document: Document) -> None:
        async with self._connect() as db:
            await db.execute(
                _UPSERT_DOCUMENT,
                (document.user_id, document.document_id, document.model_dump_json()),
            )

    async def update_document(self, user_id: str, document_id: str, fields: dict[str, Any]) -> Document:
        async with self._connect() as db:
            await db.execute("BEGIN IMMEDIATE;")
            try:
                row = await self._fetchone(db, _SELECT_DOCUMENT, (user_id, document_id))
                if row is None:
                    raise StorageError(
                        message=f"Document not found: {user_id}/{document_id}",
                        provider_name=self.get_provider_name(),
                    )
                updated = apply_patch(
                    Document.model_validate_json(row[0]),
                    {**fields, "updated_at": fields.get("updated_at", _utcnow())},
                )
                await db.execute(_UPSERT_DOCUMENT, (user_id, document_id, updated.model_dump_json()))
                await db.execute("COMMIT;")
            except BaseException:
                await db.execute("ROLLBACK;")
                raise
        return updated

    async def acquire_processing_lock(
        self,
        user_id: str,
        document_id: str,
        token: str,
        now: datetime,
    ) -> bool:
        async with self._connect() as db:
            await db.execute("BEGIN IMMEDIATE;")
            try:
                row = await self._fetchone(db, _SELECT_DOCUMENT, (user_id, document_id))
                if row is None:
                    await db.execute("ROLLBACK;")
                    return False
                document = Document.model_validate_json(row[0])
                if document.is_terminal_or_running:
                    await db.execute("ROLLBACK;")
                    logger.info(
                        "processing_lock_not_acquired",
                        document_id=document_id,
                        status=document.processing_status.value,
                    )
                    return False
                locked = apply_patch(
                    document,
                    {
                        "processing_status": ProcessingStatus.PROCESSING,
                        "processing_lock": ProcessingLock(event=token, at=now),
                        "processing_started_at": now,
                        "updated_at": now,
                    },
                )
                await db.execute(_UPSERT_DOCUMENT, (user_id, document_id, locked.model_dump_json()))
                await db.execute("COMMIT;")
            except BaseException:
                await db.execute("ROLLBACK;")
                raise
        logger.info("processing_lock_acquired", document_id=document_id, token=token)
        return True

    # ── Chats & messages ───────────────────────────────────────────────

    async def create_chat(self, chat: Chat) -> None:
        async with self._connect() as db:
            await db.execute(_UPSERT_CHAT, (chat.user_id, chat.chat_id, chat.model_dump_json()))

    async def get_chat(self, user_id: str, chat_id: str) -> Chat | None:
        async with self._connect() as db:
            row = await self._fetchone(db, _SELECT_CHAT, (user_id, chat_id))
        return Chat.model_validate_json(row[0]) if row else None

    async def update_chat(self, user_id: str, chat_id: str, fields: dict[str, Any]) -> Chat:
        async with self._connect() as db:
            await db.execute("BEGIN IMMEDIATE;")
            try:
                row = await self._fetchone(db, _SELECT_CHAT, (user_id, chat_id))
                if row is None:
                    raise StorageError(
                        message=f"Chat not found: {user_id}/{chat_id}",
                        provider_name=self.get_provider_name(),
                    )
                updated = apply_patch(Chat.model_validate_json(row[0]), fields)
                await db.execute(_UPSERT_CHAT, (user_id, chat_id, updated.model_dump_json()))
                await db.execute("COMMIT;")
            except BaseException:
                await db.execute("ROLLBACK;")
                raise
        return updated

    async def add_message(self, user_id: str, message: ChatMessage) -> None:
        async with self._connect() as db:
            await db.execute(
                _INSERT_MESSAGE,
                (user_id, message.chat_id, message.message_id, message.model_dump_json()),
            )

    async def update_message(
        self,
        user_id: str,
        chat_id: str,
        message_id: str,
        fields: dict[str, Any],
    ) -> ChatMessage:
        async with self._connect() as db:
            await db.execute("BEGIN IMMEDIATE;")
            try:
                row = await self._fetchone(db, _SELECT_MESSAGE, (user_id, chat_id, message_id))
                if row is None:
                    raise StorageError(
                        message=f"Message not found: {chat_id}/{message_id}",
                        provider_name=self.get_provider_name(),
                    )
                updated = apply_patch(ChatMessage.model_validate_json(row[0]), fields)
                await db.execute(_UPDATE_MESSAGE, (updated.model_dump_json(), user_id, chat_id, message_id))
                await db.execute("COMMIT;")
            except BaseException:
                await db.execute("ROLLBACK;")
                raise
        return updated

    async def get_last_message(self, user_id: str, chat_id: str) -> ChatMessage | None:
        messages = await self.list_messages(user_id, chat_id, limit=1)
        return messages[-1] if messages else None

    async def list_messages(self, user_id: str, chat_id: str, limit: int = 20) -> list[ChatMessage]:
        async with self._connect() as db:
            cursor = await db.execute(_SELECT_RECENT_MESSAGES, (user_id, chat_id, limit))
            rows = await cursor.fetchall()
        return [ChatMessage.model_validate_json(row[0]) for row in reversed(rows)]

    # ── Artifacts ──────────────────────────────────────────────────────

    async def get_artifact(self, user_id: str, document_id: str, kind: str) -> AIArtifact | None:
        async with self._connect() as db:
            row = await self._fetchone(db, _SELECT_ARTIFACT, (user_id, document_id, kind))
        return AIArtifact.model_validate_json(row[0]) if row else None

    async def put_artifact(self, artifact: AIArtifact) -> None:
        async with self._connect() as db:
            await db.execute(
                _UPSERT_ARTIFACT,
                (artifact.user_id, artifact.document_id, artifact.kind, artifact.model_dump_json()),
            )

    # ── Users ──────────────────────────────────────────────────────────

    async def put_user(self, profile: UserProfile) -> None:
        async with self._connect() as db:
            await db.execute(
                _UPSERT_USER,
                (profile.user_id, profile.email.strip().lower(), profile.model_dump_json()),
            )

    async def find_user_by_email(self, email: str) -> UserProfile | None:
        async with self._connect() as db:
            row = await self._fetchone(db, _SELECT_USER_BY_EMAIL, (email.strip().lower(),))
        return UserProfile.model_validate_json(row[0]) if row else None

    # ── Internal helpers ───────────────────────────────────────────────

    def _connect(self) -> aiosqlite.Connection:
        """Open a connection in autocommit mode; transactions are explicit."""
        return aiosqlite.connect(str(self._db_path), timeout=self._busy_timeout, isolation_level=None)

    @staticmethod
    async def _fetchone(db: aiosqlite.Connection, sql: str, params: tuple) -> Any:
        cursor = await db.execute(sql, params)
        return await cursor.fetchone()
