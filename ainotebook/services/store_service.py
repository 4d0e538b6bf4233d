import json
import logging
import os
import sqlite3
from typing import TypeVar

from pydantic import BaseModel

from ainotebook.core.config import settings
from ainotebook.core.models import ChatMessage, Note, Source

log = logging.getLogger(__name__)

SOURCES_KEY = "ai-notebook-sources"
MESSAGES_KEY = "ai-notebook-messages"
NOTES_KEY = "ai-notebook-notes"

T = TypeVar("T", bound=BaseModel)


class NotebookStore:
    """Sources, chat messages and notes, persisted as three JSON collections.

    Each collection lives under its own key in a tiny key/value table. It is
    read once by `load()` and rewritten in full after every mutation. A value
    that is not valid JSON (or no longer matches the models) resets that one
    collection to empty.
    """

    def __init__(self, db_path: str):
        self.db_path = db_path
        self.sources: list[Source] = []
        self.messages: list[ChatMessage] = []
        self.notes: list[Note] = []

    def _connect(self) -> sqlite3.Connection:
        return sqlite3.connect(self.db_path)

    def init_db(self):
        parent = os.path.dirname(self.db_path)
        if parent:
            os.makedirs(parent, exist_ok=True)
        conn = self._connect()
        cur = conn.cursor()
        cur.execute("""
        CREATE TABLE IF NOT EXISTS kv(
            key TEXT PRIMARY KEY,
            value TEXT
        );
        """)
        conn.commit()
        conn.close()

    def _read_raw(self, key: str) -> str | None:
        conn = self._connect()
        cur = conn.cursor()
        cur.execute("SELECT value FROM kv WHERE key=?", (key,))
        row = cur.fetchone()
        conn.close()
        return row[0] if row else None

    def _write_raw(self, key: str, value: str):
        conn = self._connect()
        cur = conn.cursor()
        cur.execute("INSERT OR REPLACE INTO kv(key, value) VALUES(?,?)", (key, value))
        conn.commit()
        conn.close()

    def _read(self, key: str, model: type[T]) -> list[T]:
        raw = self._read_raw(key)
        if raw is None:
            return []
        try:
            items = json.loads(raw)
            if not isinstance(items, list):
                raise TypeError(f"expected a list, got {type(items).__name__}")
            return [model.model_validate(i) for i in items]
        except (ValueError, TypeError) as e:
            log.warning("stored collection %s is unreadable, resetting to empty: %s", key, e)
            self._write_raw(key, "[]")
            return []

    def _write(self, key: str, items: list[BaseModel]):
        self._write_raw(key, json.dumps([i.model_dump() for i in items], ensure_ascii=False))

    def load(self) -> "NotebookStore":
        self.init_db()
        self.sources = self._read(SOURCES_KEY, Source)
        self.messages = self._read(MESSAGES_KEY, ChatMessage)
        self.notes = self._read(NOTES_KEY, Note)
        log.info(
            "notebook loaded: %d sources, %d messages, %d notes",
            len(self.sources), len(self.messages), len(self.notes),
        )
        return self

    # --- sources

    def get_source(self, source_id: str) -> Source | None:
        return next((s for s in self.sources if s.id == source_id), None)

    def add_source(self, source: Source):
        self.sources.append(source)
        self._write(SOURCES_KEY, self.sources)

    def delete_source(self, source_id: str) -> bool:
        before = len(self.sources)
        self.sources = [s for s in self.sources if s.id != source_id]
        if len(self.sources) == before:
            return False
        self._write(SOURCES_KEY, self.sources)
        return True

    # --- messages

    def get_message(self, message_id: str) -> ChatMessage | None:
        return next((m for m in self.messages if m.id == message_id), None)

    def append_message(self, message: ChatMessage):
        self.messages.append(message)
        self._write(MESSAGES_KEY, self.messages)

    def clear_messages(self):
        self.messages = []
        self._write(MESSAGES_KEY, self.messages)

    # --- notes

    def find_note_for_message(self, message_id: str) -> Note | None:
        return next((n for n in self.notes if n.source_message_id == message_id), None)

    def prepend_note(self, note: Note):
        self.notes.insert(0, note)
        self._write(NOTES_KEY, self.notes)

    def delete_note(self, note_id: str) -> bool:
        before = len(self.notes)
        self.notes = [n for n in self.notes if n.id != note_id]
        if len(self.notes) == before:
            return False
        self._write(NOTES_KEY, self.notes)
        return True


_store: NotebookStore | None = None

def get_store() -> NotebookStore:
    global _store
    if _store is None:
        _store = NotebookStore(settings.STATE_DB_PATH).load()
    return _store
