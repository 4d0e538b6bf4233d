from __future__ import annotations

import asyncio
import logging
import uuid

from ainotebook.core.errors import NotFoundError, PreconditionError
from ainotebook.core.models import ChatMessage, Note, Source, SourceContent
from ainotebook.adapters.llm.base import LLM
from ainotebook.services.citation_service import resolve_citations
from ainotebook.services.llm_factory import get_llm
from ainotebook.services.query_service import NO_SOURCES, query_sources
from ainotebook.services.store_service import NotebookStore, get_store

log = logging.getLogger(__name__)

EMPTY_SOURCE = "Title and content must not be empty."
EMPTY_QUESTION = "Question must not be empty."
QUERY_IN_FLIGHT = "A question is already being answered."


def new_id(prefix: str) -> str:
    return f"{prefix}-{uuid.uuid4().hex}"


class NotebookService:
    """User intents against one notebook store.

    Every mutation goes through the store, which persists immediately. Only one
    question may be in flight at a time.
    """

    def __init__(self, store: NotebookStore, llm: LLM | None = None):
        self.store = store
        self._llm = llm
        self._query_lock = asyncio.Lock()

    @property
    def llm(self) -> LLM:
        if self._llm is None:
            self._llm = get_llm()
        return self._llm

    @property
    def busy(self) -> bool:
        return self._query_lock.locked()

    # --- sources

    def add_source(self, title: str, content: SourceContent, file_name: str | None = None) -> Source:
        title = (title or "").strip()
        if not title or not (content.data or "").strip():
            raise PreconditionError(EMPTY_SOURCE)
        source = Source(id=new_id("source"), title=title, file_name=file_name, content=content)
        self.store.add_source(source)
        log.info("source added: %s (%r, %d chars)", source.id, title, len(content.data))
        return source

    def delete_source(self, source_id: str):
        if not self.store.delete_source(source_id):
            raise NotFoundError("Source not found.")
        log.info("source deleted: %s", source_id)

    # --- chat

    async def send_message(self, question: str) -> ChatMessage:
        """Record the question, ask the model, record the grounded answer.

        On a model failure the question stays in the log without a reply and the
        ModelResponseError propagates, so the same question can be asked again.
        """
        question = (question or "").strip()
        if not question:
            raise PreconditionError(EMPTY_QUESTION)
        if not self.store.sources:
            raise PreconditionError(NO_SOURCES)
        if self._query_lock.locked():
            raise PreconditionError(QUERY_IN_FLIGHT)

        async with self._query_lock:
            self.store.append_message(ChatMessage(id=new_id("msg"), role="user", text=question))
            result = await query_sources(question, list(self.store.sources), self.llm)

            # Resolve against the live store: sources may have been deleted meanwhile.
            citations = resolve_citations(result.citations, self.store.sources)
            reply = ChatMessage(id=new_id("msg"), role="model", text=result.answer, citations=citations)
            self.store.append_message(reply)
            return reply

    def start_new_chat(self):
        """Drop the message log; notes and sources are kept."""
        self.store.clear_messages()
        log.info("chat cleared")

    # --- notes

    def add_note(self, message_id: str) -> Note:
        existing = self.store.find_note_for_message(message_id)
        if existing is not None:
            return existing

        message = self.store.get_message(message_id)
        if message is None:
            raise NotFoundError("Message not found.")
        if message.role != "model":
            raise PreconditionError("Only model answers can be pinned.")

        note = Note(id=new_id("note"), content=message.text, source_message_id=message.id)
        self.store.prepend_note(note)
        return note

    def delete_note(self, note_id: str):
        if not self.store.delete_note(note_id):
            raise NotFoundError("Note not found.")


_notebook: NotebookService | None = None

def get_notebook() -> NotebookService:
    global _notebook
    if _notebook is None:
        _notebook = NotebookService(get_store())
    return _notebook
