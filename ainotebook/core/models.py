from pydantic import BaseModel, Field
from typing import Literal

class SourceContent(BaseModel):
    mime_type: str = "text/plain"
    # Raw text. Image payloads (base64) only exist transiently and are never persisted.
    data: str

class Source(BaseModel):
    id: str
    title: str
    file_name: str | None = None
    content: SourceContent

class Citation(BaseModel):
    source_id: str
    source_title: str
    quote: str

class ChatMessage(BaseModel):
    id: str
    role: Literal["user", "model"]
    text: str
    citations: list[Citation] | None = None

class Note(BaseModel):
    id: str
    content: str
    source_message_id: str

class RawCitation(BaseModel):
    source_id: str
    quote: str

class QueryAnswer(BaseModel):
    answer: str
    citations: list[RawCitation] = Field(default_factory=list)
