from __future__ import annotations

import json
import logging
import re
from typing import Any

from ainotebook.core.config import settings
from ainotebook.core.errors import ModelResponseError, PreconditionError
from ainotebook.core.models import QueryAnswer, RawCitation, Source
from ainotebook.adapters.llm.base import LLM, PromptPart

log = logging.getLogger(__name__)

NO_SOURCES = "Cannot query without sources. Add at least one source first."
MODEL_FAILED = (
    "No valid response from the AI. The model may have had trouble producing a grounded answer. "
    "Please try rephrasing your question."
)
EMPTY_ANSWER = "Could not generate an answer."

RESPONSE_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {
        "answer": {
            "type": "string",
            "description": "The detailed answer to the user's question, synthesized from the provided sources.",
        },
        "citations": {
            "type": "array",
            "description": "A list of direct quotes from the sources that support the answer.",
            "items": {
                "type": "object",
                "properties": {
                    "source_id": {
                        "type": "string",
                        "description": "The unique ID of the source document being cited.",
                    },
                    "quote": {
                        "type": "string",
                        "description": (
                            "The exact quote from the source document that was used to formulate the answer. "
                            "For image sources, a description of the relevant visual elements."
                        ),
                    },
                },
                "required": ["source_id", "quote"],
                "additionalProperties": False,
            },
        },
    },
    "required": ["answer", "citations"],
    "additionalProperties": False,
}


def build_instruction(language: str) -> str:
    return f"""You are a professional research assistant. Your task is to answer the user's question *only* from the information in the sources below.

1. Analyse the following sources carefully. Each source has a unique ID, TITLE and CONTENT. The content may be text or an image.
2. Synthesize an answer to the user's question.
3. For every piece of information in your answer you MUST provide a direct quote from the source that supports it. For image sources, describe the visual element that supports your answer as the "quote".
4. If the sources do not contain the information needed to answer, say so clearly and do not provide any information that is not in the sources.
5. Format your response according to the provided JSON schema.
6. IMPORTANT: You MUST answer in {language}.

Here are the sources:"""


def build_prompt_parts(question: str, sources: list[Source], language: str | None = None) -> list[PromptPart]:
    parts = [PromptPart(text=build_instruction(language or settings.ANSWER_LANGUAGE))]
    for s in sources:
        mime = s.content.mime_type or ""
        if mime.startswith("text/"):
            parts.append(PromptPart(text=(
                f"\n\n--- SOURCE START ---\nID: {s.id}\nTITLE: {s.title}\nCONTENT:\n"
                f"{s.content.data}\n--- SOURCE END ---"
            )))
        elif mime.startswith("image/"):
            parts.append(PromptPart(text=(
                f"\n\n--- SOURCE START ---\nID: {s.id}\nTITLE: {s.title}\nCONTENT:\n"
                "[The content of this source is the following image]"
            )))
            parts.append(PromptPart.inline(mime, s.content.data))
            parts.append(PromptPart(text="\n--- SOURCE END ---"))
        else:
            log.warning("source %s has unsupported content type %r; left out of the prompt", s.id, mime)
    parts.append(PromptPart(text=f'\n\nUser question: "{question}"'))
    return parts


_FENCE_RE = re.compile(r"^```(?:json)?\s*(.*?)\s*```$", re.DOTALL)


def parse_answer(raw: str) -> QueryAnswer:
    """Validate the model's JSON reply. Raises ValueError on anything malformed."""
    text = (raw or "").strip()
    m = _FENCE_RE.match(text)
    if m:
        text = m.group(1)
    data = json.loads(text)
    if not isinstance(data, dict):
        raise ValueError("reply is not a JSON object")

    answer = data.get("answer")
    if not isinstance(answer, str):
        raise ValueError("reply has no 'answer' string")

    items = data.get("citations")
    if items is None:
        items = []
    if not isinstance(items, list):
        raise ValueError("'citations' is not a list")

    citations = []
    for item in items:
        if not isinstance(item, dict):
            raise ValueError("citation is not an object")
        source_id = item.get("source_id", item.get("sourceId"))
        quote = item.get("quote")
        if not isinstance(source_id, str) or not isinstance(quote, str):
            raise ValueError("citation is missing 'source_id' or 'quote'")
        citations.append(RawCitation(source_id=source_id, quote=quote))

    return QueryAnswer(answer=answer.strip() or EMPTY_ANSWER, citations=citations)


async def query_sources(question: str, sources: list[Source], llm: LLM) -> QueryAnswer:
    """Ask the model once, grounded in every source. No retry, no streaming."""
    if not sources:
        raise PreconditionError(NO_SOURCES)

    parts = build_prompt_parts(question, sources)
    try:
        raw = await llm.generate_json(parts, RESPONSE_SCHEMA)
        result = parse_answer(raw)
    except Exception as e:
        log.exception("model query failed (provider=%s)", llm.name)
        raise ModelResponseError(MODEL_FAILED) from e

    log.info("model answered with %d citations (provider=%s)", len(result.citations), llm.name)
    return result
