from __future__ import annotations

from typing import Any

import httpx

from ainotebook.core.config import settings
from ainotebook.adapters.llm.base import LLM, PromptPart

# Gemini's responseSchema is an OpenAPI subset: upper-case type names, no additionalProperties.
_UNSUPPORTED_SCHEMA_KEYS = {"additionalProperties", "$schema", "title"}


def to_gemini_schema(schema: Any) -> Any:
    if isinstance(schema, list):
        return [to_gemini_schema(s) for s in schema]
    if not isinstance(schema, dict):
        return schema
    out: dict[str, Any] = {}
    for k, v in schema.items():
        if k in _UNSUPPORTED_SCHEMA_KEYS:
            continue
        if k == "type" and isinstance(v, str):
            out[k] = v.upper()
        elif k == "properties" and isinstance(v, dict):
            out[k] = {name: to_gemini_schema(sub) for name, sub in v.items()}
        else:
            out[k] = to_gemini_schema(v)
    return out


def _to_gemini_part(p: PromptPart) -> dict[str, Any]:
    if p.is_inline:
        return {"inlineData": {"mimeType": p.mime_type, "data": p.data}}
    return {"text": p.text or ""}


class GeminiLLM(LLM):
    """REST client for generateContent; avoids pinning an SDK version."""

    name = "gemini"

    async def generate_json(self, parts: list[PromptPart], schema: dict[str, Any]) -> str:
        if not settings.GEMINI_API_KEY:
            raise RuntimeError("GEMINI_API_KEY is not set")

        body = {
            "contents": [{"role": "user", "parts": [_to_gemini_part(p) for p in parts]}],
            "generationConfig": {
                "responseMimeType": "application/json",
                "responseSchema": to_gemini_schema(schema),
                "temperature": settings.LLM_TEMPERATURE,
            },
        }
        url = f"{settings.GEMINI_BASE_URL.rstrip('/')}/models/{settings.GEMINI_MODEL}:generateContent"
        async with httpx.AsyncClient(timeout=settings.LLM_TIMEOUT) as client:
            r = await client.post(url, json=body, headers={"x-goog-api-key": settings.GEMINI_API_KEY})
            r.raise_for_status()
            data = r.json()

        candidates = data.get("candidates") or []
        if not candidates:
            reason = (data.get("promptFeedback") or {}).get("blockReason")
            raise RuntimeError(f"Gemini returned no candidates (blockReason={reason})")
        content = candidates[0].get("content") or {}
        return "".join(part.get("text", "") for part in content.get("parts") or [])
