from typing import Any

import httpx

from ainotebook.core.config import settings
from ainotebook.adapters.llm.base import LLM, PromptPart

class OllamaLLM(LLM):
    name = "ollama"

    async def generate_json(self, parts: list[PromptPart], schema: dict[str, Any]) -> str:
        # /api/chat takes one text body plus a flat list of base64 images.
        text = "".join(p.text for p in parts if p.text)
        images = [p.data for p in parts if p.is_inline and (p.mime_type or "").startswith("image/")]
        message: dict[str, Any] = {"role": "user", "content": text}
        if images:
            message["images"] = images

        async with httpx.AsyncClient(timeout=settings.LLM_TIMEOUT) as client:
            r = await client.post(
                f"{settings.OLLAMA_BASE_URL.rstrip('/')}/api/chat",
                json={
                    "model": settings.OLLAMA_MODEL,
                    "messages": [message],
                    "stream": False,
                    "format": schema,
                    "keep_alive": settings.OLLAMA_KEEP_ALIVE,
                    "options": {"temperature": settings.LLM_TEMPERATURE},
                },
            )
            r.raise_for_status()
            return (r.json().get("message") or {}).get("content", "")
