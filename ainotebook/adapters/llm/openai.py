from typing import Any

from ainotebook.core.config import settings
from ainotebook.adapters.llm.base import LLM, PromptPart

class OpenAILLM(LLM):
    name = "openai"

    async def generate_json(self, parts: list[PromptPart], schema: dict[str, Any]) -> str:
        if not settings.OPENAI_API_KEY:
            raise RuntimeError("OPENAI_API_KEY is not set")
        from openai import AsyncOpenAI
        client = AsyncOpenAI(api_key=settings.OPENAI_API_KEY, timeout=settings.LLM_TIMEOUT)

        content: list[dict[str, Any]] = []
        for p in parts:
            if p.is_inline:
                content.append({
                    "type": "image_url",
                    "image_url": {"url": f"data:{p.mime_type};base64,{p.data}"},
                })
            elif p.text:
                content.append({"type": "text", "text": p.text})

        resp = await client.chat.completions.create(
            model=settings.OPENAI_MODEL,
            messages=[{"role": "user", "content": content}],
            temperature=settings.LLM_TEMPERATURE,
            response_format={
                "type": "json_schema",
                "json_schema": {"name": "grounded_answer", "schema": schema, "strict": True},
            },
        )
        return resp.choices[0].message.content or ""
