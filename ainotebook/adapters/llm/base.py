from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any

@dataclass
class PromptPart:
    """One piece of a multi-part prompt: either text or an inline base64 payload."""
    text: str | None = None
    mime_type: str | None = None
    data: str | None = None

    @classmethod
    def inline(cls, mime_type: str, data: str) -> "PromptPart":
        return cls(mime_type=mime_type, data=data)

    @property
    def is_inline(self) -> bool:
        return self.data is not None

class LLM(ABC):
    name: str = "llm"

    @abstractmethod
    async def generate_json(self, parts: list[PromptPart], schema: dict[str, Any]) -> str:
        """Single request constrained to `schema`; returns the raw JSON text of the reply."""
        ...
