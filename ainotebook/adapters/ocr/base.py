from abc import ABC, abstractmethod
from typing import Any, Callable

# Receives a fraction in [0, 1].
ProgressCallback = Callable[[float], None]

class OCREngine(ABC):
    name: str = "ocr"

    @abstractmethod
    async def recognize(self, image: Any, on_progress: ProgressCallback | None = None) -> str:
        """Return the text found in a PIL image."""
        ...

    async def terminate(self) -> None:
        """Release engine resources. Engines are single-use: one image or one PDF."""
        return None
