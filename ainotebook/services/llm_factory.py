from ainotebook.core.config import settings
from ainotebook.adapters.llm.base import LLM
from ainotebook.adapters.llm.gemini import GeminiLLM
from ainotebook.adapters.llm.ollama import OllamaLLM
from ainotebook.adapters.llm.openai import OpenAILLM

def get_llm() -> LLM:
    provider = (settings.LLM_PROVIDER or "gemini").lower()
    if provider == "openai":
        return OpenAILLM()
    if provider == "ollama":
        return OllamaLLM()
    return GeminiLLM()
