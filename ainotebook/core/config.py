from pydantic_settings import BaseSettings

class Settings(BaseSettings):
    APP_NAME: str = "AI Notebook"
    ENV: str = "local"
    DATA_DIR: str = "./data"
    STATE_DB_PATH: str = "./data/notebook.sqlite3"

    # ingestion
    MAX_UPLOAD_BYTES: int = 10 * 1024 * 1024
    # A PDF page with more non-whitespace chars than this counts as having a real text layer.
    PDF_MEANINGFUL_CHARS: int = 50
    PDF_OCR_SCALE: float = 2.0
    OCR_LANG: str = "eng"
    TESSERACT_CMD: str | None = None  # override when tesseract is not on PATH

    # answers
    ANSWER_LANGUAGE: str = "Vietnamese"
    UNKNOWN_SOURCE_TITLE: str = "Unknown source"

    # llm
    LLM_PROVIDER: str = "gemini"  # gemini|openai|ollama
    LLM_TEMPERATURE: float = 0.1
    LLM_TIMEOUT: float = 180.0
    GEMINI_API_KEY: str | None = None
    GEMINI_MODEL: str = "gemini-2.5-flash"
    GEMINI_BASE_URL: str = "https://generativelanguage.googleapis.com/v1beta"
    OPENAI_API_KEY: str | None = None
    OPENAI_MODEL: str = "gpt-4o-mini"
    OLLAMA_BASE_URL: str = "http://localhost:11434"
    OLLAMA_MODEL: str = "llama3.2-vision"
    OLLAMA_KEEP_ALIVE: str = "30m"

    # CORS (for browser-based UIs)
    # Comma-separated list of allowed origins.
    CORS_ORIGINS: str = "http://localhost:3000,http://127.0.0.1:3000,http://localhost:5173,http://127.0.0.1:5173"

    class Config:
        env_file = ".env"
        extra = "ignore"

settings = Settings()
