import asyncio
from contextlib import asynccontextmanager

from fastapi import FastAPI
from ainotebook.core.config import settings
from ainotebook.core.logging import setup_logging
from ainotebook.adapters.ocr.tesseract import tesseract_available
from ainotebook.services.notebook_service import NotebookService, get_notebook

from ainotebook.api.routes_sources import router as sources_router
from ainotebook.api.routes_chat import router as chat_router
from ainotebook.api.routes_notes import router as notes_router

def _llm_configured() -> bool:
    provider = (settings.LLM_PROVIDER or "gemini").lower()
    if provider == "openai":
        return bool(settings.OPENAI_API_KEY)
    if provider == "ollama":
        return True
    return bool(settings.GEMINI_API_KEY)

def create_app(notebook: NotebookService | None = None):
    setup_logging()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # Read persisted sources/messages/notes at startup, not on the first request.
        if notebook is None:
            get_notebook()
        yield

    app = FastAPI(title=settings.APP_NAME, lifespan=lifespan)
    if notebook is not None:
        app.dependency_overrides[get_notebook] = lambda: notebook

    # Allow browser-based UIs to call the API from localhost
    from fastapi.middleware.cors import CORSMiddleware
    origins = [o.strip() for o in (settings.CORS_ORIGINS or "").split(",") if o.strip()]
    if origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=origins,
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    app.include_router(sources_router)
    app.include_router(chat_router)
    app.include_router(notes_router)

    @app.get("/health")
    async def health():
        import httpx
        provider = (settings.LLM_PROVIDER or "gemini").lower()
        checks = {
            "ocr": await asyncio.to_thread(tesseract_available),
            "llm_configured": _llm_configured(),
        }
        if provider == "ollama":
            checks["ollama"] = False
            try:
                async with httpx.AsyncClient(timeout=3.0) as c:
                    r = await c.get(f"{settings.OLLAMA_BASE_URL.rstrip('/')}/api/tags")
                    checks["ollama"] = r.status_code == 200
            except Exception:
                pass

        ok = all(checks.values())
        return {"ok": ok, "app": settings.APP_NAME, "env": settings.ENV, "llm_provider": provider, "deps": checks}

    return app

app = create_app()
