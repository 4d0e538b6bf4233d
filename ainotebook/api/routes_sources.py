import asyncio
import json
import logging
from pathlib import Path

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile
from fastapi.responses import StreamingResponse
from pydantic import BaseModel

from ainotebook.api.errors import to_http
from ainotebook.core.config import settings
from ainotebook.core.errors import NotebookError
from ainotebook.core.models import SourceContent
from ainotebook.services.ingest_service import ACCEPTED_EXTENSIONS, ingest_upload
from ainotebook.services.notebook_service import NotebookService, get_notebook

log = logging.getLogger(__name__)

router = APIRouter(prefix="/sources", tags=["sources"])

PREVIEW_CHARS = 70


class CreateSourceRequest(BaseModel):
    title: str
    content: str
    file_name: str | None = None


def _summary(s) -> dict:
    # Full text can be large; the listing only needs a preview.
    return {
        "id": s.id,
        "title": s.title,
        "file_name": s.file_name,
        "mime_type": s.content.mime_type,
        "chars": len(s.content.data),
        "preview": s.content.data[:PREVIEW_CHARS],
    }


async def _read_upload(file: UploadFile) -> tuple[bytes, str, str]:
    name = Path(file.filename or "upload").name
    # Reading the limit is enough to trip the size guard; the rest of the body is never read.
    data = await file.read(settings.MAX_UPLOAD_BYTES)
    return data, file.content_type or "", name


@router.get("")
async def list_sources(notebook: NotebookService = Depends(get_notebook)):
    return [_summary(s) for s in notebook.store.sources]


@router.get("/limits")
async def upload_limits():
    return {
        "accepted_extensions": list(ACCEPTED_EXTENSIONS),
        "max_upload_bytes": settings.MAX_UPLOAD_BYTES,
    }


@router.get("/{source_id}")
async def get_source(source_id: str, notebook: NotebookService = Depends(get_notebook)):
    s = notebook.store.get_source(source_id)
    if not s:
        raise HTTPException(status_code=404, detail={"error": "Source not found."})
    return s.model_dump()


@router.post("")
async def create_source(req: CreateSourceRequest, notebook: NotebookService = Depends(get_notebook)):
    """Pasted text source."""
    try:
        s = notebook.add_source(req.title, SourceContent(mime_type="text/plain", data=req.content), req.file_name)
    except NotebookError as e:
        raise to_http(e)
    return s.model_dump()


@router.post("/extract")
async def extract_upload(file: UploadFile = File(...)):
    """Normalize an upload without storing it, so the text can be reviewed first."""
    data, mime, name = await _read_upload(file)
    try:
        content = await ingest_upload(data, mime, name)
    except NotebookError as e:
        raise to_http(e)
    return {"title": name, "file_name": name, "content": content.model_dump()}


@router.post("/upload")
async def upload_source(
    file: UploadFile = File(...),
    title: str | None = Form(None),
    notebook: NotebookService = Depends(get_notebook),
):
    data, mime, name = await _read_upload(file)
    try:
        content = await ingest_upload(data, mime, name)
        s = notebook.add_source(title or name, content, file_name=name)
    except NotebookError as e:
        raise to_http(e)
    return s.model_dump()


def _sse(event: str, payload) -> str:
    return f"event: {event}\ndata: {json.dumps(payload, ensure_ascii=False)}\n\n"


@router.post("/upload/stream")
async def upload_source_stream(
    file: UploadFile = File(...),
    title: str | None = Form(None),
    notebook: NotebookService = Depends(get_notebook),
):
    """Server-Sent Events variant of /upload for slow OCR work.

    Emits events:
      - status: { status }   progress lines ("OCR page 2 of 5...")
      - source: { ...Source }
      - error: { error }
      - done: [DONE]
    """
    data, mime, name = await _read_upload(file)

    async def event_gen():
        # The ingestion runs in its own task and reports progress through a queue;
        # None marks the end. Pings keep proxies from closing an idle stream.
        q: asyncio.Queue[str | None] = asyncio.Queue()
        result: dict = {}

        async def producer():
            try:
                content = await ingest_upload(data, mime, name, on_status=q.put_nowait)
                result["source"] = notebook.add_source(title or name, content, file_name=name).model_dump()
            except NotebookError as e:
                result["error"] = e.diagnostic
            except Exception:
                log.exception("streamed upload of %r failed", name)
                result["error"] = "Upload failed."
            finally:
                q.put_nowait(None)

        task = asyncio.create_task(producer())
        try:
            while True:
                try:
                    status = await asyncio.wait_for(q.get(), timeout=15.0)
                except asyncio.TimeoutError:
                    yield "event: ping\ndata: {}\n\n"
                    continue
                if status is None:
                    break
                yield _sse("status", {"status": status})

            if "error" in result:
                yield _sse("error", {"error": result["error"]})
            else:
                yield _sse("source", result["source"])
            yield "event: done\ndata: [DONE]\n\n"
        finally:
            if not task.done():
                task.cancel()

    headers = {
        "Cache-Control": "no-cache",
        "Connection": "keep-alive",
        "X-Accel-Buffering": "no",
    }
    return StreamingResponse(event_gen(), media_type="text/event-stream", headers=headers)


@router.delete("/{source_id}")
async def delete_source(source_id: str, notebook: NotebookService = Depends(get_notebook)):
    try:
        notebook.delete_source(source_id)
    except NotebookError as e:
        raise to_http(e)
    return {"ok": True, "id": source_id}
