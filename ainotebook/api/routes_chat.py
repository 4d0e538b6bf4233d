from fastapi import APIRouter, Depends
from pydantic import BaseModel

from ainotebook.api.errors import to_http
from ainotebook.core.errors import NotebookError
from ainotebook.services.notebook_service import NotebookService, get_notebook

router = APIRouter(prefix="/chat", tags=["chat"])

class ChatRequest(BaseModel):
    question: str

@router.get("")
async def list_messages(notebook: NotebookService = Depends(get_notebook)):
    return {
        "messages": [m.model_dump() for m in notebook.store.messages],
        "busy": notebook.busy,
    }

@router.post("")
async def chat(req: ChatRequest, notebook: NotebookService = Depends(get_notebook)):
    # On failure the question stays in the log; the client shows the error next to the input.
    try:
        reply = await notebook.send_message(req.question)
    except NotebookError as e:
        raise to_http(e)
    return reply.model_dump()

@router.delete("")
async def new_chat(notebook: NotebookService = Depends(get_notebook)):
    notebook.start_new_chat()
    return {"ok": True}
