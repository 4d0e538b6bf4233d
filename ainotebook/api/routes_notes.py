from fastapi import APIRouter, Depends
from pydantic import BaseModel

from ainotebook.api.errors import to_http
from ainotebook.core.errors import NotebookError
from ainotebook.services.notebook_service import NotebookService, get_notebook

router = APIRouter(prefix="/notes", tags=["notes"])

class PinRequest(BaseModel):
    message_id: str

@router.get("")
async def list_notes(notebook: NotebookService = Depends(get_notebook)):
    return [n.model_dump() for n in notebook.store.notes]

@router.post("")
async def pin_message(req: PinRequest, notebook: NotebookService = Depends(get_notebook)):
    try:
        note = notebook.add_note(req.message_id)
    except NotebookError as e:
        raise to_http(e)
    return note.model_dump()

@router.delete("/{note_id}")
async def delete_note(note_id: str, notebook: NotebookService = Depends(get_notebook)):
    try:
        notebook.delete_note(note_id)
    except NotebookError as e:
        raise to_http(e)
    return {"ok": True, "id": note_id}
