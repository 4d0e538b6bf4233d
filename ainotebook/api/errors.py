from fastapi import HTTPException

from ainotebook.core.errors import (
    CollaboratorUnavailableError,
    FileTooLargeError,
    IngestError,
    ModelResponseError,
    NotebookError,
    NotFoundError,
    PreconditionError,
)

# Most specific first.
_STATUS = (
    (FileTooLargeError, 413),
    (CollaboratorUnavailableError, 503),
    (IngestError, 422),
    (NotFoundError, 404),
    (PreconditionError, 400),
    (ModelResponseError, 502),
)


def to_http(e: NotebookError) -> HTTPException:
    status = next((code for cls, code in _STATUS if isinstance(e, cls)), 500)
    return HTTPException(status_code=status, detail={"error": e.diagnostic})
