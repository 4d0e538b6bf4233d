"""Error taxonomy.

Every error carries a short, human-readable ``diagnostic`` that is safe to show
next to the upload form or the question input. The API layer maps each class
to an HTTP status (see ``ainotebook.api.errors``).
"""


class NotebookError(Exception):
    def __init__(self, diagnostic: str):
        super().__init__(diagnostic)
        self.diagnostic = diagnostic


class PreconditionError(NotebookError):
    """Empty source list, blank title/content, a question already in flight."""


class NotFoundError(NotebookError):
    pass


class IngestError(NotebookError):
    """Base for everything the ingestion pipeline reports."""


class FileTooLargeError(IngestError):
    pass


class CollaboratorUnavailableError(IngestError):
    """A parsing or OCR library (or the tesseract binary) is missing."""


class ParseError(IngestError):
    pass


class ModelResponseError(NotebookError):
    """Transport failure, malformed JSON or missing fields in the model reply."""
