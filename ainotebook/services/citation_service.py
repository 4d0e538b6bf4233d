from __future__ import annotations

from ainotebook.core.config import settings
from ainotebook.core.models import Citation, RawCitation, Source


def resolve_citations(
    raw: list[RawCitation],
    sources: list[Source],
    unknown_title: str | None = None,
) -> list[Citation]:
    """Attach a display title to each cited source id.

    Titles are looked up in `sources` as they are *now*, so a source deleted
    while the model was answering resolves to the unknown-source placeholder.
    The resulting citations are a snapshot; later renames or deletions do not
    touch them.
    """
    unknown_title = unknown_title or settings.UNKNOWN_SOURCE_TITLE
    titles = {s.id: s.title for s in sources}
    return [
        Citation(
            source_id=c.source_id,
            source_title=titles.get(c.source_id) or unknown_title,
            quote=c.quote,
        )
        for c in raw
    ]
