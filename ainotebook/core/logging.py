import logging
from ainotebook.core.config import settings

def setup_logging():
    level = logging.DEBUG if settings.ENV != "prod" else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
    )
    # httpx logs every request at INFO; keep the notebook's own lines readable.
    logging.getLogger("httpx").setLevel(logging.WARNING)
