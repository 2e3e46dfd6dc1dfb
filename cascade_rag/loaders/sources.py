from __future__ import annotations

"""Source dispatch: turn configured paths and URLs into Documents."""

import logging
from pathlib import Path
from typing import Iterable
from urllib.parse import urlparse

import httpx

from cascade_rag.loaders.pdf import PDFLoaderError, load_pdf_pages
from cascade_rag.loaders.text import load_text_file
from cascade_rag.loaders.web import WebLoaderError, load_web_page
from cascade_rag.rag.types import Document

logger = logging.getLogger(__name__)

TEXT_SUFFIXES = {".txt", ".md", ".markdown"}


class SourceUnavailable(RuntimeError):
    """Raised when a single ingestion source cannot be loaded."""

    def __init__(self, source: str, reason: str) -> None:
        super().__init__(f"{source}: {reason}")
        self.source = source
        self.reason = reason


def is_url(source: str) -> bool:
    return urlparse(source).scheme in {"http", "https"}


def load_source(
    source: str,
    web_timeout: float = 15.0,
    client: httpx.Client | None = None,
) -> list[Document]:
    """Load one source, raising SourceUnavailable on any source-level failure."""
    if is_url(source):
        try:
            return load_web_page(source, timeout=web_timeout, client=client)
        except WebLoaderError as exc:
            raise SourceUnavailable(source, str(exc)) from exc

    path = Path(source)
    if not path.is_file():
        raise SourceUnavailable(source, "file not found")
    suffix = path.suffix.lower()
    if suffix == ".pdf":
        try:
            return load_pdf_pages(path)
        except PDFLoaderError as exc:
            raise SourceUnavailable(source, str(exc)) from exc
    if suffix in TEXT_SUFFIXES:
        try:
            return [load_text_file(path)]
        except OSError as exc:
            raise SourceUnavailable(source, str(exc)) from exc
    raise SourceUnavailable(source, f"unsupported file type: {suffix or 'none'}")


def load_sources(
    sources: Iterable[str],
    web_timeout: float = 15.0,
    client: httpx.Client | None = None,
) -> list[Document]:
    """Load every source, skipping the ones that fail.

    Returns the concatenated Documents of all successful sources. An empty
    result means nothing could be loaded; callers decide whether that is fatal.
    """
    documents: list[Document] = []
    for source in sources:
        try:
            loaded = load_source(source, web_timeout=web_timeout, client=client)
        except SourceUnavailable as exc:
            logger.warning(
                "source_skipped",
                extra={"source": exc.source, "reason": exc.reason},
            )
            continue
        logger.info(
            "source_loaded",
            extra={"source": source, "documents": len(loaded)},
        )
        documents.extend(loaded)
    return documents
