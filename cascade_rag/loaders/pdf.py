from __future__ import annotations

"""PDF loading, one Document per page."""

from pathlib import Path

from cascade_rag.rag.types import Document


class PDFLoaderError(RuntimeError):
    """Raised when PDF loading fails."""
    pass


def act_name(path: Path) -> str:
    """Derive a readable provenance label from a file name."""
    return path.stem.replace("_", " ").strip()


def load_pdf_pages(path: Path) -> list[Document]:
    """Load a PDF from disk and return one Document per non-empty page."""
    try:
        import fitz
    except ImportError as exc:
        raise PDFLoaderError("PyMuPDF is required to load PDF files") from exc

    label = act_name(path)
    documents: list[Document] = []
    try:
        reader = fitz.open(str(path))
    except Exception as exc:
        raise PDFLoaderError(f"Failed to open {path.name}: {exc}") from exc
    with reader:
        if reader.needs_pass:
            raise PDFLoaderError(f"{path.name} is encrypted")
        try:
            total = reader.page_count
            for number, page in enumerate(reader, start=1):
                text = page.get_text() or ""
                if not text.strip():
                    continue
                documents.append(
                    Document(
                        content=text,
                        metadata={
                            "source": label,
                            "kind": "file",
                            "path": str(path),
                            "page": number,
                            "page_count": total,
                        },
                    )
                )
        except Exception as exc:
            raise PDFLoaderError(f"Failed to read {path.name}: {exc}") from exc
    return documents
