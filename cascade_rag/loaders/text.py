from __future__ import annotations

"""Plain text and Markdown loader for ingestion."""

from pathlib import Path

from cascade_rag.loaders.pdf import act_name
from cascade_rag.rag.types import Document


def load_text_file(path: Path) -> Document:
    """Load a text file from disk into a Document."""
    content = path.read_text(encoding="utf-8", errors="ignore")
    return Document(
        content=content,
        metadata={"source": act_name(path), "kind": "file", "path": str(path)},
    )
