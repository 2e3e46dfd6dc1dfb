from __future__ import annotations

"""CLI utility to build the persisted vector index from configured sources."""

import argparse
import logging
from dataclasses import replace

from cascade_rag.app.dependencies import build_embedder, get_settings
from cascade_rag.app.logconfig import configure_logging
from cascade_rag.app.settings import ConfigError
from cascade_rag.loaders.chunking import StructuralSplitter
from cascade_rag.rag.embeddings import EmbeddingConfigError, EmbeddingUnavailable
from cascade_rag.rag.indexer import CorpusIndexer, NoDocumentsLoaded

logger = logging.getLogger(__name__)


def main(argv: list[str] | None = None) -> None:
    """Load, split, embed and persist every configured source."""
    config = get_settings()
    parser = argparse.ArgumentParser(description="Build the vector index from PDFs, text files and URLs.")
    parser.add_argument(
        "sources",
        nargs="*",
        help="Paths or URLs to ingest. Defaults to RAG_SOURCES.",
    )
    parser.add_argument("--index-path", default=config.index_path, help="Output index directory.")
    parser.add_argument("--chunk-size", type=int, default=config.chunk_size)
    parser.add_argument("--chunk-overlap", type=int, default=config.chunk_overlap)
    parser.add_argument("--batch-size", type=int, default=config.ingest_batch_size)
    args = parser.parse_args(argv)

    configure_logging(config.log_level)
    config = replace(
        config,
        sources=args.sources or config.sources,
        index_path=args.index_path,
        chunk_size=args.chunk_size,
        chunk_overlap=args.chunk_overlap,
        ingest_batch_size=args.batch_size,
    )
    try:
        config.validate_for_ingestion()
    except ConfigError as exc:
        logger.error("ingestion_config_invalid", extra={"detail": str(exc)})
        raise SystemExit(1) from exc

    try:
        splitter = StructuralSplitter(
            chunk_size=config.chunk_size,
            chunk_overlap=config.chunk_overlap,
            separators=config.chunk_separators,
        )
        indexer = CorpusIndexer(
            sources=config.sources,
            embedder=build_embedder(config),
            index_path=config.index_path,
            splitter=splitter,
            batch_size=config.ingest_batch_size,
            web_timeout=config.web_timeout,
        )
        report = indexer.build()
    except (NoDocumentsLoaded, EmbeddingUnavailable, EmbeddingConfigError, ValueError) as exc:
        logger.error("ingestion_failed", extra={"detail": str(exc)})
        raise SystemExit(1) from exc

    print(
        f"Indexed {report.chunks} chunks from {report.documents} documents "
        f"({report.sources} sources, {report.batches} batches) into {report.index_path}"
    )


if __name__ == "__main__":
    main()
