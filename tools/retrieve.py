from __future__ import annotations

"""CLI utility to inspect the nearest chunks for a query."""

import argparse

from cascade_rag.app.dependencies import close_services, get_settings, get_vector_index
from cascade_rag.app.logconfig import configure_logging
from cascade_rag.vectorstore.local import EmbeddingModelMismatch, IndexNotFound


def main(argv: list[str] | None = None) -> None:
    config = get_settings()
    parser = argparse.ArgumentParser(description="Print the top-k chunks for a query.")
    parser.add_argument("query", help="Text to search for.")
    parser.add_argument("-k", "--top-k", type=int, default=config.top_k)
    parser.add_argument("--width", type=int, default=300, help="Characters of each chunk to print.")
    args = parser.parse_args(argv)

    configure_logging(config.log_level)
    try:
        index = get_vector_index()
    except (IndexNotFound, EmbeddingModelMismatch) as exc:
        raise SystemExit(str(exc)) from exc
    try:
        results = index.similarity_search(args.query, args.top_k)
        if not results:
            print("No results.")
        for rank, result in enumerate(results, start=1):
            metadata = result.chunk.metadata
            location = metadata.get("source", "unknown")
            if "page" in metadata:
                location = f"{location} p.{metadata['page']}"
            print(f"#{rank} distance={result.distance:.4f} {location}")
            print(result.chunk.content[: args.width])
            print()
    finally:
        close_services()


if __name__ == "__main__":
    main()
