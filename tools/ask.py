from __future__ import annotations

"""CLI utility to send one question through the answer cascade."""

import argparse
import asyncio

from cascade_rag.app.dependencies import close_services, get_orchestrator, get_settings
from cascade_rag.app.logconfig import configure_logging
from cascade_rag.app.settings import ConfigError


async def _ask(question: str, show_context: bool) -> None:
    response = await get_orchestrator().answer(question)
    print(response.reply)
    print(f"\n[source: {response.source.value}]")
    if show_context:
        for passage in response.context:
            print(f"\n---\n{passage}")


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(description="Ask one question and print the reply and tier.")
    parser.add_argument("question", help="Question to answer.")
    parser.add_argument("--show-context", action="store_true", help="Print the context passages.")
    args = parser.parse_args(argv)

    config = get_settings()
    configure_logging(config.log_level)
    try:
        config.validate_for_serving()
    except ConfigError as exc:
        raise SystemExit(str(exc)) from exc
    try:
        asyncio.run(_ask(args.question, args.show_context))
    finally:
        close_services()


if __name__ == "__main__":
    main()
