from __future__ import annotations

import logging


def configure_logging(level: str = "INFO") -> None:
    """Configure root logging once per process."""
    resolved = getattr(logging, level.strip().upper(), logging.INFO)
    root_logger = logging.getLogger()
    if not root_logger.handlers:
        logging.basicConfig(
            level=resolved,
            format="%(asctime)s %(levelname)s %(name)s %(message)s",
        )
    root_logger.setLevel(resolved)
    # httpx logs every request line at INFO, including full URLs.
    logging.getLogger("httpx").setLevel(max(resolved, logging.WARNING))
