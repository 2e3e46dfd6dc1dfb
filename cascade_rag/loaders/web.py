from __future__ import annotations

"""Remote page loading via httpx with BeautifulSoup text extraction."""

import httpx
from bs4 import BeautifulSoup

from cascade_rag.rag.types import Document


class WebLoaderError(RuntimeError):
    """Raised when a page cannot be fetched or parsed."""
    pass


_STRIP_TAGS = ("script", "style", "noscript", "template")


def html_to_text(html: str) -> str:
    """Return the visible text of an HTML page, one block per line."""
    soup = BeautifulSoup(html, "html.parser")
    for tag in soup(_STRIP_TAGS):
        tag.decompose()
    return soup.get_text(separator="\n")


def load_web_page(
    url: str,
    timeout: float = 15.0,
    client: httpx.Client | None = None,
) -> list[Document]:
    """Fetch a page and return it as a single web Document."""
    owns_client = client is None
    if owns_client:
        client = httpx.Client(timeout=timeout, follow_redirects=True)
    try:
        response = client.get(url)
        response.raise_for_status()
    except httpx.HTTPError as exc:
        raise WebLoaderError(f"Failed to fetch {url}: {exc}") from exc
    finally:
        if owns_client:
            client.close()

    content_type = response.headers.get("content-type", "").lower()
    if "html" in content_type or not content_type:
        text = html_to_text(response.text)
    else:
        text = response.text
    if not text.strip():
        return []
    return [Document(content=text, metadata={"source": url, "kind": "web", "url": url})]
