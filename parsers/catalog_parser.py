"""Catalog/list page parsing: product links under the cover thumbnails."""

from typing import List, Optional, Union
from urllib.parse import urldefrag, urljoin, urlsplit, urlunsplit

from bs4 import BeautifulSoup

BOOK_LINK_SELECTOR = ".portadaProducto > a"


def parse_book_links(html: Union[str, bytes], base_url: Optional[str] = None) -> List[str]:
    """
    Return product page URLs found on a list page, in document order.

    Relative links are resolved against ``base_url`` when given. Empty and
    repeated hrefs are dropped.
    """
    soup = BeautifulSoup(html, "html.parser")
    links: List[str] = []
    seen = set()
    for anchor in soup.select(BOOK_LINK_SELECTOR):
        href = (anchor.get("href") or "").strip()
        if not href:
            continue
        if base_url:
            href = urljoin(base_url, href)
        if href in seen:
            continue
        seen.add(href)
        links.append(href)
    return links


def normalize_link(url: str) -> str:
    """
    Canonical form used to compare product links.

    Drops the fragment and a trailing slash, lowercases scheme and host.
    """
    url, _ = urldefrag(url.strip())
    parts = urlsplit(url)
    path = parts.path.rstrip("/") or "/"
    return urlunsplit((parts.scheme.lower(), parts.netloc.lower(), path, parts.query, ""))
