"""
Product page extractor for the monitored bookstore layout.

The target site renders every product page with the same structure, so the
extractor is driven by one fixed selector map. Missing elements produce empty
fields (or a zero price) instead of errors.
"""

import logging
import re
from typing import Optional, Union

from bs4 import BeautifulSoup, Tag

from core.types import BookRecord
from utils.error_handling import ExtractionFailure

logger = logging.getLogger(__name__)


SELECTORS = {
    "title": "#data-info-libro > div > div > p.tituloProducto",
    "catalog_id": "#metadata-isbn13",
    "image_url": "#imgPortada",
    "price": "#detallePrecio > div.opcionForm.idx1 > strong.precio",
    "discount_label": "#opciones > div.opcionPrecio.selected > div.colDescuento > div > span",
    "author": (
        "#data-info-libro > div > div > p.font-weight-light.margin-0.font-size-h1"
        " > a.font-color-bl.link-underline"
    ),
    "details": (
        "#producto > div.row.product-info > div.col-xs-12.col-md-3 > div > div > div"
        " > div > div > div:nth-child(6) > div > div"
    ),
    "description": "#texto-descripcion",
}

# Probed only for diagnostics when the primary price selector is empty.
FALLBACK_PRICE_SELECTORS = [
    ".precio",
    ".product-price",
    ".current-price",
    "[data-price]",
    '[itemprop="price"]',
]

_NON_DIGITS = re.compile(r"\D")
_WHITESPACE = re.compile(r"\s+")


def parse_price(text: str) -> int:
    """Strip every non-digit character; no digits at all means price 0."""
    digits = _NON_DIGITS.sub("", text or "")
    return int(digits) if digits else 0


def clean_details(details: str) -> str:
    return _WHITESPACE.sub(" ", details).strip()


def _select_text(soup: BeautifulSoup, selector: str) -> str:
    element = soup.select_one(selector)
    if element is None:
        return ""
    return element.get_text().strip()


def _select_attr(soup: BeautifulSoup, selector: str, attr: str) -> str:
    element: Optional[Tag] = soup.select_one(selector)
    if element is None:
        return ""
    value = element.get(attr)
    if isinstance(value, list):
        value = " ".join(value)
    return (value or "").strip()


def _log_price_diagnostics(soup: BeautifulSoup, link: str) -> None:
    if not logger.isEnabledFor(logging.DEBUG):
        return
    logger.debug("Primary price selector empty for %s, probing alternatives", link)
    for selector in FALLBACK_PRICE_SELECTORS:
        element = soup.select_one(selector)
        if element is not None:
            logger.debug(
                "Alternative price candidate %r for %s: %r",
                selector,
                link,
                element.get_text().strip(),
            )


def extract_book_data(html: Union[str, bytes], link: str) -> BookRecord:
    """
    Parse a product page into a BookRecord.

    Args:
        html: Raw page HTML
        link: URL the page was fetched from (copied into the record)

    Returns:
        BookRecord with empty strings for missing fields and price 0 when no
        price could be parsed.

    Raises:
        ExtractionFailure: If the input is not a document at all
    """
    if not isinstance(html, (str, bytes)):
        raise ExtractionFailure(
            f"Cannot tokenize {type(html).__name__} as HTML", {"url": link}
        )

    soup = BeautifulSoup(html, "html.parser")

    price_text = _select_text(soup, SELECTORS["price"])
    if not price_text:
        _log_price_diagnostics(soup, link)
    price = parse_price(price_text)

    return BookRecord(
        title=_select_text(soup, SELECTORS["title"]),
        catalog_id=_select_text(soup, SELECTORS["catalog_id"]),
        link=link,
        image_url=_select_attr(soup, SELECTORS["image_url"], "data-src"),
        price=price,
        discount_label=_select_text(soup, SELECTORS["discount_label"]),
        author=_select_text(soup, SELECTORS["author"]),
        details=clean_details(_select_text(soup, SELECTORS["details"])),
        description=_select_text(soup, SELECTORS["description"]),
        out_of_stock=not price > 0,
    )
