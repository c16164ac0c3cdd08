"""Pure helpers that turn an operation plus parameters into a request URL."""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Mapping, Sequence
from typing import TypeVar
from urllib.parse import urlencode

T = TypeVar("T")

EUTILS_BASE_URL = "https://eutils.ncbi.nlm.nih.gov/entrez/eutils"
IDCONV_URL = "https://www.ncbi.nlm.nih.gov/pmc/utils/idconv/v1.0/"
TOOL_NAME = "pubmed-eutils-cache"

OPERATION_URLS: dict[str, str] = {
    "esearch": f"{EUTILS_BASE_URL}/esearch.fcgi",
    "efetch": f"{EUTILS_BASE_URL}/efetch.fcgi",
    "elink": f"{EUTILS_BASE_URL}/elink.fcgi",
    "idconv": IDCONV_URL,
}

DEFAULT_DATE_FROM = "1900/01/01"
DEFAULT_DATE_TO = "3000/12/31"

ParamValue = str | int | Sequence[str]


def build_request_url(
    operation: str,
    params: Mapping[str, ParamValue],
    email: str,
    api_key: str | None = None,
    tool: str = TOOL_NAME,
) -> str:
    """Return the full request URL for one E-utilities (or ID converter) call.

    Identity parameters come first, followed by the caller's parameters in
    their given order. List or tuple values become repeated parameters.
    """
    try:
        base_url = OPERATION_URLS[operation]
    except KeyError:
        raise ValueError(f"Unknown E-utilities operation: {operation}") from None

    query: list[tuple[str, str]] = [("email", email), ("tool", tool)]
    if api_key:
        query.append(("api_key", api_key))

    for name, value in params.items():
        if isinstance(value, (list, tuple)):
            query.extend((name, str(item)) for item in value)
        else:
            query.append((name, str(value)))

    return f"{base_url}?{urlencode(query)}"


def build_search_term(query: str, date_from: str | None = None, date_to: str | None = None) -> str:
    """Append a publication-date range clause when either bound is given."""
    if not date_from and not date_to:
        return query
    start = date_from or DEFAULT_DATE_FROM
    end = date_to or DEFAULT_DATE_TO
    return f'{query} AND ("{start}"[Date - Publication] : "{end}"[Date - Publication])'


def chunked(items: Iterable[T], size: int) -> Iterator[list[T]]:
    """Yield consecutive batches of at most `size` items."""
    if size < 1:
        raise ValueError("chunk size must be positive")
    batch: list[T] = []
    for item in items:
        batch.append(item)
        if len(batch) == size:
            yield batch
            batch = []
    if batch:
        yield batch
