"""Async client for the NCBI E-utilities and PMC ID converter services."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Mapping, Sequence
from typing import Any, TypeVar

import requests

from cache_store import CacheKind, CacheStore, open_cache
from fulltext_parser import render_pmc_article
from models import Article, SearchOptions, SearchResult
from normalizer import parse_articles, parse_id_conversion, parse_link_urls, parse_pmc_links, parse_search_result
from query_builder import ParamValue, build_request_url, build_search_term, chunked
from settings import ClientSettings
from throttle import RequestThrottle, spacing_for

T = TypeVar("T")

REQUEST_TIMEOUT_SECONDS = 30
SUMMARY_BATCH_SIZE = 200

LOGGER = logging.getLogger(__name__)


class EutilsError(RuntimeError):
    """A remote call failed or returned a payload of unexpected shape."""


class EutilsClient:
    """Throttled access to esearch/efetch/elink plus the summary cache.

    Every outbound request passes through `throttle`; pass the same
    RequestThrottle to several clients to make them share one rate budget.
    """

    def __init__(
        self,
        settings: ClientSettings,
        throttle: RequestThrottle | None = None,
        cache: CacheStore | None = None,
        request_spacing_ms: int | None = None,
    ) -> None:
        self.settings = settings
        self.throttle = throttle or RequestThrottle()
        self.cache = cache
        self.spacing_ms = spacing_for(settings.api_key) if request_spacing_ms is None else request_spacing_ms

    async def search(self, query: str, options: SearchOptions | None = None) -> SearchResult:
        """Run esearch; transport or shape failures raise EutilsError."""
        options = options or SearchOptions()
        params: dict[str, ParamValue] = {
            "db": "pubmed",
            "term": build_search_term(query, options.date_from, options.date_to),
            "retmax": options.ret_max,
            "retstart": options.ret_start,
            "sort": options.sort,
            "usehistory": "y",
        }
        xml_text = await self._get_text("esearch", params)
        result = _parse("esearch", parse_search_result, xml_text, options.ret_max, options.ret_start)
        LOGGER.info("PubMed search: query=%r count=%s returned=%s", query, result.count, len(result.id_list))
        return result

    async def fetch_articles(self, pmids: Sequence[str]) -> list[Article]:
        """Return Articles in the caller's order, serving cache hits first.

        PMIDs the service does not know are silently absent from the result;
        duplicated PMIDs appear once per occurrence.
        """
        if not pmids:
            return []

        unique = list(dict.fromkeys(pmids))
        found: dict[str, Article] = {}
        if self.cache is not None:
            cached = await asyncio.gather(*(self.cache.get(CacheKind.SUMMARY, pmid) for pmid in unique))
            found.update(
                (pmid, article)
                for pmid, article in zip(unique, cached)
                if isinstance(article, Article) and article.pmid == pmid
            )

        missing = [pmid for pmid in unique if pmid not in found]
        for batch in chunked(missing, SUMMARY_BATCH_SIZE):
            xml_text = await self._get_text(
                "efetch",
                {"db": "pubmed", "id": ",".join(batch), "retmode": "xml", "rettype": "abstract"},
            )
            requested = set(batch)
            fresh = {
                article.pmid: article
                for article in _parse("efetch", parse_articles, xml_text)
                if article.pmid in requested
            }
            found.update(fresh)
            if self.cache is not None:
                await asyncio.gather(
                    *(self.cache.set(CacheKind.SUMMARY, pmid, article) for pmid, article in fresh.items())
                )

        LOGGER.info(
            "PubMed summaries: requested=%s cache_hits=%s fetched=%s",
            len(unique),
            len(unique) - len(missing),
            len([pmid for pmid in missing if pmid in found]),
        )
        return [found[pmid] for pmid in pmids if pmid in found]

    async def search_and_fetch(self, query: str, options: SearchOptions | None = None) -> list[Article]:
        result = await self.search(query, options)
        return await self.fetch_articles(result.id_list)

    async def fetch_pmc_links(self, pmids: Sequence[str]) -> dict[str, str]:
        """Map PMIDs to PMC ids through elink pubmed_pmc (one link set per id)."""
        xml_text = await self._get_text(
            "elink",
            {"dbfrom": "pubmed", "db": "pmc", "linkname": "pubmed_pmc", "id": list(pmids)},
        )
        return _parse("elink", parse_pmc_links, xml_text)

    async def fetch_link_urls(self, pmids: Sequence[str]) -> dict[str, list[str]]:
        """Collect externally hosted full-text URLs through elink llinks."""
        xml_text = await self._get_text(
            "elink",
            {"dbfrom": "pubmed", "cmd": "llinks", "id": list(pmids)},
        )
        return _parse("elink", parse_link_urls, xml_text)

    async def convert_ids(self, pmids: Sequence[str]) -> dict[str, str]:
        """Map PMIDs to PMC ids through the PMC ID converter."""
        payload = await self._get_json(
            "idconv",
            {"ids": ",".join(pmids), "idtype": "pmid", "format": "json"},
        )
        return _parse("idconv", parse_id_conversion, payload)

    async def fetch_pmc_article(self, pmc_id: str) -> str | None:
        """Fetch one PMC document and render it; None when it has no article."""
        numeric_id = pmc_id[3:] if pmc_id.upper().startswith("PMC") else pmc_id
        xml_text = await self._get_text("efetch", {"db": "pmc", "id": numeric_id, "retmode": "xml"})
        return _parse("pmc efetch", render_pmc_article, xml_text)

    async def _get_text(self, operation: str, params: Mapping[str, ParamValue]) -> str:
        response = await self._get(operation, params)
        return response.text

    async def _get_json(self, operation: str, params: Mapping[str, ParamValue]) -> Any:
        response = await self._get(operation, params)
        try:
            return response.json()
        except ValueError as exc:
            raise EutilsError(f"{operation} returned invalid JSON: {exc}") from exc

    async def _get(self, operation: str, params: Mapping[str, ParamValue]) -> requests.Response:
        url = build_request_url(operation, params, self.settings.email, self.settings.api_key)

        async def _call() -> requests.Response:
            response = await asyncio.to_thread(requests.get, url, timeout=REQUEST_TIMEOUT_SECONDS)
            response.raise_for_status()
            return response

        LOGGER.debug("E-utilities request: %s", operation)
        try:
            return await self.throttle.execute(self.spacing_ms, _call)
        except requests.RequestException as exc:
            raise EutilsError(f"{operation} request failed: {exc}") from exc


def _parse(operation: str, parser: Callable[..., T], *args: Any) -> T:
    try:
        return parser(*args)
    except ValueError as exc:
        raise EutilsError(f"Unexpected {operation} response: {exc}") from exc


def create_client(settings: ClientSettings, throttle: RequestThrottle | None = None) -> EutilsClient:
    """Build a client whose cache follows the settings (None disables caching)."""
    return EutilsClient(settings, throttle=throttle, cache=open_cache(settings))
