"""Resolve full text for a batch of PMIDs: cache, availability, group, fetch."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Sequence

from cache_store import CacheKind, CacheStore
from eutils_client import EutilsClient, EutilsError
from models import Article, FullTextAvailability, FullTextResult
from query_builder import chunked

# Remote batching limit shared by the ID converter and elink calls.
MAX_BATCH_SIZE = 200

# Where a PMID's PMC id may come from, highest precedence first.
SOURCE_PRECEDENCE: tuple[str, ...] = ("summary_metadata", "id_conversion", "pmc_link")

LOGGER = logging.getLogger(__name__)


class FullTextResolver:
    """Batch full-text lookup with one PMC fetch per distinct source document.

    Availability, link and document fetch failures never raise: affected
    PMIDs come back with `full_text=None` and whatever links were found.
    """

    def __init__(self, client: EutilsClient, cache: CacheStore | None = None) -> None:
        self.client = client
        self.cache = cache if cache is not None else client.cache
        self._sources: dict[str, Callable[[list[str]], Awaitable[dict[str, str]]]] = {
            "summary_metadata": self._pmc_ids_from_summaries,
            "id_conversion": self._pmc_ids_from_id_converter,
            "pmc_link": self._pmc_ids_from_elink,
        }

    async def get_full_text(self, pmids: Sequence[str]) -> list[FullTextResult]:
        """Return one FullTextResult per input position, in input order."""
        if not pmids:
            return []

        unique = list(dict.fromkeys(pmids))
        resolved: dict[str, FullTextResult] = {}

        if self.cache is not None:
            cached = await asyncio.gather(*(self.cache.get(CacheKind.FULLTEXT, pmid) for pmid in unique))
            resolved.update(
                (pmid, FullTextResult(pmid=pmid, full_text=text))
                for pmid, text in zip(unique, cached)
                if isinstance(text, str) and text
            )

        pending = [pmid for pmid in unique if pmid not in resolved]
        if pending:
            availability = await self.resolve_availability(pending)
            resolved.update(await self._fetch_groups(pending, availability))

        LOGGER.info(
            "Full text: requested=%s cache_hits=%s available=%s",
            len(unique),
            len(unique) - len(pending),
            sum(1 for result in resolved.values() if result.full_text),
        )
        return [resolved[pmid] for pmid in pmids]

    async def check_availability(self, pmid: str) -> FullTextAvailability:
        availability = await self.resolve_availability([pmid])
        return availability[pmid]

    async def resolve_availability(self, pmids: Sequence[str]) -> dict[str, FullTextAvailability]:
        """Find each PMID's PMC id and outside links; the two run concurrently."""
        pmid_list = list(pmids)
        pmc_ids, links = await asyncio.gather(
            self._resolve_pmc_ids(pmid_list),
            self._enumerate_links(pmid_list),
        )
        return {
            pmid: FullTextAvailability(pmid=pmid, pmc_id=pmc_ids.get(pmid), links=links.get(pmid, []))
            for pmid in pmids
        }

    async def _resolve_pmc_ids(self, pmids: list[str]) -> dict[str, str]:
        found: dict[str, str] = {}
        for source in SOURCE_PRECEDENCE:
            remaining = [pmid for pmid in pmids if pmid not in found]
            if not remaining:
                break
            for pmid, pmc_id in (await self._sources[source](remaining)).items():
                if pmid in remaining:
                    found.setdefault(pmid, pmc_id)
            LOGGER.debug("PMC id source %s: resolved=%s of %s", source, len(found), len(pmids))
        return found

    async def _pmc_ids_from_summaries(self, pmids: list[str]) -> dict[str, str]:
        if self.cache is None:
            return {}
        cached = await asyncio.gather(*(self.cache.get(CacheKind.SUMMARY, pmid) for pmid in pmids))
        return {
            pmid: article.pmc_id
            for pmid, article in zip(pmids, cached)
            if isinstance(article, Article) and article.pmid == pmid and article.pmc_id
        }

    async def _pmc_ids_from_id_converter(self, pmids: list[str]) -> dict[str, str]:
        return await self._batched("ID conversion", self.client.convert_ids, pmids)

    async def _pmc_ids_from_elink(self, pmids: list[str]) -> dict[str, str]:
        return await self._batched("PMC link", self.client.fetch_pmc_links, pmids)

    async def _enumerate_links(self, pmids: list[str]) -> dict[str, list[str]]:
        return await self._batched("link enumeration", self.client.fetch_link_urls, pmids)

    async def _batched(
        self,
        label: str,
        call: Callable[[list[str]], Awaitable[dict]],
        pmids: list[str],
    ) -> dict:
        merged: dict = {}
        for batch in chunked(pmids, MAX_BATCH_SIZE):
            try:
                merged.update(await call(batch))
            except EutilsError as exc:
                LOGGER.warning("%s lookup failed for %s PMIDs: %s", label, len(batch), exc)
        return merged

    async def _fetch_groups(
        self,
        pmids: list[str],
        availability: dict[str, FullTextAvailability],
    ) -> dict[str, FullTextResult]:
        groups: dict[str, list[str]] = {}
        results: dict[str, FullTextResult] = {}
        for pmid in pmids:
            entry = availability[pmid]
            if entry.pmc_id:
                groups.setdefault(entry.pmc_id, []).append(pmid)
            else:
                results[pmid] = FullTextResult(pmid=pmid, full_text=None, links=entry.links)

        texts = await asyncio.gather(*(self._fetch_document(pmc_id) for pmc_id in groups))
        for members, text in zip(groups.values(), texts):
            for pmid in members:
                results[pmid] = FullTextResult(pmid=pmid, full_text=text, links=availability[pmid].links)
            if text and self.cache is not None:
                await asyncio.gather(*(self.cache.set(CacheKind.FULLTEXT, pmid, text) for pmid in members))
        return results

    async def _fetch_document(self, pmc_id: str) -> str | None:
        try:
            text = await self.client.fetch_pmc_article(pmc_id)
        except EutilsError as exc:
            LOGGER.warning("Full-text fetch failed for %s: %s", pmc_id, exc)
            return None
        if text is None:
            LOGGER.info("No article found in PMC payload for %s", pmc_id)
        return text
