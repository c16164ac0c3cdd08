"""Caller-facing search, fetch-summary and get-full-text operations."""

from __future__ import annotations

import json
from collections.abc import Sequence
from dataclasses import asdict, is_dataclass
from typing import Any

from eutils_client import EutilsClient
from fulltext_resolver import FullTextResolver
from models import Article, FullTextResult, SearchOptions, SearchResultItem


async def search(client: EutilsClient, query: str, options: SearchOptions | None = None) -> list[SearchResultItem]:
    """Search PubMed and return pmid, title and publication date per hit."""
    articles = await client.search_and_fetch(query, options)
    return [
        SearchResultItem(pmid=article.pmid, title=article.title, pub_date=article.pub_date)
        for article in articles
    ]


async def fetch_summary(client: EutilsClient, pmids: Sequence[str]) -> list[Article]:
    return await client.fetch_articles(pmids)


async def get_full_text(resolver: FullTextResolver, pmids: Sequence[str]) -> list[FullTextResult]:
    return await resolver.get_full_text(pmids)


def to_json(value: Any) -> str:
    """Serialize a dataclass, or a list of them, as indented JSON."""
    return json.dumps(_plain(value), indent=2, ensure_ascii=False)


def _plain(value: Any) -> Any:
    if is_dataclass(value) and not isinstance(value, type):
        return asdict(value)
    if isinstance(value, (list, tuple)):
        return [_plain(item) for item in value]
    return value
