"""Shared typed models for the PubMed client."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field, fields
from typing import Any, Generic, TypeVar

T = TypeVar("T")

SORT_KEYS: frozenset[str] = frozenset({"relevance", "pub_date", "author", "journal"})


@dataclass(frozen=True, slots=True)
class SearchOptions:
    """Paging, ordering and date-filter options for one search call."""

    ret_max: int = 20
    ret_start: int = 0
    sort: str = "relevance"
    date_from: str | None = None
    date_to: str | None = None


@dataclass(frozen=True, slots=True)
class SearchResult:
    """Outcome of one esearch call."""

    id_list: list[str]
    count: int
    ret_max: int
    ret_start: int


@dataclass(frozen=True, slots=True)
class SearchResultItem:
    """Compact search row returned to callers."""

    pmid: str
    title: str
    pub_date: str


@dataclass(frozen=True, slots=True)
class Article:
    """Normalized bibliographic record built from a PubMed efetch payload."""

    pmid: str
    title: str
    authors: list[str]
    abstract: str | None
    journal: str
    pub_date: str
    doi: str | None = None
    pmc_id: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Any) -> Article:
        """Rebuild an Article from its cached dict form.

        Raises TypeError or ValueError when the dict does not carry exactly the
        Article fields with the expected value types.
        """
        if not isinstance(data, dict):
            raise TypeError("cached article must be a JSON object")
        expected = {f.name for f in fields(cls)}
        if set(data) != expected:
            raise ValueError(f"cached article keys mismatch: {sorted(data)}")
        if not isinstance(data["pmid"], str) or not data["pmid"]:
            raise ValueError("cached article has no pmid")
        authors = data["authors"]
        if not isinstance(authors, list) or not all(isinstance(a, str) for a in authors):
            raise ValueError("cached article authors must be a list of strings")
        for name in ("title", "journal", "pub_date"):
            if not isinstance(data[name], str):
                raise ValueError(f"cached article {name} must be a string")
        for name in ("abstract", "doi", "pmc_id"):
            if data[name] is not None and not isinstance(data[name], str):
                raise ValueError(f"cached article {name} must be a string or null")
        return cls(**data)


@dataclass(frozen=True, slots=True)
class FullTextAvailability:
    """Whether a PMC full-text source exists for a PMID, plus outside links."""

    pmid: str
    pmc_id: str | None = None
    links: list[str] = field(default_factory=list)

    @property
    def has_full_text(self) -> bool:
        return self.pmc_id is not None


@dataclass(frozen=True, slots=True)
class FullTextResult:
    """Rendered full text for one PMID; full_text is None when unavailable."""

    pmid: str
    full_text: str | None
    links: list[str] = field(default_factory=list)


@dataclass(frozen=True, slots=True)
class CacheEntry(Generic[T]):
    """Persisted value plus its creation time in epoch milliseconds."""

    data: T
    timestamp: int
