"""Normalize E-utilities XML/JSON payloads into canonical records.

PubMed payloads are parsed with xmltodict, which yields shape-inconsistent
trees: a repeatable element is a single node when it occurs once and a list
when it repeats, and a leaf is a bare string unless it carries attributes, in
which case its text lives under "#text". Every extraction path below goes
through the same two helpers, `to_list` and `node_text`, instead of
branching on shapes locally.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable
from html.entities import name2codepoint
from typing import Any
from xml.parsers.expat import ExpatError

import xmltodict

from models import Article, SearchResult

LOGGER = logging.getLogger(__name__)

XML_BUILTIN_ENTITIES: frozenset[str] = frozenset({"amp", "lt", "gt", "quot", "apos"})

# Character-level markup that only styles a run of text. Flattened before
# parsing so mixed content keeps its reading order.
INLINE_MARKUP_TAGS: tuple[str, ...] = (
    "i", "b", "u", "sup", "sub",
    "italic", "bold", "underline", "sc", "monospace", "roman", "sans-serif",
    "overline", "strike", "xref", "ext-link", "uri", "named-content",
    "styled-content", "abbrev",
)

_ENTITY_RE = re.compile(r"&([A-Za-z][A-Za-z0-9]*);")
_INLINE_MARKUP_RE = re.compile(
    r"</?(?:" + "|".join(re.escape(tag) for tag in INLINE_MARKUP_TAGS) + r")(?:\s[^<>]*)?/?>"
)

# Candidate sources per typed identifier, highest precedence first. Each
# entry is (path from the PubmedArticle node, discriminator attribute).
DOI_SOURCES: tuple[tuple[tuple[str, ...], str], ...] = (
    (("MedlineCitation", "Article", "ELocationID"), "@EIdType"),
    (("PubmedData", "ArticleIdList", "ArticleId"), "@IdType"),
)
PMC_SOURCES: tuple[tuple[tuple[str, ...], str], ...] = (
    (("PubmedData", "ArticleIdList", "ArticleId"), "@IdType"),
)


def to_list(value: Any) -> list[Any]:
    """Coerce a possibly-repeated field into a list."""
    if value is None:
        return []
    if isinstance(value, list):
        return value
    return [value]


def flatten_text(node: Any) -> str:
    """Join every text fragment under `node`, ignoring attributes."""
    if node is None:
        return ""
    if isinstance(node, str):
        return " ".join(node.split())
    if isinstance(node, (int, float)):
        return str(node)
    if isinstance(node, list):
        return " ".join(text for text in (flatten_text(item) for item in node) if text)
    if isinstance(node, dict):
        # xmltodict stores a node's own text after its children
        keys = sorted((key for key in node if not key.startswith("@")), key=lambda key: key != "#text")
        parts = (flatten_text(node[key]) for key in keys)
        return " ".join(text for text in parts if text)
    return ""


def node_text(node: Any) -> str:
    """Return a leaf's inner text if it has one, else the value itself."""
    if isinstance(node, dict):
        if "#text" in node:
            return flatten_text(node["#text"])
        return flatten_text(node)
    if isinstance(node, list):
        return node_text(node[0]) if node else ""
    return flatten_text(node)


def first_present(*candidates: str | None) -> str | None:
    """Return the first non-empty candidate, in the order given."""
    for candidate in candidates:
        if candidate:
            return candidate
    return None


def dig(tree: Any, *keys: str) -> Any:
    """Follow nested keys through single-valued nodes, or return None."""
    node = tree
    for key in keys:
        if isinstance(node, list):
            node = node[0] if node else None
        if not isinstance(node, dict):
            return None
        node = node.get(key)
    return node


def decode_named_entities(xml_text: str) -> str:
    """Replace HTML named entities (&rsquo;, &nbsp;, ...) with their characters.

    The five XML built-in entities are left alone so the document stays
    well-formed; unknown names are left untouched.
    """

    def _replace(match: re.Match[str]) -> str:
        name = match.group(1)
        if name in XML_BUILTIN_ENTITIES or name not in name2codepoint:
            return match.group(0)
        return chr(name2codepoint[name])

    return _ENTITY_RE.sub(_replace, xml_text)


def prepare_xml(xml_text: str) -> str:
    """Decode named entities and drop inline styling tags, keeping their text."""
    return _INLINE_MARKUP_RE.sub("", decode_named_entities(xml_text))


def parse_xml(xml_text: str) -> dict[str, Any]:
    """Parse an E-utilities XML payload into an xmltodict tree.

    Raises ValueError when the payload is not well-formed XML.
    """
    prepared = prepare_xml(xml_text)
    try:
        return xmltodict.parse(prepared)
    except ExpatError as exc:
        raise ValueError(f"Malformed XML payload: {exc}") from exc


def canonical_pmc_id(value: Any) -> str | None:
    """Normalize "PMC123", "pmc123" or "123" to "PMC123"."""
    text = node_text(value).upper()
    digits = text[3:] if text.startswith("PMC") else text
    if not digits.isdigit():
        return None
    return f"PMC{digits}"


def find_typed_id(nodes: Any, discriminator: str, wanted: str) -> str | None:
    """Return the text of the first node whose discriminator equals `wanted`."""
    for node in to_list(nodes):
        if not isinstance(node, dict):
            continue
        if node_text(node.get(discriminator)).lower() != wanted:
            continue
        text = node_text(node)
        if text:
            return text
    return None


def select_typed_id(
    record: dict[str, Any],
    sources: Iterable[tuple[tuple[str, ...], str]],
    wanted: str,
) -> str | None:
    """Apply `find_typed_id` to each candidate source in precedence order."""
    for path, discriminator in sources:
        found = find_typed_id(dig(record, *path), discriminator, wanted)
        if found:
            return found
    return None


def parse_search_result(xml_text: str, ret_max: int, ret_start: int) -> SearchResult:
    """Parse an esearch response."""
    tree = parse_xml(xml_text)
    result = tree.get("eSearchResult")
    if not isinstance(result, dict):
        raise ValueError("Unexpected esearch payload shape: missing eSearchResult")
    if "ERROR" in result:
        raise ValueError(f"esearch returned an error: {node_text(result['ERROR'])}")

    ids = [node_text(node) for node in to_list(dig(result, "IdList", "Id"))]
    count_text = node_text(result.get("Count")) or "0"
    try:
        count = int(count_text)
    except ValueError as exc:
        raise ValueError(f"Unexpected esearch Count value: {count_text!r}") from exc

    return SearchResult(
        id_list=[pmid for pmid in ids if pmid],
        count=count,
        ret_max=ret_max,
        ret_start=ret_start,
    )


def parse_articles(xml_text: str) -> list[Article]:
    """Parse a PubMed efetch (rettype=abstract) response into Articles.

    Records without a MedlineCitation or PMID are skipped; an unknown root
    element raises ValueError.
    """
    tree = parse_xml(xml_text)
    if "PubmedArticleSet" not in tree:
        raise ValueError("Unexpected efetch payload shape: missing PubmedArticleSet")

    articles: list[Article] = []
    for record in to_list(dig(tree, "PubmedArticleSet", "PubmedArticle")):
        article = _parse_pubmed_article(record)
        if article is not None:
            articles.append(article)
    return articles


def _parse_pubmed_article(record: Any) -> Article | None:
    citation = dig(record, "MedlineCitation")
    if not isinstance(citation, dict):
        return None
    pmid = node_text(citation.get("PMID"))
    if not pmid:
        return None

    journal = dig(citation, "Article", "Journal")
    return Article(
        pmid=pmid,
        title=node_text(dig(citation, "Article", "ArticleTitle")),
        authors=extract_authors(dig(citation, "Article", "AuthorList", "Author")),
        abstract=extract_abstract(dig(citation, "Article", "Abstract", "AbstractText")),
        journal=first_present(
            node_text(dig(journal, "Title")),
            node_text(dig(journal, "ISOAbbreviation")),
        ) or "",
        pub_date=extract_pub_date(dig(journal, "JournalIssue", "PubDate")),
        doi=select_typed_id(record, DOI_SOURCES, "doi"),
        pmc_id=canonical_pmc_id(select_typed_id(record, PMC_SOURCES, "pmc")),
    )


def extract_authors(nodes: Any) -> list[str]:
    """Return "Last, Fore" (or "Last") for every author carrying a surname."""
    authors: list[str] = []
    for author in to_list(nodes):
        if not isinstance(author, dict):
            continue
        last = node_text(author.get("LastName"))
        if not last:
            continue
        fore = node_text(author.get("ForeName"))
        authors.append(f"{last}, {fore}" if fore else last)
    return authors


def extract_abstract(nodes: Any) -> str | None:
    """Join all abstract sections with single spaces; empty means no abstract."""
    texts = (node_text(node) for node in to_list(nodes))
    joined = " ".join(text for text in texts if text).strip()
    return joined or None


def extract_pub_date(pub_date: Any) -> str:
    """Join the present Year/Month/Day parts with "-"."""
    if not isinstance(pub_date, dict):
        return node_text(pub_date)
    parts = [node_text(pub_date.get(key)) for key in ("Year", "Month", "Day")]
    joined = "-".join(part for part in parts if part)
    return joined or node_text(pub_date.get("MedlineDate"))


def parse_pmc_links(xml_text: str) -> dict[str, str]:
    """Parse an elink pubmed_pmc response into {pmid: pmc_id}."""
    tree = parse_xml(xml_text)
    if "eLinkResult" not in tree:
        raise ValueError("Unexpected elink payload shape: missing eLinkResult")

    links: dict[str, str] = {}
    for link_set in to_list(dig(tree, "eLinkResult", "LinkSet")):
        source_pmid = node_text(dig(link_set, "IdList", "Id"))
        if not source_pmid:
            continue
        for link_db in to_list(dig(link_set, "LinkSetDb")):
            if not isinstance(link_db, dict):
                continue
            link_name = node_text(link_db.get("LinkName"))
            if link_name and link_name != "pubmed_pmc":
                continue
            pmc_id = first_present(
                *(canonical_pmc_id(dig(link, "Id")) for link in to_list(link_db.get("Link")))
            )
            if pmc_id:
                links[source_pmid] = pmc_id
                break
    return links


def parse_link_urls(xml_text: str) -> dict[str, list[str]]:
    """Parse an elink llinks response into {pmid: [url, ...]}."""
    tree = parse_xml(xml_text)
    if "eLinkResult" not in tree:
        raise ValueError("Unexpected elink payload shape: missing eLinkResult")

    urls: dict[str, list[str]] = {}
    for link_set in to_list(dig(tree, "eLinkResult", "LinkSet")):
        for id_url_set in to_list(dig(link_set, "IdUrlList", "IdUrlSet")):
            pmid = node_text(dig(id_url_set, "Id"))
            if not pmid:
                continue
            collected = urls.setdefault(pmid, [])
            for obj_url in to_list(dig(id_url_set, "ObjUrl")):
                url = node_text(dig(obj_url, "Url"))
                if url and url not in collected:
                    collected.append(url)
    return urls


def parse_id_conversion(payload: Any) -> dict[str, str]:
    """Parse a PMC ID converter JSON response into {pmid: pmc_id}."""
    if not isinstance(payload, dict) or "records" not in payload:
        raise ValueError("Unexpected idconv payload shape: missing records")

    converted: dict[str, str] = {}
    for record in to_list(payload["records"]):
        if not isinstance(record, dict) or record.get("errmsg"):
            continue
        pmid = node_text(record.get("pmid"))
        pmc_id = canonical_pmc_id(record.get("pmcid"))
        if pmid and pmc_id:
            converted[pmid] = pmc_id
    return converted
