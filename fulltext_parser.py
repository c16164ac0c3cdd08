"""Render a PMC efetch article (JATS XML) as plain Markdown-flavoured prose.

Articles are walked as ElementTree elements; `.text` and `.tail` keep mixed
content (a paragraph holding a list, formula or figure) in document order.
"""

from __future__ import annotations

import re
import xml.etree.ElementTree as ET

from normalizer import prepare_xml

PLAIN_TYPOGRAPHY = str.maketrans({
    "\u2018": "'",
    "\u2019": "'",
    "\u201a": "'",
    "\u2032": "'",
    "\u201c": '"',
    "\u201d": '"',
    "\u201e": '"',
    "\u2033": '"',
    "\u2010": "-",
    "\u2011": "-",
    "\u2012": "-",
    "\u2013": "-",
    "\u2014": "-",
    "\u2015": "-",
    "\u2212": "-",
    "\u2026": "...",
    "\u00a0": " ",
    "\u2002": " ",
    "\u2003": " ",
    "\u2009": " ",
    "\u200a": " ",
    "\u202f": " ",
    "\u200b": "",
})

# Children rendered separately (headings, nested sections) or not prose at all.
_NON_PROSE_TAGS: frozenset[str] = frozenset({"title", "label", "sec", "ref-list", "fn-group"})
_ARTICLE_SET_TAGS: frozenset[str] = frozenset({"pmc-articleset", "pmc_articleset"})

_SPACE_RUN_RE = re.compile(r"[ \t]+")
_LINE_EDGE_RE = re.compile(r" *\n *")
_BLANK_RUN_RE = re.compile(r"\n{3,}")

MAX_HEADING_DEPTH = 6


def render_pmc_article(xml_text: str) -> str | None:
    """Return the article as "# title", "## Abstract" and its body sections.

    Returns None when the payload holds no article or renders to nothing.
    Raises ValueError on malformed XML.
    """
    try:
        root = ET.fromstring(prepare_xml(xml_text))
    except ET.ParseError as exc:
        raise ValueError(f"Malformed XML payload: {exc}") from exc

    article = first_article(root)
    if article is None:
        return None

    meta = child(child(article, "front"), "article-meta")
    blocks: list[str] = []

    title = flatten_text(child(child(meta, "title-group"), "article-title"))
    if title:
        blocks.append(f"# {title}")

    abstract = render_abstract(primary_abstract(meta))
    if abstract:
        blocks.append(f"## Abstract\n\n{abstract}")

    body = render_body(child(article, "body"))
    if body:
        blocks.append(body)

    rendered = normalize_whitespace("\n\n".join(blocks).translate(PLAIN_TYPOGRAPHY))
    return rendered or None


def local_name(element: ET.Element) -> str:
    return element.tag.rsplit("}", 1)[-1] if isinstance(element.tag, str) else ""


def child(element: ET.Element | None, name: str) -> ET.Element | None:
    """First direct child with the given local name, or None."""
    if element is None:
        return None
    return next((node for node in element if local_name(node) == name), None)


def first_article(root: ET.Element) -> ET.Element | None:
    if local_name(root) == "article":
        return root
    if local_name(root) in _ARTICLE_SET_TAGS:
        return child(root, "article")
    return None


def primary_abstract(meta: ET.Element | None) -> ET.Element | None:
    """Prefer the untyped abstract over graphical/teaser variants."""
    if meta is None:
        return None
    abstracts = [node for node in meta if local_name(node) == "abstract"]
    for node in abstracts:
        if not node.get("abstract-type"):
            return node
    return abstracts[0] if abstracts else None


def flatten_text(element: ET.Element | None) -> str:
    """Join every text fragment under `element` in document order."""
    if element is None:
        return ""
    pieces = [element.text or ""]
    for node in element:
        pieces.append(flatten_text(node))
        pieces.append(node.tail or "")
    return " ".join(" ".join(pieces).split())


def render_abstract(abstract: ET.Element | None) -> str:
    """Lead paragraphs, then any structured sections one level below "## Abstract"."""
    return _render_container(abstract, depth=3)


def render_body(body: ET.Element | None) -> str:
    """Render titled sections as headings; flatten when there are no sections."""
    if body is None:
        return ""
    if child(body, "sec") is None:
        text = flatten_text(body)
        return f"## Content\n\n{text}" if text else ""
    return _render_container(body, depth=2)


def _render_container(element: ET.Element | None, depth: int) -> str:
    if element is None:
        return ""
    blocks: list[str] = []
    lead = section_text(element)
    if lead:
        blocks.append(lead)
    for section in element:
        if local_name(section) == "sec":
            blocks.extend(render_section(section, depth))
    return "\n\n".join(blocks)


def render_section(section: ET.Element, depth: int) -> list[str]:
    blocks: list[str] = []
    title = flatten_text(child(section, "title"))
    text = section_text(section)
    if title:
        heading = f"{'#' * min(depth, MAX_HEADING_DEPTH)} {title}"
        blocks.append(f"{heading}\n\n{text}" if text else heading)
    elif text:
        blocks.append(text)

    for nested in section:
        if local_name(nested) == "sec":
            blocks.extend(render_section(nested, depth + 1))
    return blocks


def section_text(element: ET.Element) -> str:
    """Flatten a section's own prose, one block per child element, in order."""
    paragraphs = [" ".join((element.text or "").split())]
    for node in element:
        if local_name(node) not in _NON_PROSE_TAGS:
            paragraphs.append(flatten_text(node))
        paragraphs.append(" ".join((node.tail or "").split()))
    return "\n\n".join(paragraph for paragraph in paragraphs if paragraph)


def normalize_whitespace(text: str) -> str:
    text = _SPACE_RUN_RE.sub(" ", text)
    text = _LINE_EDGE_RE.sub("\n", text)
    text = _BLANK_RUN_RE.sub("\n\n", text)
    return text.strip()
