import pytest

from eutils_fakes import article_set_xml, esearch_xml, llinks_xml, pmc_elink_xml, pubmed_article_xml
from normalizer import (
    canonical_pmc_id,
    decode_named_entities,
    first_present,
    flatten_text,
    node_text,
    parse_articles,
    parse_id_conversion,
    parse_link_urls,
    parse_pmc_links,
    parse_search_result,
    to_list,
)


def _single(xml_article: str):
    articles = parse_articles(article_set_xml(xml_article))
    assert len(articles) == 1
    return articles[0]


# ---------------------------------------------------------------------------
# Shape helpers
# ---------------------------------------------------------------------------


@pytest.mark.parametrize(
    ("value", "expected"),
    [(None, []), ("a", ["a"]), ({"k": "v"}, [{"k": "v"}]), (["a", "b"], ["a", "b"])],
)
def test_to_list_coerces_every_shape(value, expected) -> None:
    assert to_list(value) == expected


@pytest.mark.parametrize(
    ("node", "expected"),
    [
        ("  plain  ", "plain"),
        ({"@IdType": "doi", "#text": "10.1/x"}, "10.1/x"),
        (12345, "12345"),
        (None, ""),
        ({"i": "E. coli"}, "E. coli"),
    ],
)
def test_node_text_prefers_inner_text(node, expected) -> None:
    assert node_text(node) == expected


def test_node_text_puts_own_text_before_children() -> None:
    assert node_text({"list": {"item": "item one"}, "#text": "Intro words"}) == "Intro words"


def test_flatten_text_puts_own_text_before_children() -> None:
    assert flatten_text({"list": {"item": "item one"}, "#text": "Intro words"}) == "Intro words item one"


def test_first_present_honours_order() -> None:
    assert first_present(None, "", "second", "third") == "second"
    assert first_present(None, "") is None


@pytest.mark.parametrize(
    ("raw", "expected"),
    [("PMC123", "PMC123"), ("pmc123", "PMC123"), ("123", "PMC123"), ({"#text": "456"}, "PMC456"), ("n/a", None)],
)
def test_canonical_pmc_id(raw, expected) -> None:
    assert canonical_pmc_id(raw) == expected


def test_decode_named_entities_keeps_xml_builtins() -> None:
    decoded = decode_named_entities("A &amp; B &rsquo;s &mdash; &lt;x&gt; &bogus;")
    assert decoded == "A &amp; B \u2019s \u2014 &lt;x&gt; &bogus;"


# ---------------------------------------------------------------------------
# Article records
# ---------------------------------------------------------------------------


def test_parse_articles_basic_record() -> None:
    article = _single(
        pubmed_article_xml(
            "12345",
            title="Test Article Title",
            authors=[("Doe", "John"), ("Roe", None)],
            journal="Test Journal",
            year="2023",
            month="Jan",
            day="05",
            doi="10.1234/test",
            pmc_id="PMC99",
        )
    )

    assert article.pmid == "12345"
    assert article.title == "Test Article Title"
    assert article.authors == ["Doe, John", "Roe"]
    assert article.abstract == "Test abstract content"
    assert article.journal == "Test Journal"
    assert article.pub_date == "2023-Jan-05"
    assert article.doi == "10.1234/test"
    assert article.pmc_id == "PMC99"


def test_single_and_repeated_nodes_normalize_to_same_shape() -> None:
    """One author / one id vs several authors / several ids yield the same field types."""
    lone = _single(pubmed_article_xml("1", authors=[("Solo", "Han")]))
    many = _single(
        pubmed_article_xml("2", authors=[("Doe", "John"), ("Roe", "Jane")], doi="10.1/a", pmc_id="PMC5")
    )

    assert lone.authors == ["Solo, Han"]
    assert many.authors == ["Doe, John", "Roe, Jane"]
    assert lone.doi is None and lone.pmc_id is None
    assert many.doi == "10.1/a" and many.pmc_id == "PMC5"
    assert type(lone.to_dict()["authors"]) is type(many.to_dict()["authors"])
    assert lone.to_dict().keys() == many.to_dict().keys()


def test_authors_without_surname_are_skipped() -> None:
    xml = article_set_xml(
        pubmed_article_xml("1", authors=[]).replace(
            "<AuthorList></AuthorList>",
            "<AuthorList>"
            "<Author><CollectiveName>The Study Group</CollectiveName></Author>"
            "<Author><ForeName>Nameless</ForeName></Author>"
            "<Author><LastName>Smith</LastName><ForeName>Ann</ForeName></Author>"
            "</AuthorList>",
        )
    )
    assert parse_articles(xml)[0].authors == ["Smith, Ann"]


def test_structured_abstract_sections_are_joined() -> None:
    xml = article_set_xml(
        pubmed_article_xml("1", abstract=None).replace(
            "<AuthorList>",
            "<Abstract>"
            '<AbstractText Label="BACKGROUND">Background text.</AbstractText>'
            '<AbstractText Label="RESULTS">Results  text.</AbstractText>'
            "</Abstract><AuthorList>",
        )
    )
    assert parse_articles(xml)[0].abstract == "Background text. Results text."


def test_empty_abstract_sections_mean_no_abstract() -> None:
    xml = article_set_xml(
        pubmed_article_xml("1", abstract=None).replace(
            "<AuthorList>",
            "<Abstract><AbstractText/><AbstractText>   </AbstractText></Abstract><AuthorList>",
        )
    )
    assert parse_articles(xml)[0].abstract is None


def test_missing_abstract_is_none() -> None:
    assert _single(pubmed_article_xml("1", abstract=None)).abstract is None


@pytest.mark.parametrize(
    ("year", "month", "day", "expected"),
    [("2023", None, None, "2023"), ("2023", "Mar", None, "2023-Mar"), (None, "Mar", "02", "Mar-02")],
)
def test_pub_date_skips_missing_parts(year, month, day, expected) -> None:
    assert _single(pubmed_article_xml("1", year=year, month=month, day=day)).pub_date == expected


def test_pub_date_falls_back_to_medline_date() -> None:
    xml = article_set_xml(
        pubmed_article_xml("1", year=None).replace(
            "<PubDate></PubDate>", "<PubDate><MedlineDate>1998 Dec-1999 Jan</MedlineDate></PubDate>"
        )
    )
    assert parse_articles(xml)[0].pub_date == "1998 Dec-1999 Jan"


def test_doi_prefers_elocation_id_over_article_id_list() -> None:
    xml = article_set_xml(
        pubmed_article_xml("1", doi="10.9/from-list").replace(
            "<ArticleTitle>",
            '<ELocationID EIdType="pii">S0001</ELocationID>'
            '<ELocationID EIdType="doi" ValidYN="Y">10.9/from-elocation</ELocationID>'
            "<ArticleTitle>",
        )
    )
    assert parse_articles(xml)[0].doi == "10.9/from-elocation"


def test_doi_falls_back_to_article_id_list() -> None:
    assert _single(pubmed_article_xml("1", doi="10.9/from-list")).doi == "10.9/from-list"


def test_inline_markup_in_title_is_flattened_in_order() -> None:
    article = _single(pubmed_article_xml("1", title="Effects of <i>E. coli</i> on <sup>13</sup>C uptake"))
    assert article.title == "Effects of E. coli on 13C uptake"


def test_records_without_pmid_are_skipped() -> None:
    broken = "<PubmedArticle><MedlineCitation><Article/></MedlineCitation></PubmedArticle>"
    articles = parse_articles(article_set_xml(broken, pubmed_article_xml("7")))
    assert [article.pmid for article in articles] == ["7"]


def test_empty_article_set_yields_no_articles() -> None:
    assert parse_articles("<PubmedArticleSet></PubmedArticleSet>") == []


def test_parse_articles_rejects_unknown_root() -> None:
    with pytest.raises(ValueError, match="PubmedArticleSet"):
        parse_articles("<eFetchResult><ERROR>Empty id list</ERROR></eFetchResult>")


def test_parse_articles_rejects_malformed_xml() -> None:
    with pytest.raises(ValueError, match="Malformed XML"):
        parse_articles("<PubmedArticleSet><PubmedArticle>")


# ---------------------------------------------------------------------------
# Search, link and id-conversion payloads
# ---------------------------------------------------------------------------


def test_parse_search_result_lists_ids_and_count() -> None:
    result = parse_search_result(esearch_xml(["111", "222"], count=57), ret_max=2, ret_start=10)

    assert result.id_list == ["111", "222"]
    assert result.count == 57
    assert result.ret_max == 2
    assert result.ret_start == 10


def test_parse_search_result_single_id() -> None:
    assert parse_search_result(esearch_xml(["111"]), 20, 0).id_list == ["111"]


def test_parse_search_result_empty_id_list() -> None:
    result = parse_search_result("<eSearchResult><Count>0</Count><IdList/></eSearchResult>", 20, 0)
    assert result.id_list == []
    assert result.count == 0


def test_parse_search_result_error_node_raises() -> None:
    with pytest.raises(ValueError, match="error"):
        parse_search_result("<eSearchResult><ERROR>Invalid query</ERROR></eSearchResult>", 20, 0)


def test_parse_pmc_links_one_link_set_per_pmid() -> None:
    links = parse_pmc_links(pmc_elink_xml({"1": "100", "2": None, "3": "300"}))
    assert links == {"1": "PMC100", "3": "PMC300"}


def test_parse_pmc_links_empty_link_set() -> None:
    assert parse_pmc_links("<eLinkResult><LinkSet></LinkSet></eLinkResult>") == {}


def test_parse_link_urls_collects_urls_per_pmid() -> None:
    urls = parse_link_urls(
        llinks_xml({"1": ["https://pub.example/a", "https://pub.example/a", "https://mirror.example/a"], "2": []})
    )
    assert urls == {"1": ["https://pub.example/a", "https://mirror.example/a"], "2": []}


def test_parse_id_conversion_skips_error_records() -> None:
    payload = {
        "status": "ok",
        "records": [
            {"pmid": "1", "pmcid": "PMC10"},
            {"pmid": "2", "errmsg": "invalid article id"},
            {"pmid": 3, "pmcid": "PMC30"},
        ],
    }
    assert parse_id_conversion(payload) == {"1": "PMC10", "3": "PMC30"}


def test_parse_id_conversion_single_record_object() -> None:
    assert parse_id_conversion({"records": {"pmid": "1", "pmcid": "PMC10"}}) == {"1": "PMC10"}


def test_parse_id_conversion_rejects_unexpected_shape() -> None:
    with pytest.raises(ValueError, match="records"):
        parse_id_conversion({"status": "error"})
