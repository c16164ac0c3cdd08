"""Tests for the command-line entrypoint (main.main)."""

from __future__ import annotations

import json
from unittest.mock import patch

import pytest

import main
from eutils_fakes import (
    FakeEutils,
    article_set_xml,
    esearch_xml,
    idconv_json,
    llinks_xml,
    make_response,
    pmc_article_xml,
    pubmed_article_xml,
)


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep a developer's .env and PUBMED_* variables out of the tests."""
    for name in ("PUBMED_EMAIL", "PUBMED_API_KEY", "PUBMED_CACHE_DIR", "PUBMED_CACHE_TTL", "PUBMED_LOG_LEVEL"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setattr(main, "load_dotenv", lambda: False)


def test_parse_args_search_defaults() -> None:
    args = main.parse_args(["search", "asthma"])

    assert args.command == "search"
    assert args.query == "asthma"
    assert args.ret_max == 20
    assert args.ret_start == 0
    assert args.sort == "relevance"
    assert args.log_level == "INFO"


def test_parse_args_rejects_unknown_sort() -> None:
    with pytest.raises(SystemExit):
        main.parse_args(["search", "asthma", "--sort", "citations"])


def test_main_requires_email() -> None:
    assert main.main(["summary", "1"]) == 2


def test_main_summary_prints_json(capsys: pytest.CaptureFixture[str]) -> None:
    fake = FakeEutils(
        {"efetch:pubmed": lambda params: make_response(article_set_xml(pubmed_article_xml("1", title="Hello")))}
    )

    with patch("eutils_client.requests.get", side_effect=fake):
        code = main.main(["--email", "me@example.com", "summary", "1"])

    assert code == 0
    output = json.loads(capsys.readouterr().out)
    assert output[0]["pmid"] == "1"
    assert output[0]["title"] == "Hello"


def test_main_search_prints_result_items(capsys: pytest.CaptureFixture[str]) -> None:
    fake = FakeEutils(
        {
            "esearch": lambda params: make_response(esearch_xml(["1"])),
            "efetch:pubmed": lambda params: make_response(article_set_xml(pubmed_article_xml("1", year="2021"))),
        }
    )

    with patch("eutils_client.requests.get", side_effect=fake):
        code = main.main(["--email", "me@example.com", "search", "asthma", "--ret-max", "1"])

    assert code == 0
    assert json.loads(capsys.readouterr().out) == [{"pmid": "1", "title": "Test Article", "pub_date": "2021"}]
    assert fake.params_for("esearch")[0]["retmax"] == ["1"]


def test_main_fulltext_uses_cache_dir(tmp_path, capsys: pytest.CaptureFixture[str]) -> None:
    fake = FakeEutils(
        {
            "idconv": lambda params: make_response(json_body=idconv_json({"1": "PMC10"})),
            "elink:llinks": lambda params: make_response(llinks_xml({"1": []})),
            "efetch:pmc": lambda params: make_response(pmc_article_xml()),
        }
    )

    with patch("eutils_client.requests.get", side_effect=fake):
        code = main.main(["--email", "me@example.com", "--cache-dir", str(tmp_path), "fulltext", "1"])

    assert code == 0
    output = json.loads(capsys.readouterr().out)
    assert output[0]["full_text"].startswith("# Test Full Text Article")
    assert (tmp_path / "fulltext" / "1.md").exists()


def test_main_reports_remote_failure() -> None:
    fake = FakeEutils({"efetch:pubmed": lambda params: make_response(status=502)})

    with patch("eutils_client.requests.get", side_effect=fake):
        assert main.main(["--email", "me@example.com", "summary", "1"]) == 1
