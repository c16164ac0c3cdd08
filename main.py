"""CLI entrypoint for the PubMed E-utilities client."""

from __future__ import annotations

import argparse
import asyncio
import logging
import os
import sys

from dotenv import load_dotenv

import handlers
from eutils_client import EutilsError, create_client
from fulltext_resolver import FullTextResolver
from models import SORT_KEYS, SearchOptions
from settings import ClientSettings, load_settings


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command-line flags."""
    parser = argparse.ArgumentParser(description="Query PubMed through the cached E-utilities client")
    parser.add_argument("--email", default=None, help="Contact email sent with every request (PUBMED_EMAIL)")
    parser.add_argument("--api-key", default=None, help="NCBI API key for the higher rate limit (PUBMED_API_KEY)")
    parser.add_argument("--cache-dir", default=None, help="Directory for cached responses (PUBMED_CACHE_DIR)")
    parser.add_argument("--cache-ttl", default=None, help="Cache validity in seconds (PUBMED_CACHE_TTL)")
    parser.add_argument(
        "--log-level",
        default=os.getenv("PUBMED_LOG_LEVEL", "INFO"),
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging verbosity (PUBMED_LOG_LEVEL)",
    )

    commands = parser.add_subparsers(dest="command", required=True)

    search = commands.add_parser("search", help="Search PubMed and list pmid/title/date")
    search.add_argument("query")
    search.add_argument("--ret-max", type=int, default=20, help="Maximum number of results")
    search.add_argument("--ret-start", type=int, default=0, help="Offset of the first result")
    search.add_argument("--sort", choices=sorted(SORT_KEYS), default="relevance")
    search.add_argument("--date-from", default=None, help="Start date filter (YYYY/MM/DD)")
    search.add_argument("--date-to", default=None, help="End date filter (YYYY/MM/DD)")

    summary = commands.add_parser("summary", help="Fetch article summaries by PMID")
    summary.add_argument("pmids", nargs="+")

    fulltext = commands.add_parser("fulltext", help="Fetch PMC full text by PMID")
    fulltext.add_argument("pmids", nargs="+")

    return parser.parse_args(argv)


async def run(args: argparse.Namespace, settings: ClientSettings) -> str:
    """Execute one command and return its JSON output."""
    client = create_client(settings)

    if args.command == "search":
        options = SearchOptions(
            ret_max=args.ret_max,
            ret_start=args.ret_start,
            sort=args.sort,
            date_from=args.date_from,
            date_to=args.date_to,
        )
        return handlers.to_json(await handlers.search(client, args.query, options))
    if args.command == "summary":
        return handlers.to_json(await handlers.fetch_summary(client, args.pmids))
    return handlers.to_json(await handlers.get_full_text(FullTextResolver(client), args.pmids))


def main(argv: list[str] | None = None) -> int:
    """Initialize config and execute the requested command."""
    load_dotenv()
    args = parse_args(argv)
    logging.basicConfig(level=args.log_level, format="%(asctime)s %(levelname)s %(message)s")

    try:
        settings = load_settings(
            {
                "email": args.email,
                "api_key": args.api_key,
                "cache_dir": args.cache_dir,
                "cache_ttl": args.cache_ttl,
            }
        )
    except RuntimeError as exc:
        logging.error("%s", exc)
        return 2

    logging.info("PubMed client configuration: %s", settings.describe())
    try:
        output = asyncio.run(run(args, settings))
    except EutilsError as exc:
        logging.error("PubMed request failed: %s", exc)
        return 1

    print(output)
    return 0


if __name__ == "__main__":
    sys.exit(main())
