"""Terminal client that reuses the in-process search gateway."""
from __future__ import annotations

import argparse
import asyncio
from pathlib import Path
from typing import Iterable, List

from catalog_search.config import settings
from catalog_search.main import Services, build_services
from catalog_search.query import parse_search_params
from catalog_search.search_service import GatewayResult

MAX_RESULTS = 60
GREEN = "\033[92m"
RED = "\033[91m"
RESET = "\033[0m"


async def perform_query(services: Services, query: str, filters: List[str]) -> GatewayResult:
    params = {"q": [query], "limit": [str(MAX_RESULTS)]}
    for item in filters:
        key, _, value = item.partition("=")
        params.setdefault(key.strip(), []).append(value)
    request = parse_search_params(params, settings.default_currency)
    return await services.gateway.search(request)


def interactive_shell(services: Services, filters: List[str]) -> None:
    print("Interactive product search. Type 'exit' to quit.")
    while True:
        try:
            query = input("> ").strip()
        except (EOFError, KeyboardInterrupt):
            print()
            return
        if not query:
            continue
        if query.lower() in {"exit", "quit"}:
            return
        result = asyncio.run(perform_query(services, query, filters))
        pretty_print_result(query, result)


def pretty_print_result(query: str, result: GatewayResult) -> None:
    page = result.payload
    eta = float(page.processingTimeMs)
    color = GREEN if eta < 200 else RED
    eta_label = f"{color}{eta:.1f} ms{RESET}"
    print(
        f"Query: {query} | results: {len(page.hits)}/{page.totalHits} | "
        f"backend: {result.backend} ({result.cache_status}) | ETA: {eta_label}"
    )
    if page.error:
        print(f"  {RED}{page.error}{RESET}")
    for idx, hit in enumerate(page.hits, start=1):
        price = f"{hit.price_cents / 100:.2f} {hit.currency}".strip()
        print(f"  {idx:02d}. {hit.vendor_name or '-'} | {hit.brand or '-'} | {price} | {hit.title}")


def print_suggestions(services: Services, query: str) -> None:
    result = asyncio.run(services.gateway.autocomplete(query))
    print(f"Suggestions for {query!r} ({result.backend}):")
    for suggestion in result.payload.suggestions:
        print(f"  - {suggestion}")


def batch_mode(services: Services, file_path: Path, filters: List[str]) -> None:
    with file_path.open("r", encoding="utf-8") as fh:
        for line in fh:
            query = line.strip()
            if not query:
                continue
            result = asyncio.run(perform_query(services, query, filters))
            pretty_print_result(query, result)


def main(argv: Iterable[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="CLI client for the catalog search gateway")
    parser.add_argument("query", nargs="?", help="Query string. If omitted, starts REPL mode.")
    parser.add_argument("--batch", type=Path, help="File with queries to execute line by line")
    parser.add_argument(
        "--filter",
        action="append",
        default=[],
        metavar="KEY=VALUE",
        help="Extra search parameter, e.g. --filter price_min=5000 --filter category=phones",
    )
    parser.add_argument("--suggest", action="store_true", help="Print autocomplete suggestions instead")
    parser.add_argument("--reindex", action="store_true", help="Rebuild the search index from the database")
    args = parser.parse_args(list(argv) if argv is not None else None)

    services = build_services(settings)

    if args.reindex:
        count = asyncio.run(services.sync.full_reindex())
        print(f"Indexed {count} products")
        return 0
    if args.batch:
        batch_mode(services, args.batch, args.filter)
        return 0
    if args.query and args.suggest:
        print_suggestions(services, args.query)
        return 0
    if args.query:
        result = asyncio.run(perform_query(services, args.query, args.filter))
        pretty_print_result(args.query, result)
        return 1 if result.failed else 0
    interactive_shell(services, args.filter)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
