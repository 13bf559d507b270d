"""Manual scraper runner for testing and debugging store adapters.

Runs one adapter against a live storefront and prints what it parsed,
without touching the database.

Usage:
    python scripts/run_scraper.py --store amazon-sa --query "iphone 15"
    python scripts/run_scraper.py --store noon-eg --query airpods --limit 5
    python scripts/run_scraper.py --url https://www.jarir.com/sa-en/some-product.html
    python scripts/run_scraper.py --list
"""

import argparse
import asyncio
import os
import sys
from typing import Optional

# Add backend to path so we can import pricehunter without installing it
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "backend"))

from pricehunter.core.log_config import configure_logging
from pricehunter.scrapers.base import ScrapedProduct
from pricehunter.scrapers.register_adapters import build_default_registry
from pricehunter.services.currency_service import format_currency


def _print_product(idx: int, product: ScrapedProduct) -> None:
    print(f"[{idx}] {product.name}")
    print(f"    Price: {format_currency(product.price, product.currency, show_code=True)}")
    if product.original_price:
        print(f"    Original: {format_currency(product.original_price, product.currency, show_code=True)}")
        print(f"    Discount: {product.discount}%")
    print(f"    In stock: {'yes' if product.in_stock else 'no'}")
    if product.rating is not None:
        reviews = f" ({product.review_count} reviews)" if product.review_count else ""
        print(f"    Rating: {product.rating}{reviews}")
    if product.brand:
        print(f"    Brand: {product.brand}")
    if product.barcode:
        print(f"    Id: {product.barcode}")
    print(f"    URL: {product.url[:100]}")
    print()


async def run_search(store: str, query: str, limit: int) -> int:
    """Search one store and print the first ``limit`` results.

    Returns:
        Process exit code
    """
    registry = build_default_registry()
    try:
        if not registry.has_adapter(store):
            print(f"\nError: unknown store '{store}'")
            print("\nAvailable stores:")
            for slug in registry.registered_slugs:
                print(f"   - {slug}")
            return 2

        print(f"\n{'=' * 70}")
        print(f"  Searching {store} for '{query}'")
        print(f"{'=' * 70}\n")

        outcome = await registry.search_stores(query, [store])
        if store in outcome.errors:
            print(f"Search failed: {outcome.errors[store]}\n")
            return 1

        products = outcome.results.get(store, [])
        if not products:
            print("No products found.\n")
            return 0

        for idx, product in enumerate(products[:limit], 1):
            _print_product(idx, product)

        discounted = [p for p in products if p.discount]
        print(f"{'=' * 70}")
        print(f"  Total: {len(products)}  Displayed: {min(limit, len(products))}")
        if discounted:
            avg = sum(p.discount for p in discounted) / len(discounted)
            print(f"  Discounted: {len(discounted)}  Avg discount: {avg:.1f}%")
        print(f"{'=' * 70}\n")
        return 0
    finally:
        await registry.close()


async def run_url(url: str) -> int:
    registry = build_default_registry()
    try:
        slug, product = await registry.scrape_url(url)
        if slug is None:
            print(f"\nError: no store recognised for {url}\n")
            return 2
        if product is None:
            print(f"\nStore '{slug}' returned no product for {url}\n")
            return 1

        print(f"\nStore: {slug}\n")
        _print_product(1, product)
        return 0
    finally:
        await registry.close()


def list_stores() -> int:
    registry = build_default_registry()
    for slug in registry.registered_slugs:
        config = registry.get_config(slug)
        print(f"{slug:<12} {config.name:<16} {config.country}  {config.currency}  {config.base_url}")
    return 0


def main(argv: Optional[list] = None) -> int:
    """Parse arguments and run the scraper."""
    parser = argparse.ArgumentParser(
        description="Run a store adapter against the live site",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python scripts/run_scraper.py --store amazon-sa --query "iphone 15"
  python scripts/run_scraper.py --url https://www.noon.com/uae-en/some-product/N123/p/
        """,
    )
    parser.add_argument("--store", help="Store slug (e.g., 'amazon-sa', 'noon-eg')")
    parser.add_argument("--query", help="Search query (requires --store)")
    parser.add_argument("--url", help="Product URL to scrape; the store is resolved from the host")
    parser.add_argument("--limit", type=int, default=10, help="Maximum number of results to display (default: 10)")
    parser.add_argument("--list", action="store_true", help="List registered stores and exit")
    parser.add_argument("--debug", action="store_true", help="Verbose logging")
    args = parser.parse_args(argv)

    configure_logging(debug=args.debug)

    if args.list:
        return list_stores()
    if args.url:
        return asyncio.run(run_url(args.url))
    if args.store and args.query:
        return asyncio.run(run_search(args.store, args.query, args.limit))

    parser.error("pass --url, or --store together with --query")
    return 2


if __name__ == "__main__":
    sys.exit(main())
