"""Search FoodData Central for a term and store the matching foods.

    python -m fdc_browser.scripts.download_usda_foods "greek yogurt" --pages 2
"""

from __future__ import annotations

import argparse
import logging
import sys
from typing import Optional

from .. import config
from ..database import SessionLocal, init_db
from ..errors import UsdaApiError
from ..services.ingestion import ingest_foods
from ..services.usda_client import DEFAULT_DATA_TYPES, iter_search_foods

logger = logging.getLogger(__name__)


def main(argv: Optional[list[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Fetch foods from USDA FoodData Central into the database")
    parser.add_argument("query", help="Search term, e.g. 'oyster' or 'beef'.")
    parser.add_argument("--page-size", type=int, default=25, help="Foods per API page (default: 25).")
    parser.add_argument("--pages", type=int, default=1, help="Maximum number of pages to fetch (default: 1).")
    parser.add_argument(
        "--data-type",
        action="append",
        dest="data_types",
        help=f"Restrict to a FoodData Central data type; repeatable. Choices: {', '.join(DEFAULT_DATA_TYPES)}",
    )
    parser.add_argument("--delay", type=float, default=0.0, help="Seconds to sleep between pages.")
    args = parser.parse_args(argv)

    logging.basicConfig(level=getattr(logging, config.LOG_LEVEL, logging.INFO))

    if not config.USDA_API_KEY:
        print("Set the USDA_API_KEY environment variable first.", file=sys.stderr)
        return 1

    init_db()
    foods = iter_search_foods(
        config.USDA_API_KEY,
        args.query,
        page_size=args.page_size,
        max_pages=args.pages,
        data_types=args.data_types,
        delay=args.delay,
        timeout=config.USDA_TIMEOUT_SECONDS,
    )

    with SessionLocal() as session:
        try:
            result = ingest_foods(session, foods, query_term=args.query)
        except UsdaApiError as exc:
            print(f"USDA request failed: {exc}", file=sys.stderr)
            return 1

    print(
        f"Stored {result.ingested} foods ({result.nutrients_added} new nutrient rows), "
        f"{result.failed} failed"
    )
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
