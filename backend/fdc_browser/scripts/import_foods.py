from __future__ import annotations

import argparse
import json
import logging
import pathlib
import sys
from typing import Iterator, Optional

from .. import config
from ..database import SessionLocal, init_db
from ..services.ingestion import ingest_foods


def load_records(path: pathlib.Path) -> Iterator[dict]:
    """Yield food records from a JSON array, a FoodData Central search response, or JSONL."""
    suffix = path.suffix.lower()
    if suffix == ".json":
        with path.open("r", encoding="utf-8") as fh:
            payload = json.load(fh)
        if isinstance(payload, dict):
            payload = payload.get("foods") or []
        if isinstance(payload, list):
            for entry in payload:
                if isinstance(entry, dict):
                    yield entry
        return

    if suffix in {".jsonl", ".ndjson"}:
        with path.open("r", encoding="utf-8") as fh:
            for line in fh:
                line = line.strip()
                if not line:
                    continue
                entry = json.loads(line)
                if isinstance(entry, dict):
                    yield entry
        return

    raise ValueError(f"Unsupported file format: {path.suffix}")


def main(argv: Optional[list[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Import FoodData Central food records into the database")
    parser.add_argument("path", type=pathlib.Path, help="Path to a JSON or JSONL file")
    parser.add_argument(
        "--query-term",
        default=None,
        help="Query term to record on foods that do not carry one",
    )
    args = parser.parse_args(argv)

    logging.basicConfig(level=getattr(logging, config.LOG_LEVEL, logging.INFO))

    try:
        records = list(load_records(args.path))
    except (OSError, ValueError) as exc:
        parser.error(str(exc))
        return 1

    if not records:
        print("No records found", file=sys.stderr)
        return 1

    init_db()
    with SessionLocal() as session:
        result = ingest_foods(session, records, query_term=args.query_term)

    print(f"Imported {result.ingested} foods ({result.nutrients_added} new nutrient rows), {result.failed} failed")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
