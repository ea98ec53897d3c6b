#!/usr/bin/env python3
"""
Cross-check crawled parkings against the catalog for one or more regions.

Modes:
    classify  Split every crawled parking into EXIST / MAYBE_EXIST / NEW by
              distance to catalog parkings and write one sheet per tier.
    filter    Keep only parkings farther than --min-separation from every
              catalog parking and write them as catalog-ready records.

Usage:
    python scripts/run_region.py osaka
    python scripts/run_region.py osaka kyoto --mode filter
    python scripts/run_region.py osaka --refresh-cache
    python scripts/run_region.py --list
"""

from __future__ import annotations

import argparse
import logging
import sys
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

sys.path.insert(0, str(Path(__file__).parent.parent))

from config import (
    DEFAULT_INPUT_PATH,
    LOG_DATE_FORMAT,
    LOG_FORMAT,
    MIN_SEPARATION_M,
    OUTPUT_DIR,
    REGIONS,
)
from parking_scanner.catalog import fetch_candidates, fetch_candidates_cached, get_engine
from parking_scanner.proximity_classifier import classify_batch, filter_new
from parking_scanner.record_formatter import address_contains, format_records
from parking_scanner.report_writer import (
    print_summary,
    write_classification_report,
    write_formatted_records,
)
from parking_scanner.row_normalizer import header_cells, normalize_rows
from parking_scanner.sheet_io import read_sheet_rows

logging.basicConfig(level=logging.INFO, format=LOG_FORMAT, datefmt=LOG_DATE_FORMAT)
logger = logging.getLogger("run_region")


@dataclass
class RegionResult:
    """Per-region run statistics."""
    region_key: str
    rows_read: int = 0
    parkings_written: int = 0
    output_path: Optional[Path] = None
    elapsed_s: float = 0.0
    error: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.error is None


def run_region(
    region_key: str,
    input_path: Path,
    engine,
    mode: str = "classify",
    min_separation_m: float = MIN_SEPARATION_M,
    use_cache: bool = True,
    refresh_cache: bool = False,
) -> RegionResult:
    """
    Run one region end to end. Failures are recorded, not raised, so the
    remaining regions still run.
    """
    region = REGIONS[region_key]
    result = RegionResult(region_key=region_key)
    start = time.time()

    try:
        rows = read_sheet_rows(input_path, region["sheet_name"])
        result.rows_read = len(rows)
        observations = normalize_rows(rows)

        if use_cache:
            candidates = fetch_candidates_cached(engine, region["city_ids"], refresh=refresh_cache)
        else:
            candidates = fetch_candidates(engine, region["city_ids"])

        if not candidates:
            logger.warning(f"No catalog parkings for {region['name']}; every row is new")

        if mode == "classify":
            grouped = classify_batch(observations, candidates)
            output_path = OUTPUT_DIR / f"{region_key}_classification.xlsx"
            written = write_classification_report(output_path, header_cells(rows), rows, grouped)
            result.parkings_written = sum(len(r) for r in grouped.values())
            print_summary(grouped, region_key)
        else:
            kept = filter_new(observations, candidates, min_separation_m)
            predicate = address_contains(region["prefecture"]) if region.get("prefecture") else None
            records = format_records(kept, address_predicate=predicate)
            output_path = OUTPUT_DIR / f"{region_key}_new_parkings.xlsx"
            written = write_formatted_records(output_path, records, sheet_name=region["sheet_name"])
            result.parkings_written = len(records)

        result.output_path = written

    except Exception as exc:
        result.error = str(exc)
        logger.error(f"  FAILED: {exc}", exc_info=True)

    result.elapsed_s = time.time() - start
    return result


def main() -> None:
    parser = argparse.ArgumentParser(description="Parking Scanner: cross-check crawled parkings against the catalog")
    parser.add_argument("regions", nargs="*", help="Region keys (e.g., osaka)")
    parser.add_argument("--list", action="store_true", help="List available regions")
    parser.add_argument("--mode", choices=("classify", "filter"), default="classify")
    parser.add_argument("--input", type=Path, default=DEFAULT_INPUT_PATH, help="Crawl workbook (.xlsx)")
    parser.add_argument(
        "--min-separation", type=float, default=MIN_SEPARATION_M,
        help="Filter mode: minimum distance in meters to any catalog parking",
    )
    parser.add_argument("--no-cache", action="store_true", help="Always query the catalog database")
    parser.add_argument(
        "--refresh-cache", action="store_true",
        help="Query the catalog database and replace the stored snapshot",
    )

    args = parser.parse_args()

    if args.list:
        print("Available regions:")
        for key, region in REGIONS.items():
            print(f"  {key:<10} {region['name']}: sheet '{region['sheet_name']}', "
                  f"{len(region['city_ids'])} cities")
        return

    if not args.regions:
        parser.print_help()
        sys.exit(1)

    region_keys = [r.lower() for r in args.regions]
    invalid = [r for r in region_keys if r not in REGIONS]
    if invalid:
        logger.error(f"Unknown region(s): {', '.join(invalid)}")
        logger.error(f"Available: {', '.join(REGIONS.keys())}")
        sys.exit(1)

    engine = get_engine()
    results: list[RegionResult] = []

    for region_key in region_keys:
        logger.info("=" * 60)
        logger.info(f"Processing {REGIONS[region_key]['name']} ({args.mode})")
        logger.info("=" * 60)

        result = run_region(
            region_key,
            input_path=args.input,
            engine=engine,
            mode=args.mode,
            min_separation_m=args.min_separation,
            use_cache=not args.no_cache,
            refresh_cache=args.refresh_cache,
        )
        results.append(result)

        if result.success and result.output_path is None:
            logger.info(f"  Done: nothing to write in {result.elapsed_s:.1f}s")
        elif result.success:
            logger.info(
                f"  Done: {result.parkings_written} parkings -> {result.output_path} "
                f"in {result.elapsed_s:.1f}s"
            )
        else:
            logger.warning(f"  Region {region_key} failed, continuing with the next one.")

    failed = [r.region_key for r in results if not r.success]
    if failed:
        logger.error(f"Failed regions: {', '.join(failed)}")
        sys.exit(1)


if __name__ == "__main__":
    main()
