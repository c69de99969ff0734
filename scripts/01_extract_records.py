#!/usr/bin/env python3
from __future__ import annotations

import argparse
from dataclasses import replace
from pathlib import Path

from flatfish_cpue.cleaning import clean_records
from flatfish_cpue.config import ProjectConfig
from flatfish_cpue.extract import extract_records, write_table
from flatfish_cpue.logging_config import setup_logging


def main() -> None:
    defaults = ProjectConfig.from_env()
    ap = argparse.ArgumentParser(description='Extract flatfish catch/effort records from the database and clean them.')
    ap.add_argument('--db-url', type=str, default=defaults.db_url, help='SQLAlchemy URL (or set FLATFISH_DB_URL).')
    ap.add_argument('--table', type=str, default=defaults.table)
    ap.add_argument('--species', type=str, nargs='+', default=defaults.species)
    ap.add_argument('--year-min', type=int, default=None)
    ap.add_argument('--year-max', type=int, default=None)
    ap.add_argument('--split-year', type=int, default=defaults.split_year)
    ap.add_argument('--raw-out', type=str, default=str(defaults.raw_path))
    ap.add_argument('--clean-out', type=str, default=str(defaults.clean_path))
    args = ap.parse_args()

    setup_logging()

    cfg = replace(
        defaults,
        db_url=args.db_url,
        table=args.table,
        species=args.species,
        year_min=args.year_min,
        year_max=args.year_max,
        split_year=args.split_year,
        raw_path=Path(args.raw_out),
        clean_path=Path(args.clean_out),
    )

    raw = extract_records(cfg.db_url, cfg)
    write_table(raw, cfg.raw_path)

    clean, dropped = clean_records(raw, cfg)
    if clean.empty:
        raise SystemExit('No records left after cleaning; check --species and the year bounds.')

    write_table(clean, cfg.clean_path)
    write_table(dropped, cfg.dropped_path)

    print(f'Kept {len(clean):,} of {len(raw):,} records')
    print(dropped.to_string(index=False))


if __name__ == '__main__':
    main()
