#!/usr/bin/env python3
from __future__ import annotations

import argparse
from dataclasses import replace
from pathlib import Path

from flatfish_cpue.config import ProjectConfig
from flatfish_cpue.logging_config import setup_logging
from flatfish_cpue.pipeline import run_pipeline


def main() -> None:
    defaults = ProjectConfig.from_env()
    ap = argparse.ArgumentParser(description='Run the full CPUE analysis: extract, summarize, standardize, plot.')
    ap.add_argument('--db-url', type=str, default=defaults.db_url, help='SQLAlchemy URL (or set FLATFISH_DB_URL).')
    ap.add_argument('--table', type=str, default=defaults.table)
    ap.add_argument('--species', type=str, nargs='+', default=defaults.species)
    ap.add_argument('--year-min', type=int, default=None)
    ap.add_argument('--year-max', type=int, default=None)
    ap.add_argument('--split-year', type=int, default=defaults.split_year)
    ap.add_argument('--min-records', type=int, default=defaults.min_records)
    ap.add_argument('--n-boot', type=int, default=defaults.n_boot)
    ap.add_argument('--seed', type=int, default=defaults.seed)
    ap.add_argument('--no-figures', action='store_true')
    ap.add_argument('--no-png', action='store_true', help='HTML figures only (skip kaleido).')
    ap.add_argument('--log-file', type=str, default=None)
    args = ap.parse_args()

    setup_logging(log_file=Path(args.log_file) if args.log_file else None)

    cfg = replace(
        defaults,
        db_url=args.db_url,
        table=args.table,
        species=args.species,
        year_min=args.year_min,
        year_max=args.year_max,
        split_year=args.split_year,
        min_records=args.min_records,
        n_boot=args.n_boot,
        seed=args.seed,
    )

    try:
        out = run_pipeline(cfg, make_figures=not args.no_figures, png=not args.no_png)
    except ValueError as e:
        raise SystemExit(str(e))

    print(out['overview'].to_string(index=False))
    print(f'Wrote combined indices: {cfg.combined_path} ({len(out["combined"]):,} rows)')


if __name__ == '__main__':
    main()
