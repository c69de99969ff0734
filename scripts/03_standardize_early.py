#!/usr/bin/env python3
from __future__ import annotations

import argparse
from dataclasses import replace
from pathlib import Path

from flatfish_cpue.cleaning import split_periods
from flatfish_cpue.config import ProjectConfig
from flatfish_cpue.extract import read_table, write_table
from flatfish_cpue.logging_config import setup_logging
from flatfish_cpue.loglinear import standardize_early


def main() -> None:
    defaults = ProjectConfig()
    ap = argparse.ArgumentParser(description='Fit the log-linear CPUE model per area/species for the early period.')
    ap.add_argument('--clean', type=str, default=str(defaults.clean_path))
    ap.add_argument('--split-year', type=int, default=defaults.split_year)
    ap.add_argument('--min-records', type=int, default=defaults.min_records)
    ap.add_argument('--no-locality', action='store_true', help='Drop the locality factor.')
    ap.add_argument('--out', type=str, default=str(defaults.early_index_path))
    ap.add_argument('--fits-out', type=str, default=str(defaults.early_fits_path))
    ap.add_argument('--resid-out', type=str, default=str(defaults.early_residuals_path))
    args = ap.parse_args()

    setup_logging()
    cfg = replace(
        defaults,
        split_year=args.split_year,
        min_records=args.min_records,
        use_locality=not args.no_locality,
    )

    clean = read_table(Path(args.clean))
    early = split_periods(clean, cfg.split_year)['early']
    if early.empty:
        raise SystemExit(f'No records before {cfg.split_year}.')

    indices, fits, residuals = standardize_early(early, cfg)

    write_table(indices, Path(args.out))
    write_table(fits, Path(args.fits_out))
    write_table(residuals, Path(args.resid_out))

    print(fits['status'].value_counts().to_string())


if __name__ == '__main__':
    main()
