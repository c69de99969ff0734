#!/usr/bin/env python3
from __future__ import annotations

import argparse
from dataclasses import replace
from pathlib import Path

from flatfish_cpue.cleaning import split_periods
from flatfish_cpue.config import ProjectConfig
from flatfish_cpue.delta import standardize_late
from flatfish_cpue.extract import read_table, write_table
from flatfish_cpue.logging_config import setup_logging


def main() -> None:
    defaults = ProjectConfig()
    ap = argparse.ArgumentParser(description='Fit the delta-lognormal CPUE index per species for the late period.')
    ap.add_argument('--clean', type=str, default=str(defaults.clean_path))
    ap.add_argument('--split-year', type=int, default=defaults.split_year)
    ap.add_argument('--min-records', type=int, default=defaults.min_records)
    ap.add_argument('--month-knots', type=int, default=defaults.month_knots)
    ap.add_argument('--n-boot', type=int, default=defaults.n_boot, help='Bootstrap replicates for intervals (0 to skip).')
    ap.add_argument('--no-locality', action='store_true', help='Drop the locality factor.')
    ap.add_argument('--seed', type=int, default=defaults.seed)
    ap.add_argument('--out', type=str, default=str(defaults.late_index_path))
    ap.add_argument('--fits-out', type=str, default=str(defaults.late_fits_path))
    ap.add_argument('--resid-out', type=str, default=str(defaults.late_residuals_path))
    args = ap.parse_args()

    setup_logging()
    cfg = replace(
        defaults,
        split_year=args.split_year,
        min_records=args.min_records,
        month_knots=args.month_knots,
        n_boot=args.n_boot,
        use_locality=not args.no_locality,
        seed=args.seed,
    )

    clean = read_table(Path(args.clean))
    late = split_periods(clean, cfg.split_year)['late']
    if late.empty:
        raise SystemExit(f'No records from {cfg.split_year} onward.')

    indices, fits, residuals = standardize_late(late, cfg)

    write_table(indices, Path(args.out))
    write_table(fits, Path(args.fits_out))
    write_table(residuals, Path(args.resid_out))

    print(fits[['species', 'status', 'n_records', 'n_positive', 'sigma', 'notes']].to_string(index=False))


if __name__ == '__main__':
    main()
