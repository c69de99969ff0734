#!/usr/bin/env python
"""Rescale and join the indices, then generate all figures.

Expected inputs (outputs of scripts 02-04):
- nominal CPUE tables: reports/nominal/nominal_cpue*.csv
- standardized indices: reports/standardized/early_loglinear_index.csv, late_delta_index.csv
- residuals: reports/standardized/early_residuals.csv.gz, late_residuals.csv.gz

Outputs:
- reports/standardized/combined_indices.csv
- assets/figures/fig01..fig04 as HTML + PNG
"""

from __future__ import annotations

import argparse
from pathlib import Path

import pandas as pd

from flatfish_cpue.config import ProjectConfig
from flatfish_cpue.extract import read_table, write_table
from flatfish_cpue.figures import make_all_figures
from flatfish_cpue.indices import combine_indices
from flatfish_cpue.logging_config import setup_logging


def _read_optional(path: Path) -> pd.DataFrame:
    if path.exists():
        return read_table(path)
    print(f'[warn] not found: {path}. Skipping.')
    return pd.DataFrame()


def parse_args() -> argparse.Namespace:
    cfg = ProjectConfig()
    nominal = cfg.nominal_path
    p = argparse.ArgumentParser()
    p.add_argument('--nominal', type=Path, default=nominal)
    p.add_argument('--nominal-early', type=Path, default=nominal.with_name(nominal.stem + '_early_by_area.csv'))
    p.add_argument('--nominal-late', type=Path, default=nominal.with_name(nominal.stem + '_late.csv'))
    p.add_argument('--early-index', type=Path, default=cfg.early_index_path)
    p.add_argument('--late-index', type=Path, default=cfg.late_index_path)
    p.add_argument('--early-resid', type=Path, default=cfg.early_residuals_path)
    p.add_argument('--late-resid', type=Path, default=cfg.late_residuals_path)
    p.add_argument('--combined-out', type=Path, default=cfg.combined_path)
    p.add_argument('--split-year', type=int, default=cfg.split_year)
    p.add_argument('--outdir', type=Path, default=cfg.fig_dir)
    p.add_argument('--no-png', action='store_true', help='HTML only (skip kaleido).')
    return p.parse_args()


def main() -> None:
    args = parse_args()
    setup_logging()

    nominal = _read_optional(args.nominal)
    nominal_early = _read_optional(args.nominal_early)
    nominal_late = _read_optional(args.nominal_late)
    early_index = _read_optional(args.early_index)
    late_index = _read_optional(args.late_index)
    residuals = pd.concat(
        [_read_optional(args.early_resid), _read_optional(args.late_resid)],
        ignore_index=True,
    )

    combined = combine_indices(nominal_early, nominal_late, early_index, late_index)
    write_table(combined, args.combined_out)

    outputs = make_all_figures(
        args.outdir,
        nominal_species_year=nominal,
        combined=combined,
        residuals=residuals,
        late_index=late_index,
        split_year=args.split_year,
        png=not args.no_png,
    )

    print(f'\nDone. Wrote {len(outputs)} files to {args.outdir}:\n')
    for p in outputs:
        print(' -', p.name)


if __name__ == '__main__':
    main()
