#!/usr/bin/env python3
from __future__ import annotations

import argparse
from dataclasses import replace
from pathlib import Path

from flatfish_cpue.config import ProjectConfig
from flatfish_cpue.extract import read_table, write_table
from flatfish_cpue.logging_config import setup_logging
from flatfish_cpue.pipeline import nominal_tables, write_nominal
from flatfish_cpue.summary import record_counts


def main() -> None:
    defaults = ProjectConfig()
    ap = argparse.ArgumentParser(description='Unstandardized (nominal) CPUE statistics by species/year and area.')
    ap.add_argument('--clean', type=str, default=str(defaults.clean_path), help='Cleaned records (output of 01_extract_records.py).')
    ap.add_argument('--out', type=str, default=str(defaults.nominal_path))
    ap.add_argument('--split-year', type=int, default=defaults.split_year)
    args = ap.parse_args()

    setup_logging()
    cfg = replace(defaults, nominal_path=Path(args.out), split_year=args.split_year)

    clean = read_table(Path(args.clean))
    tables = nominal_tables(clean, cfg.split_year)
    write_nominal(tables, cfg)

    counts = record_counts(clean, index='year', columns='species')
    counts_out = cfg.nominal_path.parent / 'record_counts_year_species.csv'
    write_table(counts.reset_index(), counts_out)

    print(tables['overview'].to_string(index=False))
    print(f'Wrote: {cfg.nominal_path.parent}')


if __name__ == '__main__':
    main()
