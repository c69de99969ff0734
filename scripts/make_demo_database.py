#!/usr/bin/env python3
"""
Write a simulated catch/effort database for trying the pipeline end to end.

The table uses database-style column names (STAT_AREA, PORT, CATCH_KG,
HOURS_FISHED, ...) so the extraction step's column mapping is exercised.
Species names are upper-cased the way many legacy systems store them.

Example
-------
python scripts/make_demo_database.py --out data/raw/fisheries.sqlite
FLATFISH_DB_URL=sqlite:///data/raw/fisheries.sqlite python scripts/run_all.py
"""
from __future__ import annotations

import argparse
from pathlib import Path

from sqlalchemy import create_engine

from flatfish_cpue.config import ProjectConfig
from flatfish_cpue.simulate import simulate_records


def main() -> None:
    ap = argparse.ArgumentParser(description='Create a demo SQLite database of simulated flatfish catch/effort records.')
    ap.add_argument('--out', type=str, default='data/raw/fisheries.sqlite')
    ap.add_argument('--table', type=str, default=ProjectConfig().table)
    ap.add_argument('--first-year', type=int, default=1980)
    ap.add_argument('--last-year', type=int, default=2010)
    ap.add_argument('--n-per-year', type=int, default=40, help='Records per species/area/year.')
    ap.add_argument('--seed', type=int, default=7)
    args = ap.parse_args()

    df = simulate_records(
        years=range(args.first_year, args.last_year + 1),
        n_per_year=args.n_per_year,
        seed=args.seed,
    )
    df['species'] = df['species'].str.upper()
    df = df.rename(columns={
        'year': 'YEAR',
        'month': 'MONTH',
        'area': 'STAT_AREA',
        'locality': 'PORT',
        'species': 'SPECIES',
        'catch': 'CATCH_KG',
        'effort': 'HOURS_FISHED',
    })

    out = Path(args.out)
    out.parent.mkdir(parents=True, exist_ok=True)
    engine = create_engine(f'sqlite:///{out}')
    df.to_sql(args.table, engine, if_exists='replace', index=False)

    print(f'Wrote: {out} table {args.table} ({df.shape[0]:,} rows)')


if __name__ == '__main__':
    main()
