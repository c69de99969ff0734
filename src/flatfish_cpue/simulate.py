"""Synthetic catch/effort records with known structure.

Used by the tests and by ``scripts/make_demo_database.py``. Each species
gets a multiplicative year trend, a sinusoidal monthly cycle, area and
locality effects, lognormal noise on positive catches, and a logistic
presence probability that moves with the same trend. A handful of invalid
rows (null effort, zero effort, negative catch, bad month) are appended so
the cleaning step has something to do.
"""
from __future__ import annotations

from typing import Dict, List, Optional

import numpy as np
import pandas as pd

from .config import DEFAULT_SPECIES


def simulate_records(
    species: Optional[List[str]] = None,
    years: range = range(1985, 2006),
    areas: Optional[List[str]] = None,
    localities: Optional[Dict[str, List[str]]] = None,
    n_per_year: int = 60,
    trend: float = -0.05,
    sigma: float = 0.4,
    base_presence: float = 1.2,
    n_invalid: int = 8,
    seed: int = 7,
) -> pd.DataFrame:
    """Return a raw table in the canonical extraction schema.

    ``trend`` is the log-scale change in CPUE per year; ``n_per_year`` is
    the number of records per species/area/year.
    """
    rng = np.random.default_rng(seed)
    species = list(species or DEFAULT_SPECIES)
    areas = list(areas or ['610', '620', '630'])
    localities = localities or {a: [f'{a}-{k}' for k in 'AB'] for a in areas}

    area_eff = {a: e for a, e in zip(areas, np.linspace(-0.3, 0.3, len(areas)))}
    y0 = years[0]

    parts = []
    for si, sp in enumerate(species):
        base = 1.5 + 0.25 * si
        for a in areas:
            locs = localities[a]
            loc_eff = {loc: e for loc, e in zip(locs, np.linspace(-0.2, 0.2, len(locs)))}
            for yr in years:
                n = n_per_year
                month = rng.integers(1, 13, size=n)
                loc = rng.choice(locs, size=n)
                effort = np.round(rng.uniform(1.0, 12.0, size=n), 2)

                season = 0.3 * np.sin(2 * np.pi * (month - 1) / 12.0)
                lin = base + trend * (yr - y0) + season + area_eff[a] + np.array([loc_eff[x] for x in loc])
                cpue = np.exp(lin + rng.normal(0.0, sigma, size=n))

                p = 1.0 / (1.0 + np.exp(-(base_presence + trend * (yr - y0) + season)))
                present = rng.random(n) < p

                catch = np.where(present, np.round(cpue * effort, 2), 0.0)
                # strictly positive after rounding
                catch = np.where(present & (catch <= 0), 0.01, catch)

                parts.append(pd.DataFrame({
                    'year': yr,
                    'month': month,
                    'area': a,
                    'locality': loc,
                    'species': sp,
                    'catch': catch,
                    'effort': effort,
                }))

    df = pd.concat(parts, ignore_index=True)

    if n_invalid > 0:
        bad = df.sample(n=n_invalid, random_state=seed).copy().reset_index(drop=True)
        kinds = ['null_effort', 'zero_effort', 'negative_catch', 'bad_month']
        for i in range(len(bad)):
            kind = kinds[i % len(kinds)]
            if kind == 'null_effort':
                bad.loc[i, 'effort'] = np.nan
            elif kind == 'zero_effort':
                bad.loc[i, 'effort'] = 0.0
            elif kind == 'negative_catch':
                bad.loc[i, 'catch'] = -1.0
            else:
                bad.loc[i, 'month'] = 13
        df = pd.concat([df, bad], ignore_index=True)

    return df
