from __future__ import annotations

from typing import List

import numpy as np
import pandas as pd


NOMINAL_COLUMNS = [
    'n_records', 'n_positive', 'prop_positive',
    'total_catch', 'total_effort', 'ratio_cpue',
    'mean_cpue', 'median_cpue', 'sd_cpue', 'se_cpue', 'cv_cpue',
    'geo_mean_cpue',
]


def geo_mean_positive(x) -> float:
    x = np.asarray(x, dtype=float)
    x = x[x > 0]
    if x.size == 0:
        return float('nan')
    return float(np.exp(np.mean(np.log(x))))


def nominal_cpue(df: pd.DataFrame, by: List[str]) -> pd.DataFrame:
    """Unstandardized CPUE statistics per group (e.g. species/year)."""
    missing = [c for c in by + ['catch', 'effort', 'cpue'] if c not in df.columns]
    if missing:
        raise ValueError(f'Missing required columns: {missing}')

    if df.empty:
        return pd.DataFrame(columns=by + NOMINAL_COLUMNS)

    tmp = df.copy()
    tmp['_positive'] = tmp['catch'] > 0

    out = (
        tmp.groupby(by, as_index=False)
        .agg(
            n_records=('cpue', 'size'),
            n_positive=('_positive', 'sum'),
            total_catch=('catch', 'sum'),
            total_effort=('effort', 'sum'),
            mean_cpue=('cpue', 'mean'),
            median_cpue=('cpue', 'median'),
            sd_cpue=('cpue', 'std'),
            geo_mean_cpue=('cpue', geo_mean_positive),
        )
    )

    out['n_positive'] = out['n_positive'].astype(int)
    out['prop_positive'] = out['n_positive'] / out['n_records']
    out['ratio_cpue'] = out['total_catch'] / out['total_effort']
    out['se_cpue'] = out['sd_cpue'] / np.sqrt(out['n_records'])
    with np.errstate(divide='ignore', invalid='ignore'):
        out['cv_cpue'] = np.where(out['mean_cpue'] > 0, out['sd_cpue'] / out['mean_cpue'], np.nan)

    return out[by + NOMINAL_COLUMNS].sort_values(by).reset_index(drop=True)


def record_counts(df: pd.DataFrame, index: str | List[str], columns: str) -> pd.DataFrame:
    """Pivot of record counts (e.g. year x species), zeros filled."""
    return (
        df.pivot_table(index=index, columns=columns, values='cpue', aggfunc='size', fill_value=0)
        .astype(int)
    )


def period_overview(df: pd.DataFrame) -> pd.DataFrame:
    """One row per period/species: coverage and headline nominal CPUE."""
    if df.empty:
        return pd.DataFrame(columns=['period', 'species', 'year_min', 'year_max', 'n_years',
                                     'n_areas', 'n_records', 'prop_positive', 'ratio_cpue'])

    out = (
        df.groupby(['period', 'species'], as_index=False)
        .agg(
            year_min=('year', 'min'),
            year_max=('year', 'max'),
            n_years=('year', 'nunique'),
            n_areas=('area', 'nunique'),
            n_records=('cpue', 'size'),
            prop_positive=('positive', 'mean'),
            total_catch=('catch', 'sum'),
            total_effort=('effort', 'sum'),
        )
    )
    out['ratio_cpue'] = out['total_catch'] / out['total_effort']
    out = out.drop(columns=['total_catch', 'total_effort'])
    return out.sort_values(['period', 'species']).reset_index(drop=True)
