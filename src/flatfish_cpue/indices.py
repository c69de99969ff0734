from __future__ import annotations

import logging
from typing import List, Sequence

import numpy as np
import pandas as pd

logger = logging.getLogger(__name__)

COMBINED_COLUMNS = ['period', 'species', 'area', 'year', 'nominal', 'standardized', 'lower', 'upper']
ALL_AREAS = 'all'


def rescale_index(
    df: pd.DataFrame,
    by: List[str],
    value_col: str = 'index',
    companion_cols: Sequence[str] = ('lower', 'upper'),
) -> pd.DataFrame:
    """Divide each series (and its interval columns) by the series mean of ``value_col``."""
    out = df.copy()
    if out.empty:
        return out

    cols = [value_col] + [c for c in companion_cols if c in out.columns]
    if by:
        mean = out.groupby(by)[value_col].transform('mean')
    else:
        mean = pd.Series(out[value_col].mean(), index=out.index)

    bad = ~(mean > 0)
    if bad.any():
        groups = out.loc[bad, by].drop_duplicates().to_dict('records') if by else ['<all>']
        logger.warning('Cannot rescale %d series with zero/undefined mean: %s', len(groups), groups)

    scale = mean.where(~bad, np.nan)
    for c in cols:
        out[c] = out[c].astype(float) / scale
    return out


def _join_period(nominal: pd.DataFrame, standardized: pd.DataFrame, keys: List[str], nominal_col: str) -> pd.DataFrame:
    series = [k for k in keys if k != 'year']

    nom = nominal[keys + [nominal_col]].rename(columns={nominal_col: 'nominal'})
    nom = rescale_index(nom, series, value_col='nominal', companion_cols=())

    if standardized.empty:
        out = nom.copy()
        for c in ['standardized', 'lower', 'upper']:
            out[c] = np.nan
        return out

    std = rescale_index(standardized, series)
    std = std[keys + ['index', 'lower', 'upper']].rename(columns={'index': 'standardized'})
    return nom.merge(std, on=keys, how='left')


def combine_indices(
    nominal_early: pd.DataFrame,
    nominal_late: pd.DataFrame,
    early: pd.DataFrame,
    late: pd.DataFrame,
    nominal_col: str = 'ratio_cpue',
) -> pd.DataFrame:
    """Join rescaled nominal CPUE with the rescaled standardized indices.

    ``nominal_early`` is nominal CPUE by area/species/year and ``nominal_late``
    by species/year, matching the strata the two models are fitted on. Every
    series is rescaled to mean 1 so nominal and standardized trends overlay.
    """
    parts = []

    if len(nominal_early):
        e = _join_period(nominal_early, early, ['area', 'species', 'year'], nominal_col)
        e.insert(0, 'period', 'early')
        parts.append(e)

    if len(nominal_late):
        lt = _join_period(nominal_late, late, ['species', 'year'], nominal_col)
        lt.insert(0, 'period', 'late')
        lt['area'] = ALL_AREAS
        parts.append(lt)

    if not parts:
        return pd.DataFrame(columns=COMBINED_COLUMNS)

    out = pd.concat(parts, ignore_index=True)[COMBINED_COLUMNS]
    out['area'] = out['area'].astype(str)
    out['year'] = out['year'].astype(int)
    return out.sort_values(['species', 'period', 'area', 'year']).reset_index(drop=True)
