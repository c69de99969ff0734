from __future__ import annotations

import difflib
import logging
import re
from typing import Dict, List, Tuple

import numpy as np
import pandas as pd

from .config import ProjectConfig

logger = logging.getLogger(__name__)

REQUIRED = ['year', 'month', 'area', 'species', 'catch', 'effort']
PERIODS = ('early', 'late')


def _norm_key(x) -> str:
    s = str(x).lower()
    s = re.sub(r'[^a-z0-9]+', ' ', s)
    return re.sub(r'\s+', ' ', s).strip()


def canonicalize_species(name, canon: List[str], cutoff: float = 0.85) -> Tuple[object, bool]:
    """Map a stored species name onto one of ``canon``; returns (name, matched)."""
    if name is None or pd.isna(name):
        return name, False
    key = _norm_key(name)
    if key == '':
        return name, False

    canon_keys = {_norm_key(c): c for c in canon}
    if key in canon_keys:
        return canon_keys[key], True

    matches = difflib.get_close_matches(key, canon_keys.keys(), n=1, cutoff=cutoff)
    if matches:
        return canon_keys[matches[0]], True

    return name, False


def code_to_str(v) -> str:
    """Area/locality code as text; integral floats (610.0) lose the decimal."""
    if isinstance(v, float) and v.is_integer():
        return str(int(v))
    return str(v).strip()


def assign_period(year: pd.Series, split_year: int) -> pd.Series:
    return pd.Series(np.where(year < split_year, 'early', 'late'), index=year.index)


def clean_records(raw: pd.DataFrame, cfg: ProjectConfig) -> Tuple[pd.DataFrame, pd.DataFrame]:
    """Filter the raw extraction down to analysable records.

    Returns the cleaned table (with ``cpue``, ``positive`` and ``period``
    columns) and a ``reason, n_rows`` table describing what was dropped.
    Zero catches are kept; they carry the presence/absence information.
    """
    missing = [c for c in REQUIRED if c not in raw.columns]
    if missing:
        raise ValueError(f'Missing required columns: {missing}')

    df = raw.copy()
    if 'locality' not in df.columns:
        df['locality'] = np.nan

    for c in ['year', 'month', 'catch', 'effort']:
        df[c] = pd.to_numeric(df[c], errors='coerce')

    species = df['species'].map(lambda s: canonicalize_species(s, cfg.species))
    df['species'] = species.map(lambda t: t[0])
    matched = species.map(lambda t: t[1]).astype(bool)

    rules: List[Tuple[str, pd.Series]] = [
        ('missing value', df[REQUIRED].isna().any(axis=1)),
        ('species not analysed', ~matched),
        ('non-positive effort', df['effort'] <= 0),
        ('negative catch', df['catch'] < 0),
        ('invalid month', ~df['month'].between(1, 12) | (df['month'] % 1 != 0)),
    ]
    if cfg.year_min is not None:
        rules.append(('before year_min', df['year'] < cfg.year_min))
    if cfg.year_max is not None:
        rules.append(('after year_max', df['year'] > cfg.year_max))

    drop = pd.Series(False, index=df.index)
    counts: Dict[str, int] = {}
    for reason, mask in rules:
        mask = mask.fillna(False).astype(bool) & ~drop
        counts[reason] = int(mask.sum())
        drop |= mask

    dropped = pd.DataFrame({'reason': list(counts), 'n_rows': list(counts.values())})

    df = df[~drop].copy()
    df['year'] = df['year'].astype(int)
    df['month'] = df['month'].astype(int)
    # NULLs in a numeric code column come back from the database as float
    df['area'] = df['area'].map(code_to_str)
    df['locality'] = df['locality'].fillna('unknown').map(code_to_str)

    df['cpue'] = df['catch'] / df['effort']
    df['positive'] = df['catch'] > 0
    df['period'] = assign_period(df['year'], cfg.split_year)

    logger.info(
        'Kept %s of %s records (%s dropped)',
        f'{len(df):,}', f'{len(raw):,}', f'{int(drop.sum()):,}',
    )
    for reason, n in counts.items():
        if n:
            logger.debug('  dropped %s rows: %s', f'{n:,}', reason)

    cols = ['year', 'month', 'area', 'locality', 'species', 'catch', 'effort', 'cpue', 'positive', 'period']
    return df[cols].sort_values(['species', 'area', 'year', 'month']).reset_index(drop=True), dropped


def split_periods(df: pd.DataFrame, split_year: int) -> Dict[str, pd.DataFrame]:
    """Split into the early (year < split_year) and late (year >= split_year) periods."""
    period = assign_period(df['year'], split_year)
    return {p: df[period == p].copy().reset_index(drop=True) for p in PERIODS}


def eligible_strata(
    df: pd.DataFrame,
    by: List[str],
    min_records: int,
    min_years: int = 2,
) -> pd.DataFrame:
    """Per-stratum record/year counts and whether the stratum can be modelled."""
    if df.empty:
        return pd.DataFrame(columns=by + ['n_records', 'n_positive', 'n_years', 'eligible'])

    stats = (
        df.groupby(by, as_index=False)
        .agg(
            n_records=('cpue', 'size'),
            n_positive=('positive', 'sum'),
            n_years=('year', 'nunique'),
        )
    )
    stats['n_positive'] = stats['n_positive'].astype(int)
    stats['eligible'] = (stats['n_records'] >= min_records) & (stats['n_years'] >= min_years)
    return stats.sort_values(by).reset_index(drop=True)
