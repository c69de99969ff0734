"""Early-period CPUE standardization with a log-linear model.

Each area/species stratum is fitted separately on its positive-catch records::

    log(cpue) = b0 + year + month [+ locality] + e,    e ~ N(0, s^2)

with every term a factor. The standardized index for a year is the model
prediction at the reference (most frequent) month and locality, back
transformed with the lognormal bias correction ``exp(eta + s^2 / 2)``.
"""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import List, Tuple

import numpy as np
import pandas as pd

from sklearn.linear_model import LinearRegression

from rich.console import Console
from rich.progress import BarColumn, Progress, SpinnerColumn, TextColumn, TimeElapsedColumn

from .cleaning import eligible_strata
from .config import ProjectConfig
from .modeling import (
    Z_95,
    InsufficientDataError,
    drop_aliased,
    make_preprocessor,
    ols_covariance,
    prediction_se,
    r_squared,
    reference_level,
    varying_factors,
    with_intercept,
)

logger = logging.getLogger(__name__)

STRATUM = ['area', 'species']
INDEX_COLUMNS = STRATUM + ['year', 'n', 'eta', 'se', 'index', 'lower', 'upper', 'cv']
FIT_COLUMNS = STRATUM + ['status', 'n_records', 'n_positive', 'n_years', 'factors', 'r2', 'sigma', 'df_resid', 'fit_seconds', 'notes']
RESIDUAL_COLUMNS = ['model', 'area', 'species', 'year', 'month', 'fitted', 'residual']


@dataclass
class LoglinearFit:
    area: str
    species: str
    n: int
    n_years: int
    factors: List[str]
    r2: float
    sigma: float
    df_resid: int
    aliased: List[str]
    index: pd.DataFrame
    residuals: pd.DataFrame


def fit_loglinear(
    df: pd.DataFrame,
    use_locality: bool = True,
    min_records: int = 10,
    area: str = '',
    species: str = '',
) -> LoglinearFit:
    """Fit one stratum. Zero-catch records are ignored."""
    d = df[df['cpue'] > 0].copy()

    if len(d) < min_records:
        raise InsufficientDataError(f'{len(d)} positive records < {min_records}')
    if d['year'].nunique() < 2:
        raise InsufficientDataError('fewer than 2 years with positive catch')

    candidates = ['year', 'month'] + (['locality'] if use_locality else [])
    factors = varying_factors(d, candidates)

    pre = make_preprocessor(factor_cols=factors)
    X = pre.fit_transform(d[factors])
    # e.g. a port fished only in some years is aliased with those years
    keep, dropped = drop_aliased(pre, X)
    X = X[:, keep]
    y = np.log(d['cpue'].to_numpy(dtype=float))

    X1 = with_intercept(X)
    df_resid = int(len(d) - np.linalg.matrix_rank(X1))
    if df_resid <= 0:
        raise InsufficientDataError(f'no residual degrees of freedom ({len(d)} records, {X1.shape[1]} parameters)')

    model = LinearRegression().fit(X, y)
    fitted = model.predict(X)
    resid = y - fitted

    s2 = float(np.sum(resid ** 2) / df_resid)
    cov = ols_covariance(X1, s2)

    years = np.sort(d['year'].unique())
    grid = pd.DataFrame({'year': years})
    for c in factors:
        if c != 'year':
            grid[c] = reference_level(d[c])

    Xg = pre.transform(grid[factors])[:, keep]
    eta = model.predict(Xg)
    se = prediction_se(with_intercept(Xg), cov)

    n_by_year = d.groupby('year').size()
    index = pd.DataFrame({
        'area': area,
        'species': species,
        'year': years.astype(int),
        'n': n_by_year.reindex(years).to_numpy(dtype=int),
        'eta': eta,
        'se': se,
        'index': np.exp(eta + s2 / 2.0),
        'lower': np.exp(eta - Z_95 * se + s2 / 2.0),
        'upper': np.exp(eta + Z_95 * se + s2 / 2.0),
        'cv': np.sqrt(np.expm1(se ** 2)),
    })

    residuals = pd.DataFrame({
        'model': 'loglinear',
        'area': area,
        'species': species,
        'year': d['year'].to_numpy(dtype=int),
        'month': d['month'].to_numpy(dtype=int),
        'fitted': fitted,
        'residual': resid,
    })

    return LoglinearFit(
        area=area,
        species=species,
        n=int(len(d)),
        n_years=int(len(years)),
        factors=factors,
        r2=r_squared(y, fitted),
        sigma=float(np.sqrt(s2)),
        df_resid=df_resid,
        aliased=dropped,
        index=index,
        residuals=residuals,
    )


def standardize_early(
    df: pd.DataFrame,
    cfg: ProjectConfig,
    show_progress: bool = True,
) -> Tuple[pd.DataFrame, pd.DataFrame, pd.DataFrame]:
    """Fit every area/species stratum; returns (indices, fits, residuals)."""
    strata = eligible_strata(df.assign(positive=df['cpue'] > 0), STRATUM, cfg.min_records)

    index_parts: List[pd.DataFrame] = []
    resid_parts: List[pd.DataFrame] = []
    rows: List[dict] = []

    console = Console()
    progress = Progress(
        SpinnerColumn(),
        TextColumn('[bold]{task.description}[/bold]'),
        BarColumn(),
        TextColumn('{task.completed}/{task.total}'),
        TimeElapsedColumn(),
        console=console,
        disable=not show_progress,
    )

    with progress:
        task = progress.add_task('Log-linear strata', total=len(strata))
        for _, st in strata.iterrows():
            area, species = st['area'], st['species']
            stratum = df[(df['area'] == area) & (df['species'] == species)]
            row = {
                'area': area,
                'species': species,
                'n_records': int(st['n_records']),
                'n_positive': int(st['n_positive']),
                'n_years': int(st['n_years']),
            }

            try:
                t0 = time.perf_counter()
                fit = fit_loglinear(
                    stratum,
                    use_locality=cfg.use_locality,
                    min_records=cfg.min_records,
                    area=area,
                    species=species,
                )
                row.update({
                    'status': 'fitted',
                    'factors': '+'.join(fit.factors),
                    'r2': fit.r2,
                    'sigma': fit.sigma,
                    'df_resid': fit.df_resid,
                    'fit_seconds': time.perf_counter() - t0,
                    'notes': f'aliased terms dropped: {", ".join(fit.aliased)}' if fit.aliased else '',
                })
                if fit.aliased:
                    logger.info('%s / %s: dropped aliased terms %s', area, species, fit.aliased)
                index_parts.append(fit.index)
                resid_parts.append(fit.residuals)

            except InsufficientDataError as e:
                row.update({'status': 'skipped', 'notes': str(e)})
                logger.info('Skipped %s / %s: %s', area, species, e)

            except Exception as e:
                row.update({'status': 'failed', 'notes': f'FAILED: {type(e).__name__}: {e}'})
                logger.warning('Log-linear fit failed for %s / %s: %s', area, species, e)

            rows.append(row)
            progress.update(task, advance=1)

    fits = pd.DataFrame(rows).reindex(columns=FIT_COLUMNS)
    indices = pd.concat(index_parts, ignore_index=True) if index_parts else pd.DataFrame(columns=INDEX_COLUMNS)
    residuals = pd.concat(resid_parts, ignore_index=True) if resid_parts else pd.DataFrame(columns=RESIDUAL_COLUMNS)

    n_fit = int((fits['status'] == 'fitted').sum()) if len(fits) else 0
    logger.info('Early period: fitted %d of %d area/species strata', n_fit, len(fits))
    return indices, fits, residuals
