"""Late-period CPUE standardization with a delta-lognormal model.

For each species (areas pooled) two additive models share one design:

* binomial part: ``P(catch > 0)`` by logistic regression,
* positive part: ``log(cpue)`` of positive records by least squares,

both on year, area and locality factors plus a cyclic spline smooth of
calendar month. The yearly index is averaged over the observed covariate
mix with year set to the target year::

    index(t) = sum_k w_k * p_hat(t, k) * exp(mu_hat(t, k) + s^2 / 2)

Percentile intervals come from a bootstrap that resamples records within
year.
"""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

import numpy as np
import pandas as pd

from sklearn.compose import ColumnTransformer
from sklearn.linear_model import LinearRegression, LogisticRegression

from rich.console import Console
from rich.progress import BarColumn, Progress, SpinnerColumn, TextColumn, TimeElapsedColumn

from .config import ProjectConfig
from .modeling import InsufficientDataError, drop_aliased, make_preprocessor, r_squared, varying_factors

logger = logging.getLogger(__name__)

LOGIT_C = 1e3

INDEX_COLUMNS = ['species', 'year', 'n', 'n_positive', 'prop_positive', 'positive_index',
                 'index', 'lower', 'upper', 'cv']
FIT_COLUMNS = ['species', 'status', 'n_records', 'n_positive', 'n_years', 'factors', 'sigma',
               'r2_positive', 'binomial_accuracy', 'n_boot', 'fit_seconds', 'notes']
RESIDUAL_COLUMNS = ['model', 'area', 'species', 'year', 'month', 'fitted', 'residual']


@dataclass
class DeltaFit:
    species: str
    n: int
    n_positive: int
    n_years: int
    factors: List[str]
    sigma: float
    r2_positive: float
    binomial_accuracy: float
    n_boot: int
    aliased: List[str]
    index: pd.DataFrame
    residuals: pd.DataFrame


@dataclass
class _DeltaParts:
    logit: Optional[LogisticRegression]
    const_p: float
    positive: LinearRegression
    s2: float

    def predict(self, X: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
        if self.logit is None:
            p = np.full(X.shape[0], self.const_p)
        else:
            p = self.logit.predict_proba(X)[:, 1]
        pos = np.exp(self.positive.predict(X) + self.s2 / 2.0)
        return p, pos


def _fit_parts(X: np.ndarray, d: pd.DataFrame) -> _DeltaParts:
    is_pos = d['cpue'].to_numpy() > 0
    n_pos = int(is_pos.sum())
    if n_pos == 0:
        raise InsufficientDataError('no positive catch')

    if is_pos.all():
        logit, const_p = None, 1.0
    else:
        logit = LogisticRegression(C=LOGIT_C, max_iter=5000).fit(X, is_pos.astype(int))
        const_p = float('nan')

    Xp = X[is_pos]
    y = np.log(d['cpue'].to_numpy(dtype=float)[is_pos])
    positive = LinearRegression().fit(Xp, y)
    resid = y - positive.predict(Xp)

    n_par = np.linalg.matrix_rank(np.column_stack([np.ones(n_pos), Xp]))
    df_resid = n_pos - n_par
    if df_resid <= 0:
        raise InsufficientDataError(f'no residual degrees of freedom ({n_pos} positive records, {n_par} parameters)')
    s2 = float(np.sum(resid ** 2) / df_resid)

    return _DeltaParts(logit=logit, const_p=const_p, positive=positive, s2=s2)


def _covariate_mix(d: pd.DataFrame, covariates: List[str]) -> Tuple[pd.DataFrame, np.ndarray]:
    """Unique non-year covariate combinations and their record weights."""
    if not covariates:
        return pd.DataFrame(index=[0]), np.array([1.0])
    mix = d.groupby(covariates, as_index=False).size()
    w = mix['size'].to_numpy(dtype=float)
    return mix[covariates], w / w.sum()


def _year_index(
    parts: _DeltaParts,
    pre: ColumnTransformer,
    columns: List[str],
    keep: np.ndarray,
    mix: pd.DataFrame,
    weights: np.ndarray,
    years: np.ndarray,
    positive_years: set,
) -> pd.DataFrame:
    rows = []
    for t in years:
        grid = mix.copy()
        grid['year'] = t
        p, pos = parts.predict(pre.transform(grid[columns])[:, keep])
        if t in positive_years:
            idx = float(np.sum(weights * p * pos))
        else:
            idx = 0.0
        rows.append({
            'year': int(t),
            'prop_positive': float(np.sum(weights * p)),
            'positive_index': float(np.sum(weights * pos)) if t in positive_years else float('nan'),
            'index': idx,
        })
    return pd.DataFrame(rows)


def _resample_within_year(d: pd.DataFrame, rng: np.random.Generator) -> np.ndarray:
    picks = []
    for _, idx in d.groupby('year').indices.items():
        picks.append(rng.choice(idx, size=len(idx), replace=True))
    return np.concatenate(picks)


def fit_delta_lognormal(
    df: pd.DataFrame,
    cfg: ProjectConfig,
    species: str = '',
    n_boot: Optional[int] = None,
) -> DeltaFit:
    """Fit the delta-lognormal model to one species' late-period records."""
    d = df.reset_index(drop=True).copy()
    n_boot = cfg.n_boot if n_boot is None else n_boot

    if d['year'].nunique() < 2:
        raise InsufficientDataError('fewer than 2 years')
    n_pos = int((d['cpue'] > 0).sum())
    if n_pos == 0:
        raise InsufficientDataError('no positive catch')
    if n_pos < cfg.min_records:
        raise InsufficientDataError(f'{n_pos} positive records < {cfg.min_records}')

    factor_candidates = ['year', 'area'] + (['locality'] if cfg.use_locality else [])
    factors = varying_factors(d, factor_candidates)
    smooth = ['month'] if d['month'].nunique() > 1 else []
    columns = factors + smooth
    d['month'] = d['month'].astype(float)

    # one design for both parts so levels unseen among positives stay defined
    pre = make_preprocessor(factor_cols=factors, smooth_cols=smooth, month_knots=cfg.month_knots)
    X = pre.fit_transform(d[columns])
    keep, aliased = drop_aliased(pre, X)
    X = X[:, keep]

    parts = _fit_parts(X, d)

    years = np.sort(d['year'].unique())
    positive_years = set(d.loc[d['cpue'] > 0, 'year'].unique())
    mix, weights = _covariate_mix(d, [c for c in columns if c != 'year'])
    index = _year_index(parts, pre, columns, keep, mix, weights, years, positive_years)

    counts = d.groupby('year').agg(n=('cpue', 'size'), n_positive=('cpue', lambda s: int((s > 0).sum())))
    index = index.merge(counts.reset_index(), on='year', how='left')
    index.insert(0, 'species', species)

    index['lower'] = np.nan
    index['upper'] = np.nan
    index['cv'] = np.nan

    n_ok = 0
    if n_boot > 0:
        rng = np.random.default_rng(cfg.seed)
        reps = []
        for _ in range(n_boot):
            rows = _resample_within_year(d, rng)
            try:
                bparts = _fit_parts(X[rows], d.iloc[rows])
            except ValueError:
                # e.g. a resample with a single presence class
                continue
            reps.append(_year_index(bparts, pre, columns, keep, mix, weights, years, positive_years)['index'].to_numpy())
        n_ok = len(reps)
        if n_ok:
            boot = np.vstack(reps)
            index['lower'] = np.percentile(boot, 2.5, axis=0)
            index['upper'] = np.percentile(boot, 97.5, axis=0)
            mean = boot.mean(axis=0)
            sd = boot.std(axis=0, ddof=1) if n_ok > 1 else np.full(len(years), np.nan)
            with np.errstate(divide='ignore', invalid='ignore'):
                index['cv'] = np.where(mean > 0, sd / mean, np.nan)
        if n_ok < n_boot:
            logger.debug('%s: %d of %d bootstrap replicates usable', species, n_ok, n_boot)

    is_pos = d['cpue'].to_numpy() > 0
    Xp = X[is_pos]
    y = np.log(d['cpue'].to_numpy(dtype=float)[is_pos])
    fitted = parts.positive.predict(Xp)

    if parts.logit is None:
        accuracy = 1.0
    else:
        accuracy = float(np.mean(parts.logit.predict(X) == is_pos.astype(int)))

    residuals = pd.DataFrame({
        'model': 'delta_positive',
        'area': d.loc[is_pos, 'area'].to_numpy(),
        'species': species,
        'year': d.loc[is_pos, 'year'].to_numpy(dtype=int),
        'month': d.loc[is_pos, 'month'].to_numpy(dtype=int),
        'fitted': fitted,
        'residual': y - fitted,
    })

    return DeltaFit(
        species=species,
        n=int(len(d)),
        n_positive=n_pos,
        n_years=int(len(years)),
        factors=columns,
        sigma=float(np.sqrt(parts.s2)),
        r2_positive=r_squared(y, fitted),
        binomial_accuracy=accuracy,
        n_boot=n_ok,
        aliased=aliased,
        index=index[INDEX_COLUMNS],
        residuals=residuals,
    )


def standardize_late(
    df: pd.DataFrame,
    cfg: ProjectConfig,
    show_progress: bool = True,
) -> Tuple[pd.DataFrame, pd.DataFrame, pd.DataFrame]:
    """Fit the delta-lognormal model per species; returns (indices, fits, residuals)."""
    index_parts: List[pd.DataFrame] = []
    resid_parts: List[pd.DataFrame] = []
    rows: List[Dict] = []

    species_list = sorted(df['species'].unique()) if len(df) else []

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
        task = progress.add_task('Delta-lognormal species', total=len(species_list))
        for species in species_list:
            d = df[df['species'] == species]
            row = {
                'species': species,
                'n_records': int(len(d)),
                'n_positive': int((d['cpue'] > 0).sum()),
                'n_years': int(d['year'].nunique()),
            }
            try:
                t0 = time.perf_counter()
                fit = fit_delta_lognormal(d, cfg, species=species)
                notes = []
                if fit.n_positive == fit.n:
                    notes.append('all records positive; binomial part constant')
                if fit.aliased:
                    notes.append(f'aliased terms dropped: {", ".join(fit.aliased)}')
                    logger.info('%s: dropped aliased terms %s', species, fit.aliased)
                row.update({
                    'status': 'fitted',
                    'factors': '+'.join(fit.factors),
                    'sigma': fit.sigma,
                    'r2_positive': fit.r2_positive,
                    'binomial_accuracy': fit.binomial_accuracy,
                    'n_boot': fit.n_boot,
                    'fit_seconds': time.perf_counter() - t0,
                    'notes': '; '.join(notes),
                })
                index_parts.append(fit.index)
                resid_parts.append(fit.residuals)
                if show_progress:
                    console.print(f'[green]✓[/green] {species}  [dim]fit[/dim] {row["fit_seconds"]:.2f}s')

            except InsufficientDataError as e:
                row.update({'status': 'skipped', 'notes': str(e)})
                logger.info('Skipped %s: %s', species, e)

            except Exception as e:
                row.update({'status': 'failed', 'notes': f'FAILED: {type(e).__name__}: {e}'})
                logger.warning('Delta-lognormal fit failed for %s: %s', species, e)

            rows.append(row)
            progress.update(task, advance=1)

    fits = pd.DataFrame(rows).reindex(columns=FIT_COLUMNS)
    indices = pd.concat(index_parts, ignore_index=True) if index_parts else pd.DataFrame(columns=INDEX_COLUMNS)
    residuals = pd.concat(resid_parts, ignore_index=True) if resid_parts else pd.DataFrame(columns=RESIDUAL_COLUMNS)

    n_fit = int((fits['status'] == 'fitted').sum()) if len(fits) else 0
    logger.info('Late period: fitted %d of %d species', n_fit, len(fits))
    return indices, fits, residuals
