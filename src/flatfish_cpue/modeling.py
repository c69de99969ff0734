from __future__ import annotations

from typing import List, Tuple

import numpy as np
import pandas as pd

from sklearn.compose import ColumnTransformer
from sklearn.preprocessing import OneHotEncoder, SplineTransformer


Z_95 = 1.959963984540054


class InsufficientDataError(ValueError):
    """A stratum does not carry enough information to fit a model."""


def make_factor_encoder() -> OneHotEncoder:
    # treatment contrasts: first (sorted) level is the reference
    try:
        return OneHotEncoder(drop='first', sparse_output=False)
    except TypeError:  # older sklearn
        return OneHotEncoder(drop='first', sparse=False)


def make_month_spline(n_knots: int, degree: int = 3) -> SplineTransformer:
    """Cyclic cubic regression spline over calendar month (period 12)."""
    if n_knots <= degree:
        raise ValueError(f'month_knots must exceed the spline degree ({degree}); got {n_knots}')
    knots = np.linspace(0.5, 12.5, n_knots).reshape(-1, 1)
    return SplineTransformer(knots=knots, degree=degree, extrapolation='periodic', include_bias=False)


def make_preprocessor(factor_cols: List[str], smooth_cols: List[str] | None = None, month_knots: int = 6) -> ColumnTransformer:
    transformers = [('factors', make_factor_encoder(), factor_cols)]
    for c in smooth_cols or []:
        transformers.append((f's_{c}', make_month_spline(month_knots), [c]))

    return ColumnTransformer(transformers=transformers, sparse_threshold=0.0)


def varying_factors(df: pd.DataFrame, candidates: List[str]) -> List[str]:
    """Keep only the candidate factors with more than one observed level."""
    return [c for c in candidates if c in df.columns and df[c].nunique(dropna=True) > 1]


def reference_level(s: pd.Series):
    """Most frequent level; ties resolve to the smallest level."""
    counts = s.value_counts(dropna=True)
    if counts.empty:
        raise InsufficientDataError(f'No observed levels for {s.name!r}')
    counts = counts[counts == counts.max()]
    return sorted(counts.index)[0]


def estimable_columns(X: np.ndarray, tol: float = 1e-7) -> np.ndarray:
    """Mask of the design columns kept when aliased columns are dropped in order.

    A column is aliased when it lies in the span of the intercept and the
    columns kept before it (sequential Gram-Schmidt), so earlier terms win.
    """
    n, p = X.shape
    Q = np.ones((n, 1)) / np.sqrt(n)
    keep = np.zeros(p, dtype=bool)
    for j in range(p):
        v = X[:, j].astype(float)
        norm0 = np.linalg.norm(v)
        if norm0 == 0:
            continue
        # orthogonalize twice for numerical stability
        v = v - Q @ (Q.T @ v)
        v = v - Q @ (Q.T @ v)
        norm = np.linalg.norm(v)
        if norm > tol * norm0:
            Q = np.column_stack([Q, v / norm])
            keep[j] = True
    return keep


def drop_aliased(pre: ColumnTransformer, X: np.ndarray, protected: str = 'year') -> Tuple[np.ndarray, List[str]]:
    """Columns to keep plus the names of the aliased ones.

    Raises InsufficientDataError when a ``protected`` factor level is aliased,
    since its effect (the index) would not be estimable.
    """
    keep = estimable_columns(X)
    names = [str(n).split('__', 1)[-1] for n in pre.get_feature_names_out()]
    dropped = [n for n, k in zip(names, keep) if not k]
    lost = [n for n in dropped if n.startswith(f'{protected}_')]
    if lost:
        raise InsufficientDataError(f'{protected} effects not estimable: {", ".join(lost)}')
    return keep, dropped


def with_intercept(X: np.ndarray) -> np.ndarray:
    return np.column_stack([np.ones(X.shape[0]), X])


def ols_covariance(X1: np.ndarray, s2: float) -> np.ndarray:
    """Coefficient covariance ``s2 * (X'X)^-1`` (pseudo-inverse when rank deficient)."""
    return s2 * np.linalg.pinv(X1.T @ X1)


def prediction_se(X1: np.ndarray, cov: np.ndarray) -> np.ndarray:
    """Standard error of the linear predictor for each row of ``X1``."""
    var = np.einsum('ij,jk,ik->i', X1, cov, X1)
    return np.sqrt(np.clip(var, 0.0, None))


def r_squared(y, yhat) -> float:
    y = np.asarray(y, dtype=float)
    yhat = np.asarray(yhat, dtype=float)
    ss_tot = float(np.sum((y - y.mean()) ** 2))
    if ss_tot == 0:
        return float('nan')
    return 1.0 - float(np.sum((y - yhat) ** 2)) / ss_tot
