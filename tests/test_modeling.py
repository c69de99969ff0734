from __future__ import annotations

import numpy as np
import pandas as pd
import pytest

from flatfish_cpue.modeling import InsufficientDataError, drop_aliased, estimable_columns, make_preprocessor


def test_estimable_columns_drops_later_duplicates():
    a = np.array([1.0, 0.0, 1.0, 0.0])
    b = np.array([0.0, 1.0, 1.0, 0.0])
    X = np.column_stack([a, b, a + b, np.ones(4), np.zeros(4)])
    # a + b repeats earlier columns; ones repeats the intercept; zeros carries nothing
    assert estimable_columns(X).tolist() == [True, True, False, False, False]


def _turnover() -> pd.DataFrame:
    years = np.repeat([1990, 1991, 1992, 1993], 3)
    return pd.DataFrame({'year': years, 'locality': np.where(years < 1992, 'A', 'B')})


def test_drop_aliased_names_dropped_terms():
    d = _turnover()
    pre = make_preprocessor(['year', 'locality'])
    X = pre.fit_transform(d)

    keep, dropped = drop_aliased(pre, X)
    assert dropped == ['locality_B']
    assert keep.sum() == 3


def test_drop_aliased_refuses_to_drop_year_levels():
    d = _turnover()
    pre = make_preprocessor(['locality', 'year'])
    X = pre.fit_transform(d)

    with pytest.raises(InsufficientDataError, match='year effects not estimable: year_1993'):
        drop_aliased(pre, X)
