from __future__ import annotations

from dataclasses import replace

import numpy as np
import pandas as pd
import pytest

from flatfish_cpue.cleaning import (
    canonicalize_species,
    clean_records,
    code_to_str,
    eligible_strata,
    split_periods,
)


def _raw_rows() -> pd.DataFrame:
    return pd.DataFrame([
        # year, month, area, locality, species, catch, effort
        (1994, 3, '610', 'A', 'Rex Sole', 12.0, 4.0),
        (1995, 4, '610', None, 'REX SOLE', 0.0, 2.0),          # zero catch kept, locality filled
        (1996, 5, '620', 'B', 'dover sole', 9.0, 3.0),
        (1997, 6, '620', 'B', 'Dover Sole', np.nan, 3.0),      # missing value
        (1997, 6, '620', 'B', 'Pacific cod', 5.0, 3.0),        # species not analysed
        (1998, 7, '620', 'B', 'Dover Sole', 5.0, 0.0),         # non-positive effort
        (1998, 7, '620', 'B', 'Dover Sole', -1.0, 2.0),        # negative catch
        (1999, 13, '620', 'B', 'Dover Sole', 5.0, 2.0),        # invalid month
    ], columns=['year', 'month', 'area', 'locality', 'species', 'catch', 'effort'])


def test_canonicalize_species_variants():
    canon = ['Rex Sole', 'Arrowtooth Flounder']
    assert canonicalize_species('REX SOLE', canon) == ('Rex Sole', True)
    assert canonicalize_species('  rex   sole ', canon) == ('Rex Sole', True)
    assert canonicalize_species('Arrowtoth Flounder', canon) == ('Arrowtooth Flounder', True)
    assert canonicalize_species('Pacific cod', canon) == ('Pacific cod', False)
    assert canonicalize_species(None, canon) == (None, False)


def test_clean_records_filters_and_derives(cfg):
    clean, dropped = clean_records(_raw_rows(), cfg)

    assert len(clean) == 3
    assert set(clean['species']) == {'Rex Sole', 'Dover Sole'}
    assert (clean['effort'] > 0).all()
    assert clean[['year', 'month', 'area', 'species', 'catch', 'effort']].notna().all().all()

    zero = clean[clean['catch'] == 0]
    assert len(zero) == 1
    assert zero['locality'].iloc[0] == 'unknown'
    assert not zero['positive'].iloc[0]

    np.testing.assert_allclose(clean['cpue'], clean['catch'] / clean['effort'])

    by_reason = dict(zip(dropped['reason'], dropped['n_rows']))
    assert by_reason['missing value'] == 1
    assert by_reason['species not analysed'] == 1
    assert by_reason['non-positive effort'] == 1
    assert by_reason['negative catch'] == 1
    assert by_reason['invalid month'] == 1
    assert dropped['n_rows'].sum() + len(clean) == len(_raw_rows())


def test_period_assignment_uses_split_year(cfg):
    clean, _ = clean_records(_raw_rows(), cfg)
    periods = dict(zip(clean['year'], clean['period']))
    assert periods[1994] == 'early'
    assert periods[1995] == 'early'
    assert periods[1996] == 'late'


def test_year_bounds_are_applied(cfg):
    cfg = replace(cfg, year_min=1995, year_max=1995)
    clean, dropped = clean_records(_raw_rows(), cfg)
    assert clean['year'].unique().tolist() == [1995]
    by_reason = dict(zip(dropped['reason'], dropped['n_rows']))
    assert by_reason['before year_min'] == 1
    assert by_reason['after year_max'] == 1


def test_clean_records_requires_columns(cfg):
    with pytest.raises(ValueError, match='Missing required columns'):
        clean_records(_raw_rows().drop(columns=['effort']), cfg)


def test_split_periods_disjoint_and_exhaustive(clean):
    parts = split_periods(clean, 1996)
    assert (parts['early']['year'] < 1996).all()
    assert (parts['late']['year'] >= 1996).all()
    assert len(parts['early']) + len(parts['late']) == len(clean)


def test_eligible_strata_flags_small_and_single_year_strata():
    df = pd.DataFrame({
        'area': ['a'] * 12 + ['b'] * 3 + ['c'] * 12,
        'species': 'Rex Sole',
        'year': [1990] * 6 + [1991] * 6 + [1990] * 3 + [1992] * 12,
        'cpue': 1.0,
        'positive': True,
    })
    stats = eligible_strata(df, ['area', 'species'], min_records=10).set_index('area')

    assert bool(stats.loc['a', 'eligible'])
    assert not bool(stats.loc['b', 'eligible'])   # too few records
    assert not bool(stats.loc['c', 'eligible'])   # single year
    assert stats.loc['c', 'n_years'] == 1


def test_numeric_area_codes_with_nulls_keep_integer_text(cfg):
    raw = _raw_rows().head(3).copy()
    raw['area'] = [610.0, 620.0, np.nan]
    raw['locality'] = [12.0, np.nan, 7.0]

    clean, dropped = clean_records(raw, cfg)

    assert clean['area'].tolist() == ['610', '620']
    assert clean['locality'].tolist() == ['12', 'unknown']
    assert dict(zip(dropped['reason'], dropped['n_rows']))['missing value'] == 1


def test_code_to_str():
    assert code_to_str(610.0) == '610'
    assert code_to_str(np.float64(620)) == '620'
    assert code_to_str(' 630 ') == '630'
    assert code_to_str(610.5) == '610.5'
