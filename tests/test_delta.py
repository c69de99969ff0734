from __future__ import annotations

from dataclasses import replace

import numpy as np
import pandas as pd
import pytest

from flatfish_cpue.cleaning import clean_records
from flatfish_cpue.delta import fit_delta_lognormal, standardize_late
from flatfish_cpue.modeling import InsufficientDataError
from flatfish_cpue.simulate import simulate_records


@pytest.fixture
def late(cfg):
    raw = simulate_records(
        species=['Dover Sole'],
        years=range(1996, 2007),
        areas=['610', '620'],
        n_per_year=100,
        trend=-0.15,
        sigma=0.3,
        base_presence=1.2,
        n_invalid=0,
        seed=5,
    )
    df, _ = clean_records(raw, cfg)
    return df


def test_positive_part_recovers_trend(late, cfg):
    fit = fit_delta_lognormal(late, cfg, species='Dover Sole')
    idx = fit.index

    assert idx['year'].tolist() == list(range(1996, 2007))
    slope = np.polyfit(idx['year'], np.log(idx['positive_index']), 1)[0]
    assert slope == pytest.approx(-0.15, abs=0.04)

    # presence declines with the same trend
    assert idx['prop_positive'].iloc[-1] < idx['prop_positive'].iloc[0]
    assert (idx['index'] > 0).all()
    assert fit.factors == ['year', 'area', 'locality', 'month']
    assert fit.sigma == pytest.approx(0.3, abs=0.06)


def test_index_is_product_of_components_without_other_covariates(late, cfg):
    d = late[(late['area'] == '610')].copy()
    d['month'] = 6
    fit = fit_delta_lognormal(d, replace(cfg, use_locality=False), species='Dover Sole')

    assert fit.factors == ['year']
    idx = fit.index
    np.testing.assert_allclose(idx['index'], idx['prop_positive'] * idx['positive_index'], rtol=1e-10)


def test_year_without_positive_catch_has_zero_index(late, cfg):
    d = late.copy()
    empty_year = d['year'] == 2000
    d.loc[empty_year, 'catch'] = 0.0
    d.loc[empty_year, 'cpue'] = 0.0

    idx = fit_delta_lognormal(d, cfg, species='Dover Sole').index.set_index('year')

    assert idx.loc[2000, 'index'] == 0.0
    assert np.isnan(idx.loc[2000, 'positive_index'])
    assert idx.loc[2000, 'prop_positive'] < 0.05
    assert idx.loc[2000, 'n_positive'] == 0
    assert (idx.drop(index=2000)['index'] > 0).all()


def test_all_positive_records_make_binomial_part_constant(late, cfg):
    d = late[late['cpue'] > 0]
    fit = fit_delta_lognormal(d, cfg, species='Dover Sole')

    np.testing.assert_allclose(fit.index['prop_positive'], 1.0)
    np.testing.assert_allclose(fit.index['index'], fit.index['positive_index'])
    assert fit.binomial_accuracy == 1.0


def test_bootstrap_intervals(late, cfg):
    fit = fit_delta_lognormal(late, replace(cfg, n_boot=15), species='Dover Sole')
    idx = fit.index

    assert fit.n_boot == 15
    assert idx[['lower', 'upper', 'cv']].notna().all().all()
    assert (idx['lower'] <= idx['upper']).all()
    assert (idx['cv'] > 0).all()


def test_no_bootstrap_leaves_intervals_empty(late, cfg):
    idx = fit_delta_lognormal(late, replace(cfg, n_boot=0)).index
    assert idx[['lower', 'upper', 'cv']].isna().all().all()


def test_insufficient_species_data(late, cfg):
    with pytest.raises(InsufficientDataError, match='2 years'):
        fit_delta_lognormal(late[late['year'] == 1999], cfg)

    zeros = late.copy()
    zeros['catch'] = 0.0
    zeros['cpue'] = 0.0
    with pytest.raises(InsufficientDataError, match='no positive'):
        fit_delta_lognormal(zeros, cfg)


def test_standardize_late_per_species(clean, cfg):
    late = clean[clean['period'] == 'late'].copy()
    single = late[(late['species'] == 'Rex Sole') & (late['year'] == 1997)].copy()
    single['species'] = 'Flathead Sole'
    late = pd.concat([late, single], ignore_index=True)

    indices, fits, residuals = standardize_late(late, cfg, show_progress=False)
    fits = fits.set_index('species')

    assert fits.loc['Rex Sole', 'status'] == 'fitted'
    assert fits.loc['Dover Sole', 'status'] == 'fitted'
    assert fits.loc['Flathead Sole', 'status'] == 'skipped'

    assert set(indices['species']) == {'Rex Sole', 'Dover Sole'}
    assert indices['year'].min() >= cfg.split_year
    assert set(residuals['model']) == {'delta_positive'}
    assert len(residuals) == int((late[late['species'] != 'Flathead Sole']['cpue'] > 0).sum())


def test_locality_confounded_with_years_is_dropped(cfg):
    rng = np.random.default_rng(1)
    years = np.repeat(np.arange(1996, 2006), 40)
    present = rng.random(len(years)) < 0.7
    cpue = np.where(present, np.exp(1.0 - 0.1 * (years - 1996) + rng.normal(0.0, 0.1, size=len(years))), 0.0)
    d = pd.DataFrame({
        'year': years,
        'month': rng.integers(1, 13, size=len(years)),
        'area': '610',
        'locality': np.where(years < 2001, 'A', 'B'),
        'species': 'Dover Sole',
        'catch': cpue,
        'effort': 1.0,
        'cpue': cpue,
    })

    fit = fit_delta_lognormal(d, cfg, species='Dover Sole')
    assert fit.aliased == ['locality_B']
    slope = np.polyfit(fit.index['year'], np.log(fit.index['positive_index']), 1)[0]
    assert slope == pytest.approx(-0.1, abs=0.03)

    _, fits, _ = standardize_late(d, cfg, show_progress=False)
    assert fits.loc[0, 'status'] == 'fitted'
    assert fits.loc[0, 'notes'] == 'aliased terms dropped: locality_B'


def test_fit_exception_marks_species_failed(clean, cfg, monkeypatch):
    late = clean[clean['period'] == 'late']

    def boom(*args, **kwargs):
        raise RuntimeError('solver diverged')

    monkeypatch.setattr('flatfish_cpue.delta.fit_delta_lognormal', boom)
    indices, fits, residuals = standardize_late(late, cfg, show_progress=False)

    assert set(fits['status']) == {'failed'}
    assert fits['notes'].str.startswith('FAILED: RuntimeError: solver diverged').all()
    assert indices.empty and residuals.empty


def test_species_without_residual_degrees_of_freedom_is_skipped(cfg):
    years = np.arange(1996, 2001)
    d = pd.DataFrame({
        'year': years, 'month': 6, 'area': '610', 'locality': 'A', 'species': 'Rex Sole',
        'catch': np.linspace(1.0, 2.0, len(years)), 'effort': 1.0,
    })
    d['cpue'] = d['catch']
    cfg = replace(cfg, min_records=len(years))

    with pytest.raises(InsufficientDataError, match='no residual degrees of freedom'):
        fit_delta_lognormal(d, cfg)

    _, fits, _ = standardize_late(d, cfg, show_progress=False)
    assert fits.loc[0, 'status'] == 'skipped'
    assert 'no residual degrees of freedom' in fits.loc[0, 'notes']
