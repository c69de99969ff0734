from __future__ import annotations

from dataclasses import replace

import numpy as np
import pandas as pd
import pytest
from sqlalchemy import create_engine

from flatfish_cpue.extract import read_table
from flatfish_cpue.pipeline import run_pipeline


def test_run_pipeline_from_raw_table(raw, cfg):
    out = run_pipeline(cfg, raw=raw, make_figures=True, png=False, show_progress=False)

    for path in [cfg.raw_path, cfg.clean_path, cfg.dropped_path, cfg.nominal_path,
                 cfg.early_index_path, cfg.early_fits_path, cfg.late_index_path,
                 cfg.late_fits_path, cfg.early_residuals_path, cfg.late_residuals_path,
                 cfg.combined_path]:
        assert path.exists(), path

    assert (out['early_fits']['status'] == 'fitted').all()
    assert (out['late_fits']['status'] == 'fitted').all()

    combined = out['combined']
    assert set(combined['period']) == {'early', 'late'}
    assert (combined.loc[combined['period'] == 'late', 'area'] == 'all').all()

    means = combined.groupby(['period', 'species', 'area'])[['nominal', 'standardized']].mean()
    np.testing.assert_allclose(means.to_numpy(), 1.0)

    assert any(cfg.fig_dir.glob('*.html'))


def test_run_pipeline_intermediates_reload(raw, cfg):
    out = run_pipeline(cfg, raw=raw, make_figures=False, show_progress=False)
    clean = read_table(cfg.clean_path)
    assert len(clean) == len(out['clean'])
    assert set(clean['period']) == {'early', 'late'}


def test_run_pipeline_from_database(tmp_path, raw, cfg):
    engine = create_engine(cfg.db_url)
    db = raw.rename(columns={'area': 'STAT_AREA', 'catch': 'CATCH_KG', 'effort': 'HOURS_FISHED'})
    db['species'] = db['species'].str.upper()
    db.to_sql(cfg.table, engine, index=False)

    cfg = replace(cfg, year_min=1992)
    out = run_pipeline(cfg, engine=engine, make_figures=False, show_progress=False)

    assert out['clean']['year'].min() == 1992
    assert set(out['clean']['species']) == set(cfg.species)


def test_run_pipeline_rejects_empty_selection(raw, cfg):
    with pytest.raises(ValueError, match='No records left'):
        run_pipeline(replace(cfg, species=['Petrale Sole']), raw=raw, make_figures=False, show_progress=False)
