from __future__ import annotations

from dataclasses import replace
from pathlib import Path

import pytest

from flatfish_cpue.cleaning import clean_records
from flatfish_cpue.config import ProjectConfig
from flatfish_cpue.simulate import simulate_records


SPECIES = ['Rex Sole', 'Dover Sole']


def make_cfg(root: Path, **overrides) -> ProjectConfig:
    cfg = ProjectConfig(
        db_url=f'sqlite:///{root / "fisheries.sqlite"}',
        species=list(SPECIES),
        n_boot=0,
        raw_path=root / 'data/raw/raw.csv.gz',
        clean_path=root / 'data/processed/clean.csv.gz',
        dropped_path=root / 'data/processed/dropped.csv',
        nominal_path=root / 'reports/nominal/nominal_cpue.csv',
        early_index_path=root / 'reports/std/early_index.csv',
        early_fits_path=root / 'reports/std/early_fits.csv',
        late_index_path=root / 'reports/std/late_index.csv',
        late_fits_path=root / 'reports/std/late_fits.csv',
        early_residuals_path=root / 'reports/std/early_resid.csv.gz',
        late_residuals_path=root / 'reports/std/late_resid.csv.gz',
        combined_path=root / 'reports/std/combined.csv',
        fig_dir=root / 'figures',
    )
    return replace(cfg, **overrides)


@pytest.fixture
def cfg(tmp_path) -> ProjectConfig:
    return make_cfg(tmp_path)


@pytest.fixture(scope='session')
def raw():
    return simulate_records(
        species=SPECIES,
        years=range(1990, 2002),
        areas=['610', '620'],
        n_per_year=30,
        seed=11,
    )


@pytest.fixture
def clean(raw, cfg):
    df, _ = clean_records(raw, cfg)
    return df
