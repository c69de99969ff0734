from __future__ import annotations

import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import List, Optional


DEFAULT_SPECIES: List[str] = [
    'Arrowtooth Flounder',
    'Flathead Sole',
    'Rex Sole',
    'Dover Sole',
    'Petrale Sole',
]


@dataclass(frozen=True)
class ProjectConfig:
    # Source database
    db_url: str = 'sqlite:///data/raw/fisheries.sqlite'
    table: str = 'catch_effort'
    species_column: str = 'species'
    year_column: str = 'year'

    # Scope
    species: List[str] = field(default_factory=lambda: list(DEFAULT_SPECIES))
    year_min: Optional[int] = None
    year_max: Optional[int] = None
    split_year: int = 1996

    # Standardization
    min_records: int = 10
    month_knots: int = 6
    use_locality: bool = True
    n_boot: int = 100

    # Paths (repo-relative by default)
    raw_path: Path = Path('data/raw/catch_effort_raw.csv.gz')
    clean_path: Path = Path('data/processed/catch_effort_clean.csv.gz')
    dropped_path: Path = Path('data/processed/dropped_rows.csv')
    nominal_path: Path = Path('reports/nominal/nominal_cpue.csv')
    early_index_path: Path = Path('reports/standardized/early_loglinear_index.csv')
    early_fits_path: Path = Path('reports/standardized/early_loglinear_fits.csv')
    late_index_path: Path = Path('reports/standardized/late_delta_index.csv')
    late_fits_path: Path = Path('reports/standardized/late_delta_fits.csv')
    early_residuals_path: Path = Path('reports/standardized/early_residuals.csv.gz')
    late_residuals_path: Path = Path('reports/standardized/late_residuals.csv.gz')
    combined_path: Path = Path('reports/standardized/combined_indices.csv')
    fig_dir: Path = Path('assets/figures')

    # Runtime
    seed: int = 7

    @classmethod
    def from_env(cls) -> 'ProjectConfig':
        cfg = cls()
        url = os.getenv('FLATFISH_DB_URL')
        if url:
            cfg = replace(cfg, db_url=url)
        return cfg
