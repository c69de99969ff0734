"""End-to-end run: extract, clean, summarize, standardize, combine, plot.

Every step writes its table to the path configured in
:class:`~flatfish_cpue.config.ProjectConfig`, so the numbered scripts can
also be run one at a time.
"""
from __future__ import annotations

import logging
from typing import Dict, Optional, Union

import pandas as pd
from sqlalchemy.engine import Engine

from .cleaning import clean_records, split_periods
from .config import ProjectConfig
from .delta import standardize_late
from .extract import extract_records, write_table
from .figures import make_all_figures
from .indices import combine_indices
from .loglinear import standardize_early
from .summary import nominal_cpue, period_overview

logger = logging.getLogger(__name__)


def nominal_tables(clean: pd.DataFrame, split_year: int) -> Dict[str, pd.DataFrame]:
    """Nominal CPUE at the resolutions used downstream."""
    periods = split_periods(clean, split_year)
    return {
        'species_year': nominal_cpue(clean, ['species', 'year']),
        'early_area': nominal_cpue(periods['early'], ['area', 'species', 'year']),
        'late_species': nominal_cpue(periods['late'], ['species', 'year']),
        'overview': period_overview(clean),
    }


def write_nominal(tables: Dict[str, pd.DataFrame], cfg: ProjectConfig) -> None:
    base = cfg.nominal_path
    write_table(tables['species_year'], base)
    write_table(tables['early_area'], base.with_name(base.stem + '_early_by_area.csv'))
    write_table(tables['late_species'], base.with_name(base.stem + '_late.csv'))
    write_table(tables['overview'], base.with_name('period_overview.csv'))


def run_pipeline(
    cfg: ProjectConfig,
    engine: Union[Engine, str, None] = None,
    raw: Optional[pd.DataFrame] = None,
    make_figures: bool = True,
    png: bool = True,
    show_progress: bool = True,
) -> Dict[str, pd.DataFrame]:
    """Run every step; ``raw`` skips the database extraction when given."""
    if raw is None:
        raw = extract_records(engine, cfg)
    write_table(raw, cfg.raw_path)

    clean, dropped = clean_records(raw, cfg)
    if clean.empty:
        raise ValueError('No records left after cleaning; check species names and year bounds')
    write_table(clean, cfg.clean_path)
    write_table(dropped, cfg.dropped_path)

    nominal = nominal_tables(clean, cfg.split_year)
    write_nominal(nominal, cfg)

    periods = split_periods(clean, cfg.split_year)
    logger.info(
        'Early period (< %d): %s records; late period: %s records',
        cfg.split_year, f'{len(periods["early"]):,}', f'{len(periods["late"]):,}',
    )

    early_index, early_fits, early_resid = standardize_early(periods['early'], cfg, show_progress=show_progress)
    write_table(early_index, cfg.early_index_path)
    write_table(early_fits, cfg.early_fits_path)
    write_table(early_resid, cfg.early_residuals_path)

    late_index, late_fits, late_resid = standardize_late(periods['late'], cfg, show_progress=show_progress)
    write_table(late_index, cfg.late_index_path)
    write_table(late_fits, cfg.late_fits_path)
    write_table(late_resid, cfg.late_residuals_path)

    residuals = pd.concat([early_resid, late_resid], ignore_index=True)

    combined = combine_indices(nominal['early_area'], nominal['late_species'], early_index, late_index)
    write_table(combined, cfg.combined_path)

    if make_figures:
        make_all_figures(
            cfg.fig_dir,
            nominal_species_year=nominal['species_year'],
            combined=combined,
            residuals=residuals,
            late_index=late_index,
            split_year=cfg.split_year,
            png=png,
        )

    return {
        'raw': raw,
        'clean': clean,
        'dropped': dropped,
        'nominal': nominal['species_year'],
        'nominal_early_area': nominal['early_area'],
        'nominal_late': nominal['late_species'],
        'overview': nominal['overview'],
        'early_index': early_index,
        'early_fits': early_fits,
        'late_index': late_index,
        'late_fits': late_fits,
        'residuals': residuals,
        'combined': combined,
    }
