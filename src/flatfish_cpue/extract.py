"""Database extraction and intermediate table I/O.

The raw catch/effort table is pulled with a single parameterized query and
renamed onto the canonical schema used by every later step::

    year, month, area, locality, species, catch, effort

Intermediate tables are exchanged between scripts as gzip CSV files.
"""
from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Dict, List, Optional, Tuple, Union

import pandas as pd
from sqlalchemy import bindparam, create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.sql.elements import TextClause

from .cleaning import canonicalize_species
from .config import ProjectConfig

logger = logging.getLogger(__name__)

RAW_COLUMNS: List[str] = ['year', 'month', 'area', 'locality', 'species', 'catch', 'effort']

# Database column -> canonical column
COLUMN_MAP: Dict[str, str] = {
    'STAT_AREA': 'area',
    'PORT': 'locality',
    'COMMON_NAME': 'species',
    'CATCH_KG': 'catch',
    'HOURS_FISHED': 'effort',
    'EFFORT_HOURS': 'effort',
}

_IDENTIFIER = re.compile(r'^[A-Za-z_][A-Za-z0-9_]*(\.[A-Za-z_][A-Za-z0-9_]*)?$')


def _check_identifier(name: str) -> str:
    if not _IDENTIFIER.match(name):
        raise ValueError(f'Invalid SQL identifier: {name!r}')
    return name


def build_query(
    table: str,
    species: List[str],
    year_min: Optional[int] = None,
    year_max: Optional[int] = None,
    species_col: str = 'species',
    year_col: str = 'year',
) -> Tuple[TextClause, dict]:
    """Return a parameterized SELECT for the requested species/years and its parameters."""
    table = _check_identifier(table)
    species_col = _check_identifier(species_col)
    year_col = _check_identifier(year_col)
    if not species:
        raise ValueError('At least one species is required')

    clauses = [f'{species_col} IN :species']
    params: dict = {'species': list(species)}
    if year_min is not None:
        clauses.append(f'{year_col} >= :year_min')
        params['year_min'] = int(year_min)
    if year_max is not None:
        clauses.append(f'{year_col} <= :year_max')
        params['year_max'] = int(year_max)

    sql = f'SELECT * FROM {table} WHERE ' + ' AND '.join(clauses)
    stmt = text(sql).bindparams(bindparam('species', expanding=True))
    return stmt, params


def standardize_columns(df: pd.DataFrame) -> pd.DataFrame:
    """Rename database columns onto the canonical raw schema."""
    rename = {}
    for c in df.columns:
        key = str(c).strip()
        rename[c] = COLUMN_MAP.get(key.upper(), key.lower())
    df = df.rename(columns=rename)
    df = df.loc[:, ~df.columns.duplicated()].copy()

    if 'locality' not in df.columns:
        df['locality'] = pd.NA

    missing = [c for c in RAW_COLUMNS if c not in df.columns]
    if missing:
        raise ValueError(f'Missing required columns: {missing}')
    return df[RAW_COLUMNS].reset_index(drop=True)


def distinct_species(conn, table: str, species_col: str = 'species') -> List[str]:
    stmt = text(f'SELECT DISTINCT {_check_identifier(species_col)} AS species FROM {_check_identifier(table)}')
    return pd.read_sql(stmt, conn)['species'].dropna().astype(str).tolist()


def extract_records(engine: Union[Engine, str, None], cfg: ProjectConfig) -> pd.DataFrame:
    """Run the extraction query and return the raw catch/effort table.

    Species names stored in the database may be spelled differently from the
    configured names ("REX SOLE", "rex  sole"), so the query is issued for
    every stored spelling that canonicalizes onto a configured species.
    """
    if engine is None:
        engine = cfg.db_url
    if isinstance(engine, str):
        engine = create_engine(engine)

    with engine.connect() as conn:
        stored = distinct_species(conn, cfg.table, cfg.species_column)
        spellings = sorted(s for s in stored if canonicalize_species(s, cfg.species)[1])
        if not spellings:
            logger.warning('No species in %s match %s', cfg.table, cfg.species)
            return pd.DataFrame(columns=RAW_COLUMNS)

        stmt, params = build_query(
            cfg.table, spellings, cfg.year_min, cfg.year_max,
            species_col=cfg.species_column, year_col=cfg.year_column,
        )
        raw = pd.read_sql(stmt, conn, params=params)

    raw = standardize_columns(raw)
    logger.info('Extracted %s records (%d species spellings) from %s', f'{len(raw):,}', len(spellings), cfg.table)
    return raw


def write_table(df: pd.DataFrame, path: Path) -> Path:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    df.to_csv(path, index=False, compression='infer')
    logger.info('Wrote %s (%s rows)', path, f'{len(df):,}')
    return path


def read_table(path: Path) -> pd.DataFrame:
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f'Table not found: {path}')
    return pd.read_csv(path, compression='infer')
