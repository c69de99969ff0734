from __future__ import annotations

import logging

from flatfish_cpue.config import DEFAULT_SPECIES, ProjectConfig
from flatfish_cpue.logging_config import setup_logging


def test_defaults():
    cfg = ProjectConfig()
    assert cfg.species == DEFAULT_SPECIES
    assert len(cfg.species) == 5
    assert cfg.split_year == 1996


def test_from_env_overrides_db_url(monkeypatch):
    monkeypatch.setenv('FLATFISH_DB_URL', 'sqlite:///elsewhere.sqlite')
    assert ProjectConfig.from_env().db_url == 'sqlite:///elsewhere.sqlite'

    monkeypatch.delenv('FLATFISH_DB_URL')
    assert ProjectConfig.from_env().db_url == ProjectConfig().db_url


def test_setup_logging_writes_log_file(tmp_path):
    log_file = tmp_path / 'logs' / 'run.log'
    logger = setup_logging(level=logging.DEBUG, log_file=log_file)
    try:
        logging.getLogger('flatfish_cpue.pipeline').info('fitted %d strata', 4)
        for h in logger.handlers:
            h.flush()
        assert 'fitted 4 strata' in log_file.read_text(encoding='utf-8')

        # calling again replaces handlers instead of stacking them
        setup_logging()
        assert len(logger.handlers) == 1
    finally:
        for h in list(logger.handlers):
            h.close()
            logger.removeHandler(h)
        logger.propagate = True
