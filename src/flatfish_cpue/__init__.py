"""Flatfish CPUE analysis (nominal summaries and two-period standardization).

Importable modules for each analysis step plus CLI-friendly scripts under
/scripts.
"""

from .config import ProjectConfig
