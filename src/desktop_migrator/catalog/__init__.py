"""
Flatpak catalogs of the image families and their reconciliation
"""

from .fetcher import ApplicationCatalog, CatalogFetcher, parse_brewfile
from .diff import CatalogDiffEngine, ReconciliationPlan, classify, build_plan

__all__ = [
    'ApplicationCatalog',
    'CatalogFetcher',
    'parse_brewfile',
    'CatalogDiffEngine',
    'ReconciliationPlan',
    'classify',
    'build_plan',
]
