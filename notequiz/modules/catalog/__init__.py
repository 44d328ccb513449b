"""Quiz configuration catalog and its option sources."""

from notequiz.modules.catalog.service import ConfigurationCatalog
from notequiz.modules.catalog.sources import (
    CatalogSource,
    ClefOption,
    DurationChoice,
    LedgerLineChoice,
    SqlCatalogSource,
    StaticCatalogSource,
)

__all__ = [
    "ConfigurationCatalog",
    "CatalogSource",
    "StaticCatalogSource",
    "SqlCatalogSource",
    "ClefOption",
    "DurationChoice",
    "LedgerLineChoice",
]
