"""
Catalog collaborator: normalized bundles, countries and bundle selection.
"""

from .lookup import CatalogLookup, catalog_from_rows, load_catalog_from_yaml
from .models import CatalogBundle, Country
from .selection import BundleSelection, select_bundle

__all__ = [
    "BundleSelection",
    "CatalogBundle",
    "CatalogLookup",
    "Country",
    "catalog_from_rows",
    "load_catalog_from_yaml",
    "select_bundle",
]
