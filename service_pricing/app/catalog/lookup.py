"""
In-process catalog lookup table.
"""

from typing import Any, Dict, Iterable, List, Mapping, Optional

import yaml

from shared.logging import get_logger
from .models import CatalogBundle, Country


class CatalogLookup:
    """Bundles and countries indexed for pricing.

    Built explicitly by the caller and passed to whatever needs it.
    """

    def __init__(self, bundles: Iterable[CatalogBundle], countries: Iterable[Country] = ()):
        self.logger = get_logger("pricing.catalog")
        self.bundles: List[CatalogBundle] = list(bundles)
        self.countries: Dict[str, Country] = {country.iso: country for country in countries}
        self._by_name: Dict[str, CatalogBundle] = {bundle.name: bundle for bundle in self.bundles}

    def country(self, iso: str) -> Optional[Country]:
        return self.countries.get(iso.upper())

    def bundle(self, name: str) -> Optional[CatalogBundle]:
        return self._by_name.get(name)

    def bundles_for(self, destination: str, group: Optional[str] = None) -> List[CatalogBundle]:
        """Bundles covering a country ISO code or a region, optionally in one group."""
        key = destination.strip()
        if len(key) == 2:
            iso = key.upper()
            candidates = [bundle for bundle in self.bundles if iso in bundle.countries]
        else:
            region = key.lower()
            candidates = [
                bundle for bundle in self.bundles
                if bundle.region is not None and bundle.region.lower() == region
            ]
        if group is not None:
            candidates = [bundle for bundle in candidates if bundle.group == group]

        self.logger.debug(
            "Catalog lookup",
            destination=destination,
            group=group,
            candidates=len(candidates),
        )
        return candidates


def catalog_from_rows(
    bundles: Iterable[Mapping[str, Any]],
    countries: Iterable[Mapping[str, Any]] = (),
) -> CatalogLookup:
    return CatalogLookup(
        [CatalogBundle.model_validate(row) for row in bundles],
        [Country.model_validate(row) for row in countries],
    )


def load_catalog_from_yaml(path: str) -> CatalogLookup:
    """Build a lookup table from a YAML file with ``bundles`` and ``countries`` sections."""
    with open(path, "r", encoding="utf-8") as handle:
        document = yaml.safe_load(handle) or {}
    return catalog_from_rows(document.get("bundles") or [], document.get("countries") or [])
