"""
Bundle selection for a requested duration.
"""

from dataclasses import dataclass
from typing import Optional, Sequence

from shared.errors import InvalidDuration, InvalidInput, NoBundlesAvailable
from .models import CatalogBundle


@dataclass(frozen=True)
class BundleSelection:
    """Bundle chosen for a request and how well it matches."""
    selected: CatalogBundle
    previous: Optional[CatalogBundle]
    requested_days: int

    @property
    def is_exact_match(self) -> bool:
        return self.selected.validity_days == self.requested_days

    @property
    def unused_days(self) -> int:
        return self.selected.validity_days - self.requested_days


def validate_duration(requested_days: int, min_days: int = 1, max_days: int = 365) -> None:
    if isinstance(requested_days, bool) or not isinstance(requested_days, int):
        raise InvalidInput("Requested duration must be an integer", {"duration": requested_days})
    if requested_days < 1:
        raise InvalidInput("Requested duration must be at least 1 day", {"duration": requested_days})
    if requested_days < min_days or requested_days > max_days:
        raise InvalidDuration(
            requested_days,
            f"Requested duration {requested_days} is outside [{min_days}, {max_days}]",
            {"min_days": min_days, "max_days": max_days},
        )


def select_bundle(
    candidates: Sequence[CatalogBundle],
    requested_days: int,
    destination: str,
    min_days: int = 1,
    max_days: int = 365,
) -> BundleSelection:
    """Pick the shortest bundle that covers the requested days (cheapest on ties).

    ``previous`` is the longest candidate strictly shorter than the selection.
    """
    validate_duration(requested_days, min_days, max_days)
    if not candidates:
        raise NoBundlesAvailable(destination)

    covering = [bundle for bundle in candidates if bundle.validity_days >= requested_days]
    if not covering:
        longest = max(bundle.validity_days for bundle in candidates)
        raise InvalidDuration(
            requested_days,
            f"Requested duration {requested_days} exceeds the longest bundle ({longest} days) for {destination}",
            {"destination": destination, "max_available_days": longest},
        )

    selected = min(covering, key=lambda bundle: (bundle.validity_days, bundle.cost))
    shorter = [bundle for bundle in candidates if bundle.validity_days < selected.validity_days]
    previous = max(shorter, key=lambda bundle: (bundle.validity_days, -bundle.cost)) if shorter else None
    return BundleSelection(selected=selected, previous=previous, requested_days=requested_days)
