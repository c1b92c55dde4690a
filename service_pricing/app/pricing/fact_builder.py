"""
Build the fact base for one pricing request.
"""

from decimal import Decimal
from typing import Any, Callable, Dict, Optional, Tuple

from shared.config import BaseConfig
from shared.errors import InvalidInput
from ..catalog import BundleSelection, CatalogBundle, CatalogLookup, select_bundle
from ..rules.facts import FactBase
from ..rules.models import PricingRequest
from ..rules.money import to_decimal

DiscountPerDayProvider = Callable[[BundleSelection, PricingRequest], Optional[Decimal]]


def bundle_facts(bundle: CatalogBundle) -> Dict[str, Any]:
    return {
        "name": bundle.name,
        "group": bundle.group,
        "validityDays": bundle.validity_days,
        "cost": bundle.cost,
        "currency": bundle.currency,
        "provider": bundle.provider,
        "countries": list(bundle.countries),
        "region": bundle.region,
        "isUnlimited": bundle.is_unlimited,
        "dataAmountMb": bundle.data_amount_mb,
    }


def build_fact_base(
    request: PricingRequest,
    catalog: CatalogLookup,
    settings: BaseConfig,
    requested_days: Optional[int] = None,
    discount_per_day_provider: Optional[DiscountPerDayProvider] = None,
) -> Tuple[FactBase, BundleSelection]:
    """Select a bundle for ``request`` and publish everything rules may read.

    ``requested_days`` overrides the request's own duration (batch-wide
    duration). ``discountPerDay`` comes from the request, else the provider,
    else the configured default.
    """
    days = requested_days if requested_days is not None else request.requested_duration
    destination = request.destination_or_bundle.strip()
    group = request.group or settings.default_group

    named_bundle = catalog.bundle(destination)
    if named_bundle is not None:
        candidates = [named_bundle]
        iso = named_bundle.countries[0] if len(named_bundle.countries) == 1 else None
    else:
        candidates = catalog.bundles_for(destination, group)
        iso = destination.upper() if len(destination) == 2 else None

    selection = select_bundle(
        candidates,
        days,
        destination,
        min_days=settings.min_duration_days,
        max_days=settings.max_duration_days,
    )

    country = catalog.country(iso) if iso else None
    region = country.region if country is not None and country.region else selection.selected.region

    discount_per_day = request.discount_per_day
    if discount_per_day is None and discount_per_day_provider is not None:
        discount_per_day = discount_per_day_provider(selection, request)
        if discount_per_day is not None and to_decimal(discount_per_day) < 0:
            raise InvalidInput(
                "Discount per day must not be negative",
                details={"discount_per_day": str(discount_per_day)},
            )
    if discount_per_day is None:
        discount_per_day = settings.default_discount_per_day

    facts: Dict[str, Any] = {
        "selectedBundle": bundle_facts(selection.selected),
        "isExactMatch": selection.is_exact_match,
        "unusedDays": selection.unused_days,
        "numOfDays": selection.selected.validity_days,
        "requestedDays": days,
        "group": selection.selected.group,
        "paymentMethod": request.payment_method or settings.default_payment_method,
        "discountPerDay": to_decimal(discount_per_day),
    }
    # Unknown values stay absent so conditions on them never match
    if selection.previous is not None:
        facts["previousBundle"] = bundle_facts(selection.previous)
    if iso is not None:
        facts["country"] = iso
    if region is not None:
        facts["region"] = region
    if request.provider_cost is not None:
        facts["providerCost"] = request.provider_cost

    return FactBase(facts), selection
