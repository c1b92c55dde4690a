"""
Built-in pricing blocks and the ``default-pricing`` strategy.
"""

from .store import InMemoryStrategyStore

DEFAULT_STRATEGY_CODE = "default-pricing"

DEFAULT_MARKUP_MATRIX = {
    "Standard Unlimited Essential": {1: 3, 3: 5, 5: 9, 7: 12, 10: 15, 15: 17, 30: 20},
    "Standard Fixed": {1: 2, 3: 4, 5: 6, 7: 8, 10: 10, 15: 12, 30: 15},
}

DEFAULT_FEES_MATRIX = {
    "ISRAELI_CARD": {"percentageFee": 1.4, "fixedFee": 0},
    "FOREIGN_CARD": {"percentageFee": 4.5, "fixedFee": 0},
    "BIT": {"percentageFee": 1.4, "fixedFee": 0},
    "AMEX": {"percentageFee": 5.7, "fixedFee": 0},
    "DINERS": {"percentageFee": 6.4, "fixedFee": 0},
}

DEFAULT_BLOCKS = [
    {
        "id": "base-price",
        "name": "Base Price",
        "description": "Set the price from the selected bundle cost",
        "priority": 100,
        "conditions": {
            "all": [
                {"fact": "selectedBundle", "operator": "isPresent"},
                {"fact": "selectedBundle", "path": "$.cost", "operator": "greaterThan", "value": 0},
            ]
        },
        "event_type": "set-base-price",
        "params": {"source": "$selectedBundle.cost"},
    },
    {
        "id": "markup",
        "name": "Markup",
        "description": "Markup by bundle group and validity days",
        "priority": 90,
        "conditions": {"all": []},
        "event_type": "apply-markup",
        "params": {"markupMatrix": DEFAULT_MARKUP_MATRIX},
    },
    {
        "id": "unused-days-discount",
        "name": "Unused Days Discount",
        "description": "Discount for days paid for but not requested",
        "priority": 85,
        "conditions": {
            "all": [
                {"fact": "isExactMatch", "operator": "equal", "value": False},
                {"fact": "unusedDays", "operator": "greaterThan", "value": 0},
            ]
        },
        "event_type": "apply-unused-days-discount",
        "params": {"unusedDays": "$unusedDays", "discountPerDay": "$discountPerDay"},
    },
    {
        "id": "processing-fee",
        "name": "Processing Fee",
        "description": "Payment processing fee by method",
        "priority": 80,
        "conditions": {"all": []},
        "event_type": "apply-processing-fee",
        "params": {"feesMatrix": DEFAULT_FEES_MATRIX},
    },
    {
        "id": "region-rounding",
        "name": "Region Rounding",
        "description": "Snap prices to a .99 ending",
        "priority": 100,
        "conditions": {"all": []},
        "event_type": "apply-region-rounding",
        "params": {"ending": 0.99},
    },
    {
        "id": "fixed-price-ua",
        "name": "Ukraine Fixed Price",
        "description": "Fixed price for Ukraine regardless of bundle",
        "priority": 100,
        "conditions": {"all": [{"fact": "country", "operator": "equal", "value": "UA"}]},
        "event_type": "apply-fixed-price",
        "params": {"value": 88},
    },
]

DEFAULT_STRATEGIES = [
    {
        "code": DEFAULT_STRATEGY_CODE,
        "name": "Default Pricing",
        "is_default": True,
        "blocks": [
            {"block_id": "base-price", "priority": 100},
            {"block_id": "markup", "priority": 90},
            {"block_id": "unused-days-discount", "priority": 85},
            {"block_id": "processing-fee", "priority": 80},
            {"block_id": "region-rounding", "priority": 10},
            {"block_id": "fixed-price-ua", "priority": 5},
        ],
    },
]


def default_strategy_store(default_currency: str = "USD") -> InMemoryStrategyStore:
    return InMemoryStrategyStore(DEFAULT_BLOCKS, DEFAULT_STRATEGIES, default_currency=default_currency)
