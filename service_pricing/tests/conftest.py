"""
Shared fixtures for pricing service tests.
"""

import pytest

from shared.test_helpers import PricingDataFactory
from service_pricing.app.strategies import InMemoryStrategyStore
from service_pricing.app.strategies.defaults import DEFAULT_BLOCKS, DEFAULT_STRATEGIES


@pytest.fixture
def surcharge_store():
    """Default blocks plus an Israel surcharge that references a missing fact."""
    broken = PricingDataFactory.create_block_row(
        "il-surcharge",
        "multiply-price",
        {"factor": "$surchargeFactor"},
        priority=70,
        conditions={"all": [{"fact": "country", "operator": "equal", "value": "IL"}]},
    )
    bindings = list(DEFAULT_STRATEGIES[0]["blocks"]) + [{"block_id": "il-surcharge"}]
    strategy = PricingDataFactory.create_strategy_row("with-surcharge", bindings)
    return InMemoryStrategyStore(DEFAULT_BLOCKS + [broken], DEFAULT_STRATEGIES + [strategy])
