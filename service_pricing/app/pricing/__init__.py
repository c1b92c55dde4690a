"""
Pricing runs: fact-base construction, single pricing and batch streaming.
"""

from .coordinator import BatchPricingCoordinator
from .fact_builder import build_fact_base
from .pricer import Pricer

__all__ = ["BatchPricingCoordinator", "Pricer", "build_fact_base"]
